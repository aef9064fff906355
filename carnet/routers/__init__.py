from . import health, lifecycle, websocket_router

__all__ = [
    "health",
    "lifecycle",
    "websocket_router"
]
