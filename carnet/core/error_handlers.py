from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
import logging

from .exceptions import CarnetException

logger = logging.getLogger(__name__)

async def carnet_exception_handler(request: Request, exc: CarnetException):
    """Log rejected lifecycle requests and return the structured detail"""
    logger.warning(f"Rejected {request.method} {request.url.path}: {exc.code} - {exc.message}")
    return await http_exception_handler(request, exc)

async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.error(f"Unexpected error: {str(exc)} - Path: {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "type": "InternalError"}
    )

def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(CarnetException, carnet_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
