# carnet/schemas/template_schemas.py
"""Template content parsed into a small family of block models.

Templates are stored as raw JSON pages; each block is dispatched on its
``type`` to one model so callers read block content through explicit fields
instead of probing optional keys.
"""
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator

LANGUAGE_TOGGLE_TYPES = ("language_toggle", "language_toggle_v2")
OVERRIDE_PREFIX = "language_toggle_"


class ToggleItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    code: str = ""
    label: str = ""
    type: Optional[str] = None
    active: bool = False
    # Empty means the item applies to every level
    levels: List[str] = Field(default_factory=list)

    @field_validator("code", "label", mode="before")
    @classmethod
    def null_text(cls, v):
        return "" if v is None else v

    @field_validator("levels", mode="before")
    @classmethod
    def null_levels(cls, v):
        return [] if v is None else v

    @field_validator("active", mode="before")
    @classmethod
    def null_active(cls, v):
        return False if v is None else v

    def applies_to(self, level: Optional[str]) -> bool:
        if not self.levels:
            return True
        return level is not None and level in self.levels


class BaseBlock(BaseModel):
    kind: str
    id: Optional[str] = None
    props: Dict[str, Any] = Field(default_factory=dict)

    def override_key(self, page_index: int, block_index: int) -> str:
        if self.id:
            return f"{OVERRIDE_PREFIX}{self.id}"
        return f"{OVERRIDE_PREFIX}{page_index}_{block_index}"


class LanguageToggleBlock(BaseBlock):
    items: List[ToggleItem] = Field(default_factory=list)


class TextBlock(BaseBlock):
    text: str = ""


class GenericBlock(BaseBlock):
    """Any block the lifecycle does not interpret (images, tables, signatures...)."""


Block = Union[LanguageToggleBlock, TextBlock, GenericBlock]


def parse_block(raw: Dict[str, Any]) -> Block:
    kind = str(raw.get("type") or "")
    props = raw.get("props") or {}
    block_id = raw.get("id")
    if kind in LANGUAGE_TOGGLE_TYPES:
        return LanguageToggleBlock(kind=kind, id=block_id, props=props, items=props.get("items") or [])
    if kind == "text":
        return TextBlock(kind=kind, id=block_id, props=props, text=props.get("text") or "")
    return GenericBlock(kind=kind, id=block_id, props=props)


class TemplatePage(BaseModel):
    title: Optional[str] = None
    blocks: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("blocks", mode="before")
    @classmethod
    def null_blocks(cls, v):
        return [] if v is None else v

    def parsed_blocks(self) -> List[Block]:
        return [parse_block(raw) for raw in self.blocks]


def parse_pages(pages: Optional[List[Dict[str, Any]]]) -> List[TemplatePage]:
    return [TemplatePage.model_validate(page) for page in pages or []]


def iter_language_toggles(pages: List[TemplatePage]) -> Iterator[Tuple[int, int, LanguageToggleBlock]]:
    for page_index, page in enumerate(pages):
        for block_index, block in enumerate(page.parsed_blocks()):
            if isinstance(block, LanguageToggleBlock):
                yield page_index, block_index, block


def _apply_override(items: List[Dict[str, Any]], override: Any) -> List[Dict[str, Any]]:
    # Overrides are either full item lists or the list of active codes
    if not isinstance(override, list):
        return items
    if all(isinstance(entry, str) for entry in override):
        active = set(override)
        return [{**item, "active": item.get("code") in active} for item in items]
    return [dict(entry) for entry in override if isinstance(entry, dict)]


def merge_block_overrides(
    pages: Optional[List[Dict[str, Any]]],
    overrides: Dict[str, Any],
) -> List[Dict[str, Any]]:
    """Return a copy of the raw pages with per-assignment toggle state applied."""
    merged = []
    for page_index, raw_page in enumerate(pages or []):
        page = dict(raw_page)
        blocks = []
        for block_index, raw_block in enumerate(raw_page.get("blocks") or []):
            block = parse_block(raw_block)
            key = block.override_key(page_index, block_index)
            if isinstance(block, LanguageToggleBlock) and key in overrides:
                props = dict(raw_block.get("props") or {})
                props["items"] = _apply_override(list(props.get("items") or []), overrides[key])
                raw_block = {**raw_block, "props": props}
            blocks.append(raw_block)
        page["blocks"] = blocks
        merged.append(page)
    return merged
