from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field

from .models import EditStatus

logger = logging.getLogger(__name__)

NOTICE_HTML_DETECTED = "saferhtmltag-html-detected-in-edit-page"
DENIED_EDIT = "saferhtmltag-denied-edit"
DENIED_SAVE = "saferhtmltag-denied-save"


class MessageCatalog(BaseModel):
    """Localized message texts, keyed by message key."""

    language: str = "en"
    messages: dict[str, str] = Field(default_factory=dict)

    def render(self, key: str) -> str:
        text = self.messages.get(key)
        if text is None:
            logger.debug("Missing message key %s in catalog %s", key, self.language)
            return f"⧼{key}⧽"
        return text


def get_i18n_dir() -> Path:
    """Return package-relative path to the message catalogs."""
    return Path(__file__).resolve().parent / "i18n"


@lru_cache(maxsize=8)
def load_catalog(language: str = "en") -> MessageCatalog:
    path = get_i18n_dir() / f"{language}.json"
    if not path.is_file():
        raise FileNotFoundError(f"Message catalog missing for language '{language}': {path}")
    return MessageCatalog.model_validate_json(path.read_text(encoding="utf-8"))


class MessageSink(Protocol):
    """Host channel for user-facing messages, addressed by key only."""

    def emit_warning(self, key: str) -> None: ...

    def emit_error(self, status: EditStatus, key: str, *, fatal: bool = False) -> None: ...


class CollectingMessageSink:
    """Renders keys through a catalog and keeps warnings for the edit form."""

    def __init__(self, catalog: MessageCatalog | None = None) -> None:
        self.catalog = catalog if catalog is not None else load_catalog()
        self.warnings: list[str] = []

    def emit_warning(self, key: str) -> None:
        self.warnings.append(self.catalog.render(key))

    def emit_error(self, status: EditStatus, key: str, *, fatal: bool = False) -> None:
        text = self.catalog.render(key)
        if fatal:
            status.fatal_error(key, text)
        else:
            status.error(key, text)
