from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from workdesk.adapters.notion.client import NOTION_API_URL, NOTION_VERSION

from ._validators import _ensure_api_key, normalize_page_id, parse_bounded_number


class NotionConfig(BaseModel):
    """Notion workspace the local store is mirrored to."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    api_key: str = Field(default="", validation_alias="NOTION_API_KEY")
    root_page_id: str = Field(default="", validation_alias="NOTION_ROOT_PAGE_ID")
    api_url: str = Field(default=NOTION_API_URL, validation_alias="NOTION_API_URL")
    notion_version: str = Field(default=NOTION_VERSION, validation_alias="NOTION_VERSION")
    timeout_sec: float = Field(default=30.0, validation_alias="NOTION_TIMEOUT_SEC")
    max_retries: int = Field(default=3, validation_alias="NOTION_MAX_RETRIES")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.root_page_id)

    @field_validator("api_key", mode="before")
    @classmethod
    def _validate_api_key(cls, value: Any) -> str:
        if value in (None, ""):
            return ""
        return _ensure_api_key(str(value), name="Notion")

    @field_validator("root_page_id", mode="before")
    @classmethod
    def _validate_root_page_id(cls, value: Any) -> str:
        return normalize_page_id(value)

    @field_validator("api_url", mode="before")
    @classmethod
    def _validate_api_url(cls, value: Any) -> str:
        url = str(value or NOTION_API_URL).strip()
        if not url:
            return NOTION_API_URL
        return url.rstrip("/")

    @field_validator("notion_version", mode="before")
    @classmethod
    def _validate_version(cls, value: Any) -> str:
        version = str(value or NOTION_VERSION).strip()
        return version or NOTION_VERSION

    @field_validator("timeout_sec", mode="before")
    @classmethod
    def _validate_timeout(cls, value: Any) -> float:
        return parse_bounded_number(
            value, default=30.0, minimum=1, maximum=300, name="Notion timeout", cast=float
        )

    @field_validator("max_retries", mode="before")
    @classmethod
    def _validate_max_retries(cls, value: Any) -> int:
        return parse_bounded_number(
            value, default=3, minimum=0, maximum=10, name="Notion max retries"
        )


class SyncConfig(BaseModel):
    """Pacing of remote writes during a push."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    batch_width: int = Field(default=3, validation_alias="SYNC_BATCH_WIDTH")
    batch_delay_sec: float = Field(default=0.4, validation_alias="SYNC_BATCH_DELAY_SEC")

    @field_validator("batch_width", mode="before")
    @classmethod
    def _validate_batch_width(cls, value: Any) -> int:
        return parse_bounded_number(
            value, default=3, minimum=1, maximum=10, name="Sync batch width"
        )

    @field_validator("batch_delay_sec", mode="before")
    @classmethod
    def _validate_batch_delay(cls, value: Any) -> float:
        return parse_bounded_number(
            value, default=0.4, minimum=0, maximum=60, name="Sync batch delay", cast=float
        )
