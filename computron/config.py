"""Pydantic-based configuration helpers for the Computron bot."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Dict, Iterable, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, ValidationError, field_validator

DEFAULT_SERVICE_TYPES = "Water Mitigation,Mold Remediation,Fire Restoration"


def _split_csv(value: str | list[str] | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [item.strip() for item in value if item and item.strip()]
    return [item.strip() for item in value.split(",") if item.strip()]


class AppSettings(BaseModel):
    """Settings required to initialise the Slack bot and the CRM client."""

    bot_token: str = Field(..., alias="SLACK_BOT_TOKEN")
    signing_secret: str = Field(..., alias="SLACK_SIGNING_SECRET")
    pipedrive_api_token: str = Field(..., alias="PIPEDRIVE_API_TOKEN")
    bot_user_id: str | None = Field(None, alias="SLACK_BOT_USER_ID")
    port: int = Field(3000, alias="PORT")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    pipedrive_base_url: str = Field("https://api.pipedrive.com/v1", alias="PIPEDRIVE_BASE_URL")
    estimator_field: str | None = Field(None, alias="PIPEDRIVE_ESTIMATOR_FIELD")
    service_type_field: str = Field("service_type", alias="PIPEDRIVE_SERVICE_TYPE_FIELD")
    service_type_allowlist: List[str] = Field(
        default_factory=lambda: _split_csv(DEFAULT_SERVICE_TYPES), alias="SERVICE_TYPE_ALLOWLIST"
    )
    activity_subject: str = Field("Schedule initial inspection", alias="ACTIVITY_SUBJECT")
    activity_timezone: str = Field("UTC", alias="ACTIVITY_TIMEZONE")

    auto_invite_user_ids: List[str] = Field(default_factory=list, alias="AUTO_INVITE_USER_IDS")
    estimator_user_map: Dict[str, str] = Field(default_factory=dict, alias="ESTIMATOR_USER_MAP")

    intake_marker: str = Field("[computron:intake]", alias="INTAKE_MARKER")
    enable_auto_invite: bool = Field(True, alias="ENABLE_AUTO_INVITE")
    enable_durable_marker: bool = Field(True, alias="ENABLE_DURABLE_MARKER")
    enable_estimator_lookup: bool = Field(True, alias="ENABLE_ESTIMATOR_LOOKUP")

    join_delay_seconds: float = Field(5.0, alias="JOIN_DELAY_SECONDS")
    cooldown_seconds: float = Field(60.0, alias="COOLDOWN_SECONDS")
    recent_guard_seconds: float = Field(10.0, alias="RECENT_GUARD_SECONDS")
    history_scan_limit: int = Field(50, alias="HISTORY_SCAN_LIMIT")
    http_timeout_seconds: float = Field(10.0, alias="HTTP_TIMEOUT_SECONDS")

    @field_validator("auto_invite_user_ids", "service_type_allowlist", mode="before")
    @classmethod
    def _split_ids(cls, value: str | list[str] | None) -> list[str]:
        return _split_csv(value)

    @field_validator("estimator_user_map", mode="before")
    @classmethod
    def _parse_user_map(cls, value: str | dict | None) -> dict[str, str]:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(name).strip(): str(user).strip() for name, user in value.items()}

        mapping: dict[str, str] = {}
        for entry in _split_csv(value):
            name, sep, user_id = entry.partition("=")
            if not sep or not name.strip() or not user_id.strip():
                raise ValueError(f"Invalid estimator mapping entry '{entry}', expected Name=USERID")
            mapping[name.strip()] = user_id.strip()
        return mapping

    @field_validator("bot_user_id", "estimator_field", mode="before")
    @classmethod
    def _blank_as_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        trimmed = str(value).strip()
        return trimmed or None

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level '{value}'")
        return level

    @field_validator("activity_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone '{value}'") from exc
        return value

    @field_validator("join_delay_seconds")
    @classmethod
    def _check_join_delay(cls, value: float) -> float:
        if value < 2 or value > 5:
            raise ValueError("Join delay must be between 2 and 5 seconds")
        return value

    @field_validator("cooldown_seconds", "recent_guard_seconds", "http_timeout_seconds")
    @classmethod
    def _ensure_positive_window(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Windows and timeouts must be greater than zero")
        return value

    @field_validator("history_scan_limit")
    @classmethod
    def _ensure_positive_limit(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("History scan limit must be greater than zero")
        return value


def _format_missing(fields: Iterable[str]) -> str:
    """Return a human-friendly comma-separated list of missing env vars."""

    unique: List[str] = []
    for field in fields:
        if field not in unique:
            unique.append(field)
    return ", ".join(unique)


@lru_cache()
def get_settings() -> AppSettings:
    """Fetch and cache settings from environment variables."""

    try:
        return AppSettings.model_validate(os.environ)
    except ValidationError as exc:
        missing = [str(error["loc"][0]) for error in exc.errors() if error["type"] == "missing"]
        if not missing:
            raise RuntimeError(f"Invalid configuration: {exc}") from exc
        message = (
            "Missing required environment variables: "
            f"{_format_missing(missing)}"
        )
        raise RuntimeError(message) from exc
