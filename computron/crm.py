"""Minimal Pipedrive REST client for deals, notes and activities."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Mapping

import requests
import structlog


class CrmError(RuntimeError):
    """Raised when a Pipedrive call fails or returns an unsuccessful payload."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class DealRecord:
    """Read-only view of the deal fields the bot cares about."""

    id: str
    person_name: str | None
    estimator: str | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False)


def _field_text(value: Any) -> str | None:
    # User and person fields arrive as objects carrying a ``name``.
    if value is None:
        return None
    if isinstance(value, Mapping):
        value = value.get("name")
        if value is None:
            return None
    text = str(value).strip()
    return text or None


class PipedriveClient:
    """Issue single-attempt, time-bounded calls against the Pipedrive v1 API."""

    def __init__(
        self,
        *,
        api_token: str,
        base_url: str = "https://api.pipedrive.com/v1",
        timeout: float = 10,
        estimator_field: str | None = None,
        session: requests.Session | None = None,
    ) -> None:
        if not api_token:
            raise ValueError("A Pipedrive API token is required.")

        self._api_token = api_token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._estimator_field = estimator_field
        self._session = session or requests.Session()

    def _request(self, method: str, path: str, *, json: Mapping[str, Any] | None = None) -> Dict[str, Any]:
        url = f"{self._base_url}/{path.lstrip('/')}"
        log = structlog.get_logger().bind(method=method, path=path)
        try:
            response = self._session.request(
                method,
                url,
                params={"api_token": self._api_token},
                json=json,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            log.warning("crm_request_failed", error=repr(exc))
            raise CrmError(f"Pipedrive request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise CrmError(
                f"Pipedrive returned invalid JSON (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from exc

        if response.status_code >= 400 or not isinstance(payload, dict) or not payload.get("success", False):
            error = payload.get("error") if isinstance(payload, dict) else None
            raise CrmError(
                f"Pipedrive call unsuccessful (HTTP {response.status_code}): {error or 'unknown error'}",
                status_code=response.status_code,
            )

        return payload

    def get_deal(self, deal_id: str) -> DealRecord:
        payload = self._request("GET", f"deals/{deal_id}")
        data = payload.get("data") or {}
        if not isinstance(data, dict):
            raise CrmError(f"Deal {deal_id} payload is not an object")

        estimator = _field_text(data.get(self._estimator_field)) if self._estimator_field else None
        return DealRecord(
            id=str(data.get("id", deal_id)),
            person_name=_field_text(data.get("person_name")),
            estimator=estimator,
            raw=data,
        )

    def create_note(self, *, deal_id: str, content: str) -> Dict[str, Any]:
        payload = self._request("POST", "notes", json={"content": content, "deal_id": int(deal_id)})
        return payload.get("data") or {}

    def create_activity(
        self,
        *,
        deal_id: str,
        subject: str,
        due_date: date,
        activity_type: str = "task",
    ) -> Dict[str, Any]:
        """Create an activity attached to *deal_id* and return its data."""

        body = {
            "subject": subject,
            "type": activity_type,
            "due_date": due_date.isoformat(),
            "deal_id": int(deal_id),
        }
        payload = self._request("POST", "activities", json=body)
        return payload.get("data") or {}
