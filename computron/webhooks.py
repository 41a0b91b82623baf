"""Inbound webhook handlers for moisture checks, closeouts and new deals."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Mapping

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .crm import CrmError, PipedriveClient
from .jobs import channel_for_job, is_job_token
from .messages import MISSING_FORM_DATE, build_closeout_message, build_moisture_check_message
from .slack_client import SLACK_CALL_ERRORS, SlackClient, slack_error_code, slack_status_code


@dataclass(frozen=True)
class WebhookResponse:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)


class JobNotice(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    job_number: str = Field(..., alias="jobNumber")

    @field_validator("job_number", mode="before")
    @classmethod
    def validate_job_number(cls, value: Any) -> str:
        if not is_job_token(value):
            raise ValueError("jobNumber must name a deal channel")
        return value.strip()

    @property
    def channel(self) -> str:
        return channel_for_job(self.job_number)


class MoistureCheckNotice(JobNotice):
    mc_count: str = Field("1", alias="mcCount")
    form_date: str = Field(MISSING_FORM_DATE, alias="formDate")

    @field_validator("mc_count", mode="before")
    @classmethod
    def default_count(cls, value: Any) -> str:
        # Any truthy count is shown as sent; missing or falsy counts read as the first check.
        if not value:
            return "1"
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        return str(value).strip() or "1"

    @field_validator("form_date", mode="before")
    @classmethod
    def default_date(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return MISSING_FORM_DATE


def _invalid_job(payload: Any, log) -> WebhookResponse:
    job_number = payload.get("jobNumber") if isinstance(payload, Mapping) else None
    log.warning("webhook_invalid_job_number", job_number=job_number)
    return WebhookResponse(400, {"ok": False, "error": "invalid_job_number"})


def _post(slack_client: SlackClient, channel: str, text: str, log, *, success: str) -> WebhookResponse:
    try:
        slack_client.post_message(channel=channel, text=text)
    except SLACK_CALL_ERRORS as exc:
        log.error(
            "webhook_post_failed",
            error=slack_error_code(exc),
            status_code=slack_status_code(exc),
        )
        return WebhookResponse(500, {"ok": False, "error": "slack_post_failed"})

    log.info("webhook_post_sent")
    return WebhookResponse(200, {"ok": True, "message": success})


def handle_moisture_check(payload: Any, *, slack_client: SlackClient) -> WebhookResponse:
    """Post a moisture check form link to the job's channel."""

    log = structlog.get_logger().bind(webhook="trigger_mc_form")
    try:
        notice = MoistureCheckNotice.model_validate(payload if isinstance(payload, Mapping) else {})
    except ValidationError:
        return _invalid_job(payload, log)

    log = log.bind(channel=notice.channel, mc_count=notice.mc_count)
    message = build_moisture_check_message(
        job_number=notice.job_number,
        mc_count=notice.mc_count,
        form_date=notice.form_date,
    )
    return _post(slack_client, notice.channel, message["text"], log, success="Moisture form posted")


def handle_closeout(payload: Any, *, slack_client: SlackClient) -> WebhookResponse:
    log = structlog.get_logger().bind(webhook="send_closeout_message")
    try:
        notice = JobNotice.model_validate(payload if isinstance(payload, Mapping) else {})
    except ValidationError:
        return _invalid_job(payload, log)

    log = log.bind(channel=notice.channel)
    message = build_closeout_message(notice.job_number)
    return _post(slack_client, notice.channel, message["text"], log, success="Closeout message sent")


def service_type_values(value: Any) -> List[str]:
    """Normalise a CRM option field (label, id, list or CSV) to strings."""

    if value is None:
        return []
    if isinstance(value, Mapping):
        value = value.get("label") or value.get("name") or value.get("id")
        return service_type_values(value)
    if isinstance(value, (list, tuple)):
        values: List[str] = []
        for item in value:
            values.extend(service_type_values(item))
        return values
    return [part.strip() for part in str(value).split(",") if part.strip()]


def is_allowlisted(values: Iterable[str], allowlist: Iterable[str]) -> bool:
    allowed = {item.strip().casefold() for item in allowlist if item and item.strip()}
    return any(value.casefold() in allowed for value in values)


def handle_deal_created(
    payload: Any,
    *,
    crm_client: PipedriveClient,
    service_field: str,
    allowlist: Iterable[str],
    subject: str,
    today: Callable[[], date],
) -> WebhookResponse:
    """Create a CRM task due today for deals of an allowlisted service type.

    Deals outside the allowlist are the common case and answer 200 without
    touching the CRM.
    """

    log = structlog.get_logger().bind(webhook="deal_created_task")
    current = payload.get("current") if isinstance(payload, Mapping) else None
    deal_id = current.get("id") if isinstance(current, Mapping) else None
    if deal_id is None or isinstance(deal_id, bool) or not str(deal_id).strip().isdigit():
        log.warning("webhook_missing_deal_data")
        return WebhookResponse(400, {"ok": False, "error": "missing_deal_data"})

    deal_id = str(deal_id).strip()
    values = service_type_values(current.get(service_field))
    log = log.bind(deal_id=deal_id, service_types=values)

    if not is_allowlisted(values, allowlist):
        log.info("deal_task_skipped", reason="service_type_not_allowlisted")
        return WebhookResponse(200, {"ok": True, "status": "skipped"})

    try:
        activity = crm_client.create_activity(deal_id=deal_id, subject=subject, due_date=today())
    except CrmError as exc:
        log.error("deal_task_failed", error=str(exc), status_code=exc.status_code)
        return WebhookResponse(500, {"ok": False, "error": "crm_activity_failed"})

    log.info("deal_task_created", activity_id=activity.get("id"))
    return WebhookResponse(200, {"ok": True, "status": "created", "activity_id": activity.get("id")})
