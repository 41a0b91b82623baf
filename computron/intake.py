"""Intake workflow run once per new job channel."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, List, Mapping

import structlog

from .crm import CrmError, PipedriveClient
from .jobs import extract_deal_id, job_number_for
from .messages import DEFAULT_CUSTOMER, build_crew_chief_prompt, build_loss_note_message
from .roster import build_invite_roster, lookup_estimator
from .slack_client import ALREADY_MEMBER_ERRORS, SLACK_CALL_ERRORS, SlackClient, slack_error_code, slack_status_code


@dataclass(frozen=True)
class IntakeOptions:
    auto_invite: bool = True
    durable_marker: bool = True
    estimator_lookup: bool = True
    marker: str = "[computron:intake]"
    auto_invite_user_ids: tuple[str, ...] = ()
    estimator_user_map: Mapping[str, str] = field(default_factory=dict)


@dataclass
class IntakeResult:
    channel_id: str
    job_number: str
    deal_id: str | None
    customer_name: str
    form_message_ts: str | None = None
    pinned: bool = False
    prompt_posted: bool = False
    invited: List[str] = field(default_factory=list)


class IntakeOrchestrator:
    """Post the loss note form, the crew chief prompt and invite the roster.

    Every step after resolving the channel is fail-soft: a CRM outage yields
    the default customer label, and invite or prompt failures never prevent
    the form message (which carries the durable marker) from being posted.
    """

    def __init__(
        self,
        *,
        slack_client: SlackClient,
        crm_client: PipedriveClient,
        options: IntakeOptions | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._slack = slack_client
        self._crm = crm_client
        self._options = options or IntakeOptions()
        self._sleep = sleep

    @property
    def options(self) -> IntakeOptions:
        return self._options

    def start_after_delay(self, channel_id: str, delay: float) -> IntakeResult | None:
        """Wait for Slack's own channel setup to settle, then run the intake."""

        structlog.get_logger().info("intake_delayed", channel=channel_id, delay_seconds=delay)
        self._sleep(delay)
        return self.run_intake(channel_id)

    def run_intake(self, channel_id: str) -> IntakeResult | None:
        log = structlog.get_logger().bind(channel=channel_id)

        try:
            channel_name = self._slack.channel_name(channel_id)
        except SLACK_CALL_ERRORS as exc:
            log.error(
                "intake_aborted",
                reason="channel_lookup_failed",
                error=slack_error_code(exc),
                status_code=slack_status_code(exc),
            )
            return None

        deal_id = extract_deal_id(channel_name)
        job_number = job_number_for(channel_name)
        log = log.bind(job_number=job_number, deal_id=deal_id)
        log.info("intake_started")

        customer_name = DEFAULT_CUSTOMER
        estimator: str | None = None
        if deal_id:
            try:
                deal = self._crm.get_deal(deal_id)
            except CrmError as exc:
                log.warning("crm_fetch_failed", error=str(exc), status_code=exc.status_code)
            else:
                customer_name = deal.person_name or DEFAULT_CUSTOMER
                estimator = deal.estimator

        result = IntakeResult(
            channel_id=channel_id,
            job_number=job_number,
            deal_id=deal_id,
            customer_name=customer_name,
        )

        self._post_form_message(result, log)
        self._post_crew_chief_prompt(result, log)

        if self._options.auto_invite:
            estimator_user_id = None
            if self._options.estimator_lookup:
                estimator_user_id = lookup_estimator(estimator, self._options.estimator_user_map)
                if estimator and estimator_user_id is None:
                    log.info("estimator_unmapped", estimator=estimator)
            self._invite_roster(result, estimator_user_id, log)

        log.info(
            "intake_completed",
            form_posted=result.form_message_ts is not None,
            prompt_posted=result.prompt_posted,
            invited=result.invited,
        )
        return result

    def _post_form_message(self, result: IntakeResult, log) -> None:
        marker = self._options.marker if self._options.durable_marker else None
        payload = build_loss_note_message(
            job_number=result.job_number,
            customer_name=result.customer_name,
            marker=marker,
        )
        try:
            response = self._slack.post_message(channel=result.channel_id, text=payload["text"])
        except SLACK_CALL_ERRORS as exc:
            log.error(
                "form_message_failed",
                error=slack_error_code(exc),
                status_code=slack_status_code(exc),
            )
            return

        result.form_message_ts = response.get("ts")
        if not self._options.durable_marker or not result.form_message_ts:
            return

        try:
            self._slack.pin_message(channel=result.channel_id, ts=result.form_message_ts)
            result.pinned = True
        except SLACK_CALL_ERRORS as exc:
            log.debug("form_message_pin_failed", error=slack_error_code(exc))

    def _post_crew_chief_prompt(self, result: IntakeResult, log) -> None:
        payload = build_crew_chief_prompt()
        try:
            self._slack.post_message(channel=result.channel_id, text=payload["text"], blocks=payload["blocks"])
            result.prompt_posted = True
        except SLACK_CALL_ERRORS as exc:
            log.error("crew_chief_prompt_failed", error=slack_error_code(exc))

    def _invite_roster(self, result: IntakeResult, estimator_user_id: str | None, log) -> None:
        try:
            bot_user_id = self._slack.bot_user_id()
        except SLACK_CALL_ERRORS as exc:
            log.warning("bot_identity_lookup_failed", error=slack_error_code(exc))
            bot_user_id = None

        roster = build_invite_roster(
            self._options.auto_invite_user_ids,
            estimator_user_id=estimator_user_id,
            exclude=[bot_user_id],
        )
        for user_id in roster:
            try:
                self._slack.invite_user(channel=result.channel_id, user_id=user_id)
            except SLACK_CALL_ERRORS as exc:
                error = slack_error_code(exc)
                if error not in ALREADY_MEMBER_ERRORS:
                    log.warning("invite_failed", user_id=user_id, error=error)
                continue
            result.invited.append(user_id)
