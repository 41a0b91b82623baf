"""Construction of the collaborators shared by the Slack listeners and routes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from slack_sdk import WebClient

from .config import AppSettings
from .crew_chief import CrewChiefAssigner
from .crm import PipedriveClient
from .idempotency import InMemoryIdempotencyStore, IntakeGuard, MarkerCompletionChecker, NeverCompleted
from .intake import IntakeOptions, IntakeOrchestrator
from .slack_client import SlackClient


@dataclass
class Services:
    settings: AppSettings
    slack: SlackClient
    crm: PipedriveClient
    guard: IntakeGuard
    intake: IntakeOrchestrator
    crew_chief: CrewChiefAssigner

    def today(self) -> date:
        """Return today's date in the configured activity timezone."""

        return datetime.now(ZoneInfo(self.settings.activity_timezone)).date()


def build_services(settings: AppSettings, web_client: WebClient) -> Services:
    slack = SlackClient(client=web_client, bot_user_id=settings.bot_user_id)
    crm = PipedriveClient(
        api_token=settings.pipedrive_api_token,
        base_url=settings.pipedrive_base_url,
        timeout=settings.http_timeout_seconds,
        estimator_field=settings.estimator_field,
    )

    if settings.enable_durable_marker:
        completion = MarkerCompletionChecker(
            slack,
            marker=settings.intake_marker,
            history_limit=settings.history_scan_limit,
        )
    else:
        completion = NeverCompleted()

    store = InMemoryIdempotencyStore(
        cooldown=timedelta(seconds=settings.cooldown_seconds),
        recent_window=timedelta(seconds=settings.recent_guard_seconds),
    )
    options = IntakeOptions(
        auto_invite=settings.enable_auto_invite,
        durable_marker=settings.enable_durable_marker,
        estimator_lookup=settings.enable_estimator_lookup,
        marker=settings.intake_marker,
        auto_invite_user_ids=tuple(settings.auto_invite_user_ids),
        estimator_user_map=dict(settings.estimator_user_map),
    )

    return Services(
        settings=settings,
        slack=slack,
        crm=crm,
        guard=IntakeGuard(store=store, completion=completion),
        intake=IntakeOrchestrator(slack_client=slack, crm_client=crm, options=options),
        crew_chief=CrewChiefAssigner(slack_client=slack, crm_client=crm),
    )
