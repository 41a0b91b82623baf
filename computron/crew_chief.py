"""Handling for the crew chief user picker."""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from .crm import CrmError, PipedriveClient
from .jobs import extract_deal_id
from .messages import build_crew_chief_confirmation, build_permission_notice, crew_chief_note
from .slack_client import ALREADY_MEMBER_ERRORS, PERMISSION_ERRORS, SLACK_CALL_ERRORS, SlackClient, slack_error_code

# Private channels cannot be joined; the bot must already be a member there.
_JOIN_TOLERATED_ERRORS = frozenset({"already_in_channel", "method_not_supported_for_channel_type"})


@dataclass
class CrewChiefResult:
    channel_id: str
    crew_chief_id: str
    crew_chief_name: str
    invited: bool = False
    confirmed: bool = False
    note_logged: bool = False
    permission_notice_sent: bool = False


class CrewChiefAssigner:
    """Invite the selected crew chief, confirm in channel and log to the CRM."""

    def __init__(self, *, slack_client: SlackClient, crm_client: PipedriveClient) -> None:
        self._slack = slack_client
        self._crm = crm_client

    def assign(self, *, channel_id: str, crew_chief_id: str, acting_user_id: str | None = None) -> CrewChiefResult:
        log = structlog.get_logger().bind(channel=channel_id, crew_chief=crew_chief_id)

        try:
            self._slack.join_channel(channel_id)
        except SLACK_CALL_ERRORS as exc:
            error = slack_error_code(exc)
            if error not in _JOIN_TOLERATED_ERRORS:
                log.warning("bot_join_failed", error=error)

        try:
            crew_chief_name = self._slack.user_display_name(crew_chief_id)
        except SLACK_CALL_ERRORS as exc:
            log.warning("crew_chief_lookup_failed", error=slack_error_code(exc))
            crew_chief_name = f"<@{crew_chief_id}>"

        result = CrewChiefResult(channel_id=channel_id, crew_chief_id=crew_chief_id, crew_chief_name=crew_chief_name)

        try:
            self._slack.invite_user(channel=channel_id, user_id=crew_chief_id)
            result.invited = True
        except SLACK_CALL_ERRORS as exc:
            error = slack_error_code(exc)
            if error in ALREADY_MEMBER_ERRORS:
                result.invited = True
            elif error in PERMISSION_ERRORS:
                log.warning("crew_chief_invite_forbidden", error=error)
                result.permission_notice_sent = self._notify_permission_problem(
                    channel_id, acting_user_id, crew_chief_id, log
                )
            else:
                log.warning("crew_chief_invite_failed", error=error)

        payload = build_crew_chief_confirmation(crew_chief_name)
        try:
            self._slack.post_message(channel=channel_id, text=payload["text"])
            result.confirmed = True
        except SLACK_CALL_ERRORS as exc:
            log.error("crew_chief_confirmation_failed", error=slack_error_code(exc))

        result.note_logged = self._log_to_crm(channel_id, crew_chief_name, log)
        log.info(
            "crew_chief_assigned",
            crew_chief_name=crew_chief_name,
            confirmed=result.confirmed,
            note_logged=result.note_logged,
        )
        return result

    def _notify_permission_problem(self, channel_id: str, acting_user_id: str | None, crew_chief_id: str, log) -> bool:
        if not acting_user_id:
            return False
        try:
            self._slack.post_ephemeral(
                channel=channel_id,
                user=acting_user_id,
                text=build_permission_notice(crew_chief_id),
            )
        except SLACK_CALL_ERRORS as exc:
            log.warning("permission_notice_failed", error=slack_error_code(exc))
            return False
        return True

    def _log_to_crm(self, channel_id: str, crew_chief_name: str, log) -> bool:
        try:
            channel_name = self._slack.channel_name(channel_id)
        except SLACK_CALL_ERRORS as exc:
            log.warning("crew_chief_channel_lookup_failed", error=slack_error_code(exc))
            return False

        deal_id = extract_deal_id(channel_name)
        if not deal_id:
            return False

        try:
            self._crm.create_note(deal_id=deal_id, content=crew_chief_note(crew_chief_name))
        except CrmError as exc:
            log.error("crm_note_failed", deal_id=deal_id, error=str(exc), status_code=exc.status_code)
            return False

        log.info("crm_note_created", deal_id=deal_id)
        return True
