"""Thin wrapper utilities around the Slack WebClient."""

from __future__ import annotations

from typing import Any, List, Mapping, Sequence

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

# Invite/join rejections that mean the desired end state already holds.
ALREADY_MEMBER_ERRORS = frozenset({"already_in_channel", "cant_invite_self"})
PERMISSION_ERRORS = frozenset(
    {"not_in_channel", "restricted_action", "cant_invite", "missing_scope", "not_allowed_token_type"}
)

# Transport failures (timeouts, refused connections) surface as OSError subclasses.
SLACK_CALL_ERRORS = (SlackApiError, OSError)


def slack_error_code(exc: Exception) -> str:
    """Return the Slack ``error`` code carried by *exc*, or its repr for transport failures."""

    if not isinstance(exc, SlackApiError):
        return repr(exc)
    response = getattr(exc, "response", None)
    if response is None:
        return str(exc)
    try:
        return response.get("error") or str(exc)
    except AttributeError:
        return str(exc)


def slack_status_code(exc: Exception) -> int | None:
    response = getattr(exc, "response", None)
    return getattr(response, "status_code", None) if response is not None else None


class SlackClient:
    """Encapsulate Slack WebClient interactions for easier testing."""

    def __init__(
        self,
        *,
        token: str | None = None,
        client: WebClient | None = None,
        timeout: float = 10,
        bot_user_id: str | None = None,
    ) -> None:
        if client is None and token is None:
            raise ValueError("Either an instantiated client or a bot token must be provided.")

        self._client = client or WebClient(token=token, timeout=int(timeout))
        self._bot_user_id = bot_user_id

    @property
    def client(self) -> WebClient:
        """Expose the underlying WebClient for advanced use cases."""

        return self._client

    def post_message(
        self,
        *,
        channel: str,
        text: str,
        blocks: Sequence[Mapping[str, Any]] | None = None,
    ) -> Mapping[str, Any]:
        """Post a message (optionally with Block Kit content) to a channel."""

        if blocks is None:
            return self._client.chat_postMessage(channel=channel, text=text)
        return self._client.chat_postMessage(channel=channel, text=text, blocks=list(blocks))

    def post_ephemeral(self, *, channel: str, user: str, text: str) -> Mapping[str, Any]:
        return self._client.chat_postEphemeral(channel=channel, user=user, text=text)

    def pin_message(self, *, channel: str, ts: str) -> Mapping[str, Any]:
        return self._client.pins_add(channel=channel, timestamp=ts)

    def channel_name(self, channel: str) -> str | None:
        """Return the channel's name, or None when Slack omits it."""

        response = self._client.conversations_info(channel=channel)
        return (response.get("channel") or {}).get("name")

    def recent_messages(self, channel: str, *, limit: int) -> List[Mapping[str, Any]]:
        response = self._client.conversations_history(channel=channel, limit=limit)
        return list(response.get("messages") or [])

    def pinned_messages(self, channel: str) -> List[Mapping[str, Any]]:
        """Return the message payloads of the channel's pinned items."""

        response = self._client.pins_list(channel=channel)
        messages: List[Mapping[str, Any]] = []
        for item in response.get("items") or []:
            message = item.get("message")
            if message:
                messages.append(message)
        return messages

    def join_channel(self, channel: str) -> Mapping[str, Any]:
        return self._client.conversations_join(channel=channel)

    def invite_user(self, *, channel: str, user_id: str) -> Mapping[str, Any]:
        return self._client.conversations_invite(channel=channel, users=user_id)

    def user_display_name(self, user_id: str) -> str:
        """Return the user's real name, falling back to display name then mention."""

        response = self._client.users_info(user=user_id)
        user = response.get("user") or {}
        profile = user.get("profile") or {}
        return user.get("real_name") or profile.get("display_name") or f"<@{user_id}>"

    def bot_user_id(self) -> str | None:
        """Return the bot's own user id, resolving it with ``auth.test`` once."""

        if self._bot_user_id is None:
            response = self._client.auth_test()
            self._bot_user_id = response.get("user_id")
        return self._bot_user_id
