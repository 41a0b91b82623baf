"""Tests for the intake workflow orchestrator."""

from urllib.error import URLError

from slack_sdk.errors import SlackApiError

from computron.crm import CrmError, DealRecord
from computron.intake import IntakeOptions, IntakeOrchestrator
from computron.messages import CREW_CHIEF_ACTION_ID
from computron.slack_client import SlackClient

MARKER = "[computron:intake]"


class DummyResponse(dict):
    def __init__(self, error: str, status_code: int = 200) -> None:
        super().__init__({"ok": False, "error": error})
        self.status_code = status_code


class DummyWebClient:
    def __init__(self, *, channel_name="deal4821", errors=None, invite_errors=None):
        self.channel_name = channel_name
        self.errors = errors or {}
        self.invite_errors = invite_errors or {}
        self.post_calls = []
        self.pin_calls = []
        self.invite_calls = []

    def _maybe_fail(self, method):
        if isinstance(self.errors.get(method), Exception):
            raise self.errors[method]
        if method in self.errors:
            raise SlackApiError(f"{method} failed", DummyResponse(self.errors[method]))

    def conversations_info(self, **kwargs):
        self._maybe_fail("conversations_info")
        return {"ok": True, "channel": {"id": kwargs["channel"], "name": self.channel_name}}

    def chat_postMessage(self, **kwargs):
        self.post_calls.append(kwargs)
        if "blocks" not in kwargs:
            self._maybe_fail("chat_postMessage")
        else:
            self._maybe_fail("chat_postMessage_blocks")
        return {"ok": True, "channel": kwargs["channel"], "ts": f"1700000000.00010{len(self.post_calls)}"}

    def pins_add(self, **kwargs):
        self.pin_calls.append(kwargs)
        self._maybe_fail("pins_add")
        return {"ok": True}

    def conversations_invite(self, **kwargs):
        self.invite_calls.append(kwargs)
        error = self.invite_errors.get(kwargs["users"])
        if isinstance(error, Exception):
            raise error
        if error:
            raise SlackApiError("invite failed", DummyResponse(error))
        return {"ok": True}

    def auth_test(self, **kwargs):
        return {"ok": True, "user_id": "UBOT"}


class DummyCrm:
    def __init__(self, deal=None, error=None):
        self.deal = deal
        self.error = error
        self.calls = []

    def get_deal(self, deal_id):
        self.calls.append(deal_id)
        if self.error:
            raise self.error
        return self.deal


def _orchestrator(web, crm, **option_overrides):
    options = IntakeOptions(**{"marker": MARKER, **option_overrides})
    return IntakeOrchestrator(slack_client=SlackClient(client=web), crm_client=crm, options=options)


def test_run_intake_posts_form_and_prompt():
    web = DummyWebClient()
    crm = DummyCrm(DealRecord(id="4821", person_name="Ada Lovelace"))

    result = _orchestrator(web, crm).run_intake("C1")

    assert crm.calls == ["4821"]
    assert len(web.post_calls) == 2
    form, prompt = web.post_calls
    assert form["text"].startswith(MARKER)
    assert "&entry.703689566=deal4821&entry.1275810596=Ada%20Lovelace" in form["text"]
    assert prompt["blocks"][0]["accessory"]["action_id"] == CREW_CHIEF_ACTION_ID
    assert web.pin_calls == [{"channel": "C1", "timestamp": "1700000000.000101"}]
    assert result.customer_name == "Ada Lovelace"
    assert result.pinned is True
    assert result.prompt_posted is True


def test_crm_failure_defaults_customer_label():
    web = DummyWebClient()
    crm = DummyCrm(error=CrmError("boom", status_code=500))

    result = _orchestrator(web, crm).run_intake("C1")

    assert result.customer_name == "Customer"
    assert "&entry.1275810596=Customer" in web.post_calls[0]["text"]
    assert len(web.post_calls) == 2


def test_channel_without_identifier_uses_unknown_and_skips_crm():
    web = DummyWebClient(channel_name="general")
    crm = DummyCrm()

    result = _orchestrator(web, crm).run_intake("C1")

    assert crm.calls == []
    assert result.job_number == "UNKNOWN"
    assert "entry.703689566=UNKNOWN" in web.post_calls[0]["text"]


def test_channel_lookup_failure_aborts_without_posting():
    web = DummyWebClient(errors={"conversations_info": "channel_not_found"})

    result = _orchestrator(web, DummyCrm()).run_intake("C1")

    assert result is None
    assert web.post_calls == []


def test_pin_failure_is_ignored():
    web = DummyWebClient(errors={"pins_add": "not_pinnable"})

    result = _orchestrator(web, DummyCrm(DealRecord(id="4821", person_name=None))).run_intake("C1")

    assert result.pinned is False
    assert result.prompt_posted is True
    assert result.customer_name == "Customer"


def test_prompt_failure_does_not_block_form_message():
    web = DummyWebClient(errors={"chat_postMessage_blocks": "invalid_blocks"})

    result = _orchestrator(web, DummyCrm(DealRecord(id="4821", person_name="Ada"))).run_intake("C1")

    assert result.form_message_ts is not None
    assert result.prompt_posted is False


def test_disabled_marker_omits_marker_and_pin():
    web = DummyWebClient()

    _orchestrator(web, DummyCrm(DealRecord(id="4821", person_name="Ada")), durable_marker=False).run_intake("C1")

    assert MARKER not in web.post_calls[0]["text"]
    assert web.pin_calls == []


def test_roster_invites_fixed_users_and_estimator():
    web = DummyWebClient(invite_errors={"U1": "already_in_channel", "U2": "user_not_found"})
    crm = DummyCrm(DealRecord(id="4821", person_name="Ada", estimator="Jane Doe"))

    result = _orchestrator(
        web,
        crm,
        auto_invite_user_ids=("U1", "U2", "UBOT"),
        estimator_user_map={"jane doe": "U3"},
    ).run_intake("C1")

    assert [call["users"] for call in web.invite_calls] == ["U1", "U2", "U3"]
    assert result.invited == ["U3"]


def test_estimator_lookup_disabled_invites_fixed_users_only():
    web = DummyWebClient()
    crm = DummyCrm(DealRecord(id="4821", person_name="Ada", estimator="Jane Doe"))

    _orchestrator(
        web,
        crm,
        auto_invite_user_ids=("U1",),
        estimator_user_map={"Jane Doe": "U3"},
        estimator_lookup=False,
    ).run_intake("C1")

    assert [call["users"] for call in web.invite_calls] == ["U1"]


def test_auto_invite_disabled_skips_invites():
    web = DummyWebClient()

    _orchestrator(web, DummyCrm(DealRecord(id="4821", person_name="Ada")), auto_invite=False, auto_invite_user_ids=("U1",)).run_intake("C1")

    assert web.invite_calls == []


def test_start_after_delay_sleeps_before_running():
    web = DummyWebClient()
    events = []

    def fake_sleep(seconds):
        events.append(("sleep", seconds, len(web.post_calls)))

    orchestrator = IntakeOrchestrator(
        slack_client=SlackClient(client=web),
        crm_client=DummyCrm(DealRecord(id="4821", person_name="Ada")),
        options=IntakeOptions(marker=MARKER),
        sleep=fake_sleep,
    )

    orchestrator.start_after_delay("C1", 5)

    assert events == [("sleep", 5, 0)]
    assert len(web.post_calls) == 2


def test_pin_timeout_does_not_skip_prompt_or_invites():
    web = DummyWebClient(errors={"pins_add": TimeoutError("The read operation timed out")})

    result = _orchestrator(
        web,
        DummyCrm(DealRecord(id="4821", person_name="Ada")),
        auto_invite_user_ids=("U1",),
    ).run_intake("C1")

    assert len(web.post_calls) == 2
    assert result.pinned is False
    assert result.prompt_posted is True
    assert result.invited == ["U1"]


def test_transport_failures_in_prompt_and_invites_are_contained():
    web = DummyWebClient(
        errors={"chat_postMessage_blocks": URLError("connection reset")},
        invite_errors={"U1": TimeoutError("The read operation timed out")},
    )

    result = _orchestrator(
        web,
        DummyCrm(DealRecord(id="4821", person_name="Ada")),
        auto_invite_user_ids=("U1", "U2"),
    ).run_intake("C1")

    assert result.form_message_ts is not None
    assert result.prompt_posted is False
    assert [call["users"] for call in web.invite_calls] == ["U1", "U2"]
    assert result.invited == ["U2"]


def test_channel_lookup_timeout_aborts_without_posting():
    web = DummyWebClient(errors={"conversations_info": TimeoutError("timed out")})

    assert _orchestrator(web, DummyCrm()).run_intake("C1") is None
    assert web.post_calls == []
