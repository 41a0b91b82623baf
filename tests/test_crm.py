"""Tests for the Pipedrive client."""

from datetime import date

import pytest
import requests

from computron.crm import CrmError, PipedriveClient


class DummyHttpResponse:
    def __init__(self, payload=None, status_code=200, invalid_json=False):
        self._payload = payload
        self.status_code = status_code
        self._invalid_json = invalid_json

    def json(self):
        if self._invalid_json:
            raise ValueError("not json")
        return self._payload


class DummySession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error:
            raise self.error
        return self.response


def _client(session, **kwargs):
    return PipedriveClient(api_token="pd-token", session=session, timeout=7, **kwargs)


def test_get_deal_reads_person_and_estimator():
    session = DummySession(
        DummyHttpResponse(
            {
                "success": True,
                "data": {"id": 4821, "person_name": "Ada Lovelace", "abc123": {"id": 5, "name": "Jane Doe"}},
            }
        )
    )
    client = _client(session, estimator_field="abc123")

    deal = client.get_deal("4821")

    assert deal.id == "4821"
    assert deal.person_name == "Ada Lovelace"
    assert deal.estimator == "Jane Doe"
    method, url, kwargs = session.calls[0]
    assert method == "GET"
    assert url == "https://api.pipedrive.com/v1/deals/4821"
    assert kwargs["params"] == {"api_token": "pd-token"}
    assert kwargs["timeout"] == 7


def test_get_deal_without_estimator_field():
    session = DummySession(DummyHttpResponse({"success": True, "data": {"id": 1, "person_name": None}}))

    deal = _client(session).get_deal("1")

    assert deal.person_name is None
    assert deal.estimator is None


def test_create_note_posts_content():
    session = DummySession(DummyHttpResponse({"success": True, "data": {"id": 77}}))

    data = _client(session).create_note(deal_id="4821", content="Crew Chief assigned is: Sam")

    assert data == {"id": 77}
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "https://api.pipedrive.com/v1/notes")
    assert kwargs["json"] == {"content": "Crew Chief assigned is: Sam", "deal_id": 4821}


def test_create_activity_sends_due_date():
    session = DummySession(DummyHttpResponse({"success": True, "data": {"id": 9}}, status_code=201))

    _client(session).create_activity(deal_id="12", subject="Inspect", due_date=date(2026, 10, 18))

    _, url, kwargs = session.calls[0]
    assert url.endswith("/activities")
    assert kwargs["json"] == {"subject": "Inspect", "type": "task", "due_date": "2026-10-18", "deal_id": 12}


@pytest.mark.parametrize(
    "session",
    [
        DummySession(error=requests.Timeout("slow")),
        DummySession(DummyHttpResponse(invalid_json=True, status_code=502)),
        DummySession(DummyHttpResponse({"success": False, "error": "Deal not found"}, status_code=404)),
        DummySession(DummyHttpResponse({"success": False, "error": "nope"}, status_code=200)),
    ],
)
def test_failures_raise_crm_error(session):
    with pytest.raises(CrmError):
        _client(session).get_deal("1")


def test_crm_error_carries_status_code():
    session = DummySession(DummyHttpResponse({"success": False, "error": "Unauthorized"}, status_code=401))

    with pytest.raises(CrmError) as err:
        _client(session).create_note(deal_id="1", content="x")

    assert err.value.status_code == 401


def test_api_token_required():
    with pytest.raises(ValueError):
        PipedriveClient(api_token="")
