"""Tests for the connect-request executor."""

import pytest

from browser_fakes import FakeElement
from outreach_core.domain.errors import AMBIGUOUS_OUTCOME, ElementNotFound, ValidationError
from outreach_core.domain.services.connections import ConnectionRequestRepository
from outreach_core.domain.services.executors.connect_request import (
    ALREADY_CONNECTED,
    ALREADY_PENDING,
    CONNECT_AVAILABLE,
    FOLLOW_ONLY,
    ConnectRequestExecutor,
    RelationshipSignals,
    classify_relationship,
)
from outreach_core.providers.linkedin import descriptors as d

PROFILE_URL = "https://www.linkedin.com/in/jdoe/"


@pytest.fixture
def executor(executor_context):
    return ConnectRequestExecutor(executor_context)


@pytest.fixture
def requests(document_store, account):
    return ConnectionRequestRepository(document_store, account)


def connect_page(with_note_button: bool = True, closes_on_send: bool = True) -> dict:
    page = {
        d.PROFILE_LANDMARK: FakeElement("Jane Doe"),
        d.CONNECT_ACTION: FakeElement("Connect"),
        d.NOTE_INPUT: FakeElement(),
    }
    if with_note_button:
        page[d.ADD_NOTE] = FakeElement("Add a note")

    def close_dialog(session):
        session.current_page.pop(d.SEND_INVITATION, None)

    page[d.SEND_INVITATION] = FakeElement("Send", on_click=close_dialog if closes_on_send else None)
    return page


class TestClassifyRelationship:
    def test_first_degree_wins(self):
        signals = RelationshipSignals(first_degree=True, pending=True, connect=True)
        assert classify_relationship(signals) == ALREADY_CONNECTED

    def test_pending_before_connect(self):
        assert classify_relationship(RelationshipSignals(pending=True, connect=True)) == ALREADY_PENDING

    def test_follow_without_connect(self):
        assert classify_relationship(RelationshipSignals(follow=True)) == FOLLOW_ONLY

    def test_follow_with_connect_is_connectable(self):
        signals = RelationshipSignals(follow=True, connect=True)
        assert classify_relationship(signals) == CONNECT_AVAILABLE

    def test_nothing_recognised(self):
        assert classify_relationship(RelationshipSignals()) is None


class TestValidate:
    def test_requires_profile_path(self):
        with pytest.raises(ValidationError, match="Invalid profile URL"):
            ConnectRequestExecutor.validate({"profile_url": "https://www.linkedin.com/company/acme"})

    def test_note_length_limit(self):
        with pytest.raises(ValidationError, match="too long"):
            ConnectRequestExecutor.validate({"profile_url": PROFILE_URL, "note": "x" * 301})

    def test_empty_note_becomes_none(self):
        payload = ConnectRequestExecutor.validate({"profile_url": PROFILE_URL, "note": ""})
        assert payload["note"] is None


class TestConnectRequestExecutor:
    @pytest.mark.asyncio
    async def test_sends_request_with_note(self, executor, fake_session, requests):
        fake_session.pages[PROFILE_URL] = connect_page()

        result = await executor("connect_1", {"profile_url": PROFILE_URL, "note": "Hi Jane"})

        assert result["status"] == "sent"
        assert result["note_included"] is True
        assert result["warnings"] == []
        assert fake_session.clicked(d.CONNECT_ACTION, PROFILE_URL) == 1
        assert fake_session.pages[PROFILE_URL][d.NOTE_INPUT].text == "Hi Jane"
        assert fake_session.closed is True

        record = requests.get(PROFILE_URL)
        assert record["status"] == "sent"
        assert record["note"] == "Hi Jane"
        assert record["jobId"] == "connect_1"
        assert record["sentAt"]

    @pytest.mark.asyncio
    async def test_sends_without_note_when_add_note_missing(self, executor, fake_session):
        fake_session.pages[PROFILE_URL] = connect_page(with_note_button=False)

        result = await executor("connect_1", {"profile_url": PROFILE_URL, "note": "Hi Jane"})

        assert result["status"] == "sent"
        assert result["note_included"] is False

    @pytest.mark.asyncio
    async def test_open_dialog_after_send_is_ambiguous(self, executor, fake_session):
        fake_session.pages[PROFILE_URL] = connect_page(closes_on_send=False)

        result = await executor("connect_1", {"profile_url": PROFILE_URL})

        assert result["status"] == "sent"
        assert result["warnings"] == [AMBIGUOUS_OUTCOME]

    @pytest.mark.asyncio
    async def test_pending_profile_not_clicked(self, executor, fake_session, requests):
        connect = FakeElement("Connect")
        fake_session.pages[PROFILE_URL] = {
            d.PROFILE_LANDMARK: FakeElement("Jane Doe"),
            d.PENDING_INDICATOR: FakeElement("Pending"),
            d.CONNECT_ACTION: connect,
        }

        result = await executor("connect_1", {"profile_url": PROFILE_URL})

        assert result["status"] == ALREADY_PENDING
        assert connect.clicks == 0
        assert requests.get(PROFILE_URL)["status"] == ALREADY_PENDING

    @pytest.mark.asyncio
    async def test_connect_found_in_overflow_menu(self, executor, fake_session):
        page = connect_page()
        connect = page.pop(d.CONNECT_ACTION)

        def open_menu(session):
            session.current_page[d.CONNECT_ACTION] = connect

        page[d.FOLLOW_LABEL] = FakeElement("Follow")
        page[d.MORE_ACTIONS] = FakeElement("More", on_click=open_menu)
        fake_session.pages[PROFILE_URL] = page

        result = await executor("connect_1", {"profile_url": PROFILE_URL})

        assert result["status"] == "sent"
        assert connect.clicks == 1

    @pytest.mark.asyncio
    async def test_settled_request_skipped_without_browser(
        self, executor, executor_context, fake_session, requests
    ):
        requests.record(PROFILE_URL, "sent", job_id="earlier")

        result = await executor("connect_2", {"profile_url": PROFILE_URL})

        assert result["skipped"] is True
        assert result["status"] == "sent"
        assert executor_context.auth.acquired == 0
        assert fake_session.navigations == []

    @pytest.mark.asyncio
    async def test_no_action_available_fails_with_screenshot(self, executor, fake_session):
        fake_session.pages[PROFILE_URL] = {d.PROFILE_LANDMARK: FakeElement("Jane Doe")}

        with pytest.raises(ElementNotFound) as exc_info:
            await executor("connect_1", {"profile_url": PROFILE_URL})

        assert exc_info.value.retryable is False
        assert exc_info.value.target == PROFILE_URL
        assert len(fake_session.screenshots) == 1
        assert fake_session.closed is True
