"""Integration tests for the queue control API."""

import pytest
from httpx import AsyncClient

from outreach_core.domain.models import TaskKind
from outreach_core.domain.services.jobs import JobService

JANE = "https://www.linkedin.com/in/jane-doe/"


@pytest.fixture(autouse=True)
def route_settings(monkeypatch, test_settings):
    """Bulk staggering reads the test settings."""
    monkeypatch.setattr("outreach_core.api.routes.queues.get_settings", lambda: test_settings)


def ledger_job(db_session, job_id):
    db_session.expire_all()
    return JobService(db_session).get_job(job_id)


class TestSingleAdmission:
    @pytest.mark.asyncio
    async def test_send_connect_request(self, client: AsyncClient, db_session, mock_dispatcher):
        response = await client.post(
            "/connect/send-connect-request",
            json={"profileUrl": JANE, "message": "Hi Jane"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["jobId"].startswith("connect_")
        assert body["target"] == JANE
        assert body["queuePosition"] == 1
        assert body["estimatedDelay"] == "30s - 2min"
        mock_dispatcher.wake.assert_called_once_with(TaskKind.CONNECT_REQUEST, countdown=0.0)

        job = ledger_job(db_session, body["jobId"])
        assert job.queue_name == TaskKind.CONNECT_REQUEST
        assert job.payload_json["note"] == "Hi Jane"
        assert job.payload_json["requested_at"]
        assert job.max_attempts == 1

    @pytest.mark.asyncio
    async def test_missing_profile_url_is_400(self, client: AsyncClient, mock_dispatcher):
        response = await client.post("/connect/send-connect-request", json={})

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["success"] is False
        assert detail["error"] == "Validation failed"
        assert detail["details"] == ["profile_url is required"]
        assert detail["timestamp"]
        mock_dispatcher.wake.assert_not_called()

    @pytest.mark.asyncio
    async def test_non_profile_url_is_400(self, client: AsyncClient):
        response = await client.post(
            "/connect/send-connect-request",
            json={"profileUrl": "https://www.linkedin.com/company/acme/"},
        )

        assert response.status_code == 400
        assert "Invalid profile URL" in response.json()["detail"]["details"][0]

    @pytest.mark.asyncio
    async def test_malformed_field_is_400(self, client: AsyncClient):
        response = await client.post(
            "/reply/send-reply",
            json={"threadId": "2-abc", "message": "Hi", "priority": "urgent"},
        )

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "Validation failed"
        assert detail["details"][0].startswith("priority")

    @pytest.mark.asyncio
    async def test_reply_for_other_bot_is_400(self, client: AsyncClient, mock_dispatcher):
        response = await client.post(
            "/reply/send-reply",
            json={"threadId": "2-abc", "message": "Hi", "botId": "other@example.com_secret"},
        )

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["target"] == "2-abc"
        assert "does not belong" in detail["details"][0]
        mock_dispatcher.wake.assert_not_called()

    @pytest.mark.asyncio
    async def test_status_check_targets(self, client: AsyncClient):
        single = await client.post("/status/send-status-check", json={"profileUrl": JANE})
        sweep = await client.post("/status/send-status-check")

        assert single.json()["target"] == JANE
        assert sweep.json()["target"] == "all"

    @pytest.mark.asyncio
    async def test_poll_inbox_without_body(self, client: AsyncClient, mock_dispatcher):
        response = await client.post("/inbox/poll-inbox")

        assert response.status_code == 200
        assert response.json()["message"] == "Inbox poll queued"
        mock_dispatcher.wake.assert_called_once_with(TaskKind.INBOX_POLL, countdown=0.0)

    @pytest.mark.asyncio
    async def test_extract_profiles(self, client: AsyncClient, db_session):
        response = await client.post(
            "/extract/extract-profiles",
            json={"campaignId": "spring", "force": True},
        )

        assert response.status_code == 200
        assert response.json()["target"] == "spring"
        job = ledger_job(db_session, response.json()["jobId"])
        assert job.payload_json["force"] is True


class TestExplicitJobIds:
    @pytest.mark.asyncio
    async def test_same_job_id_sent_twice_admits_once(
        self, client: AsyncClient, db_session, mock_dispatcher
    ):
        request = {"threadId": "2-abc", "message": "Hi", "jobId": "reply-2-abc-1"}

        first = await client.post("/reply/send-reply", json=request)
        second = await client.post("/reply/send-reply", json=request)

        assert first.json()["jobId"] == "reply-2-abc-1"
        assert first.json()["created"] is True
        assert second.status_code == 200
        assert second.json()["jobId"] == "reply-2-abc-1"
        assert second.json()["created"] is False
        assert mock_dispatcher.wake.call_count == 1

        stats = (await client.get("/reply/queue-stats")).json()["stats"]
        assert stats["waiting"] == 1
        assert "jobId" not in ledger_job(db_session, "reply-2-abc-1").payload_json

    @pytest.mark.asyncio
    async def test_retry_reuses_job_id(self, client: AsyncClient, db_session):
        request = {"profileUrl": JANE, "maxRetries": 3, "jobId": "connect-jane"}

        await client.post("/connect/retry-connect-request", json=request)
        second = await client.post("/connect/retry-connect-request", json=request)

        assert second.json()["created"] is False
        assert ledger_job(db_session, "connect-jane").max_attempts == 3

    @pytest.mark.asyncio
    async def test_bulk_items_keep_their_job_ids(self, client: AsyncClient):
        request = {
            "replies": [
                {"threadId": "2-a", "message": "Hello", "jobId": "bulk-2-a"},
                {"threadId": "2-b", "message": "Hello"},
            ]
        }

        first = (await client.post("/reply/bulk-replies", json=request)).json()
        second = (await client.post("/reply/bulk-replies", json=request)).json()

        assert first["jobs"][0]["jobId"] == "bulk-2-a"
        assert first["jobs"][0]["created"] is True
        assert second["jobs"][0]["jobId"] == "bulk-2-a"
        assert second["jobs"][0]["created"] is False
        assert second["jobs"][1]["jobId"] != first["jobs"][1]["jobId"]

        stats = (await client.get("/reply/queue-stats")).json()["stats"]
        assert stats["waiting"] == 3

    @pytest.mark.asyncio
    async def test_malformed_job_id_is_400(self, client: AsyncClient):
        response = await client.post(
            "/reply/send-reply",
            json={"threadId": "2-abc", "message": "Hi", "jobId": "has spaces/and slashes"},
        )

        assert response.status_code == 400


class TestBulkAdmission:
    @pytest.mark.asyncio
    async def test_bulk_replies_report_invalid_items(self, client: AsyncClient, db_session):
        response = await client.post(
            "/reply/bulk-replies",
            json={
                "replies": [
                    {"threadId": "2-a", "message": "Hello"},
                    {"message": "No thread"},
                    {"threadId": "2-c", "message": "Hi again"},
                ]
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert body["totalRequested"] == 3
        assert body["totalQueued"] == 2
        assert body["errors"] == ["Reply 1: thread_id is required and must be a string"]
        assert [job["position"] for job in body["jobs"]] == [0, 2]
        assert [job["delaySeconds"] for job in body["jobs"]] == [0, 30]
        assert [job["priority"] for job in body["jobs"]] == [0, -2]
        assert [job["target"] for job in body["jobs"]] == ["2-a", "2-c"]

        job = ledger_job(db_session, body["jobs"][1]["jobId"])
        assert job.payload_json["bulk_request"] is True
        assert job.priority == -2

    @pytest.mark.asyncio
    async def test_bulk_replies_for_other_bot_rejected(self, client: AsyncClient, test_settings):
        own_bot_id = f"{test_settings.account_email}_{test_settings.account_secret}"
        response = await client.post(
            "/reply/bulk-replies",
            json={
                "replies": [
                    {"threadId": "2-a", "message": "Hello"},
                    {"threadId": "2-b", "message": "Hello", "botId": own_bot_id},
                ],
                "defaultBotId": "other@example.com_secret",
            },
        )

        body = response.json()
        assert body["totalQueued"] == 1
        assert body["jobs"][0]["target"] == "2-b"
        assert body["errors"][0].startswith("Reply 0: bot_id does not belong")

    @pytest.mark.asyncio
    async def test_bulk_connect_uses_default_note(self, client: AsyncClient, db_session):
        response = await client.post(
            "/connect/bulk-connect-requests",
            json={
                "connections": [{"profileUrl": JANE}, "https://www.linkedin.com/in/john/"],
                "defaultMessage": "Let's connect",
            },
        )

        body = response.json()
        assert body["totalQueued"] == 1
        assert body["errors"][0].startswith("Connection 1:")
        job = ledger_job(db_session, body["jobs"][0]["jobId"])
        assert job.payload_json["note"] == "Let's connect"

    @pytest.mark.asyncio
    async def test_bulk_status_checks_accept_plain_urls(self, client: AsyncClient):
        response = await client.post(
            "/status/bulk-status-checks",
            json={"profiles": [JANE, {"profileUrl": "https://www.linkedin.com/in/john/"}]},
        )

        body = response.json()
        assert body["totalQueued"] == 2
        assert body["jobs"][0]["target"] == JANE
        assert body["jobs"][1]["delaySeconds"] == 30

    @pytest.mark.asyncio
    async def test_empty_bulk_is_400(self, client: AsyncClient):
        response = await client.post("/reply/bulk-replies", json={"replies": []})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "replies must be a non-empty array"

    @pytest.mark.asyncio
    async def test_oversized_bulk_is_400(self, client: AsyncClient):
        replies = [{"threadId": f"2-{i}", "message": "Hi"} for i in range(51)]

        response = await client.post("/reply/bulk-replies", json={"replies": replies})

        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "Maximum 50 replies per bulk request"


class TestRetryAdmission:
    @pytest.mark.asyncio
    async def test_retry_reply_has_high_priority_and_attempts(self, client: AsyncClient, db_session):
        response = await client.post(
            "/reply/retry-reply",
            json={"threadId": "2-abc", "message": "Hi", "maxRetries": 5},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["jobId"].startswith("retry_reply_")
        assert body["maxRetries"] == 5

        job = ledger_job(db_session, body["jobId"])
        assert job.priority == 10
        assert job.max_attempts == 5
        assert job.payload_json["is_retry"] is True

    @pytest.mark.asyncio
    async def test_retry_limit_enforced(self, client: AsyncClient):
        response = await client.post(
            "/connect/retry-connect-request",
            json={"profileUrl": JANE, "maxRetries": 11},
        )

        assert response.status_code == 400


class TestInspection:
    @pytest.mark.asyncio
    async def test_job_status(self, client: AsyncClient):
        admitted = await client.post("/connect/send-connect-request", json={"profileUrl": JANE})
        job_id = admitted.json()["jobId"]

        response = await client.get(f"/connect/job-status/{job_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["jobId"] == job_id
        assert body["state"] == "waiting"
        assert body["data"]["profile_url"] == JANE
        assert body["attempts"] == 0

    @pytest.mark.asyncio
    async def test_job_status_reports_client_error(self, client: AsyncClient, db_session):
        admitted = await client.post("/reply/send-reply", json={"threadId": "2-abc", "message": "Hi"})
        job_id = admitted.json()["jobId"]
        service = JobService(db_session)
        service.claim_next_job(TaskKind.REPLY)
        service.fail_job(job_id, "Send button is disabled", client_error=True)
        db_session.commit()

        body = (await client.get(f"/reply/job-status/{job_id}")).json()

        assert body["state"] == "failed"
        assert body["clientError"] is True
        assert body["retryable"] is False

    @pytest.mark.asyncio
    async def test_job_status_of_other_queue_is_404(self, client: AsyncClient):
        admitted = await client.post("/connect/send-connect-request", json={"profileUrl": JANE})

        response = await client.get(f"/reply/job-status/{admitted.json()['jobId']}")

        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "Job not found"

    @pytest.mark.asyncio
    async def test_unknown_job_is_404(self, client: AsyncClient):
        response = await client.get("/reply/job-status/missing")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_queue_stats(self, client: AsyncClient):
        await client.post("/reply/send-reply", json={"threadId": "2-a", "message": "Hi"})
        await client.post("/reply/send-reply", json={"threadId": "2-b", "message": "Hi"})

        response = await client.get("/reply/queue-stats")

        body = response.json()
        assert body["queue"] == TaskKind.REPLY
        assert body["stats"]["waiting"] == 2
        assert body["stats"]["total"] == 2

    @pytest.mark.asyncio
    async def test_clear_queue(self, client: AsyncClient):
        await client.post("/reply/send-reply", json={"threadId": "2-a", "message": "Hi"})

        response = await client.post("/reply/clear-queue", json={"type": "waiting"})

        assert response.status_code == 200
        assert response.json()["cleared"] == 1
        stats = (await client.get("/reply/queue-stats")).json()["stats"]
        assert stats["total"] == 0

    @pytest.mark.asyncio
    async def test_clear_queue_rejects_unknown_type(self, client: AsyncClient):
        response = await client.post("/reply/clear-queue", json={"type": "active"})

        assert response.status_code == 400
        assert "Invalid type" in response.json()["detail"]["error"]

    @pytest.mark.asyncio
    async def test_queue_health(self, client: AsyncClient, mock_dispatcher):
        healthy = await client.get("/connect/health")
        mock_dispatcher.ping.return_value = False
        degraded = await client.get("/connect/health")

        assert healthy.json()["status"] == "healthy"
        assert healthy.json()["broker"] == "connected"
        assert healthy.json()["service"] == "Connection Request Bot"
        assert degraded.json()["broker"] == "disconnected"

    @pytest.mark.asyncio
    async def test_healthz(self, client: AsyncClient):
        response = await client.get("/healthz")
        assert response.json() == {"ok": True, "service": "outreach-core"}
