"""
Tests for the email webhook relay, webhook configuration and the email log.
"""

import json

import httpx
import pytest
from sqlalchemy import select

from api.services import webhooks as service
from core.events import EmailEvent
from core.integrations.email import EmailWebhookClient
from database.models.communications import (
    EmailDeliveryStatus,
    EmailEventType,
    EmailNotification,
    NotificationConfig,
)

HOOK_URL = "https://hooks.example.com/candidate-assigned"


def payload(**overrides):
    body = {
        "event_type": "candidate_assigned",
        "candidate_id": "7",
        "recipient_email": "interviewer@example.com",
        "recipient_name": "Ivan Interviewer",
        "data": {"candidate_name": "Jane Doe"},
    }
    body.update(overrides)
    return body


def client_returning(status_code, seen=None, **kwargs):
    def handler(request):
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, **kwargs)

    return EmailWebhookClient(transport=httpx.MockTransport(handler))


async def configure(db, event_type="candidate_assigned", is_enabled=True, secret="hook-secret"):
    db.add(NotificationConfig(
        event_type=event_type,
        webhook_url=HOOK_URL,
        webhook_secret=secret,
        is_enabled=is_enabled,
    ))
    await db.commit()


async def email_log(db):
    return (await db.execute(select(EmailNotification).order_by(EmailNotification.id))).scalars().all()


class TestRelayValidation:

    @pytest.mark.parametrize("body", [
        payload(event_type=""),
        {k: v for k, v in payload().items() if k != "candidate_id"},
        payload(recipient_email=None),
        ["not", "an", "object"],
    ])
    @pytest.mark.asyncio
    async def test_invalid_payload(self, db, body):
        status, response = await service.relay_email(db, body)

        assert status == 400
        assert response["error"] == "Invalid payload"

    @pytest.mark.asyncio
    async def test_not_configured(self, db):
        status, response = await service.relay_email(db, payload())

        assert status == 404
        assert response["error"] == "Webhook not configured"
        assert await email_log(db) == []

    @pytest.mark.asyncio
    async def test_disabled_webhook(self, db):
        await configure(db, is_enabled=False)

        status, response = await service.relay_email(db, payload())

        assert status == 200
        assert response == {"message": "Webhook disabled", "event_type": "candidate_assigned"}
        assert await email_log(db) == []


class TestRelayRateLimit:
    """Per event type, applied only when the caller is identified."""

    async def fill_window(self, db, count, event_type="candidate_assigned"):
        for i in range(count):
            db.add(EmailNotification(
                candidate_id=str(i),
                event_type=event_type,
                recipient_email="someone@example.com",
                webhook_payload={},
                status=EmailDeliveryStatus.SENT,
            ))
        await db.commit()

    @pytest.mark.asyncio
    async def test_eleventh_email_is_limited(self, db):
        await configure(db)
        await self.fill_window(db, 10)

        status, response = await service.relay_email(db, payload(), caller_id="user-hr-staff")

        assert status == 429
        assert response["error"] == "Rate limit exceeded"

    @pytest.mark.asyncio
    async def test_limit_is_per_event_type(self, db):
        await configure(db)
        await self.fill_window(db, 10, event_type="interview_scheduled")

        status, _ = await service.relay_email(
            db, payload(), caller_id="user-hr-staff", client=client_returning(200, json={})
        )

        assert status == 200

    @pytest.mark.asyncio
    async def test_anonymous_caller_is_not_limited(self, db):
        await configure(db)
        await self.fill_window(db, 10)

        status, _ = await service.relay_email(db, payload(), client=client_returning(200, json={}))

        assert status == 200

    @pytest.mark.asyncio
    async def test_under_the_limit(self, db):
        await configure(db)
        await self.fill_window(db, 9)

        status, _ = await service.relay_email(
            db, payload(), caller_id="user-hr-staff", client=client_returning(200, json={})
        )

        assert status == 200


class TestRelayDelivery:

    @pytest.mark.asyncio
    async def test_success(self, db):
        await configure(db)
        seen = []

        status, response = await service.relay_email(
            db, payload(), client=client_returning(200, seen, json={"accepted": True})
        )

        [log] = await email_log(db)
        assert status == 200
        assert response == {
            "success": True,
            "notification_id": log.id,
            "event_type": "candidate_assigned",
        }
        assert log.status == EmailDeliveryStatus.SENT
        assert log.webhook_response == {"accepted": True}
        assert log.sent_at is not None
        assert log.webhook_payload["recipient_name"] == "Ivan Interviewer"

        [request] = seen
        assert str(request.url) == HOOK_URL
        assert request.headers["authorization"] == "Bearer hook-secret"
        sent = json.loads(request.content)
        assert sent["notification_id"] == log.id
        assert sent["data"] == {"candidate_name": "Jane Doe"}
        assert sent["timestamp"]

    @pytest.mark.asyncio
    async def test_no_secret_no_auth_header(self, db):
        await configure(db, secret=None)
        seen = []

        await service.relay_email(db, payload(), client=client_returning(200, seen, json={}))

        assert "authorization" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_webhook_failure(self, db):
        await configure(db)

        status, response = await service.relay_email(
            db, payload(), client=client_returning(500, json={"error": "template missing"})
        )

        [log] = await email_log(db)
        assert status == 500
        assert response["error"] == "Webhook failed"
        assert response["details"] == {"error": "template missing"}
        assert response["notification_id"] == log.id
        assert log.status == EmailDeliveryStatus.FAILED
        assert log.error_message == "template missing"

    @pytest.mark.asyncio
    async def test_structured_error_body(self, db):
        await configure(db)

        status, response = await service.relay_email(
            db, payload(), client=client_returning(400, json={"error": {"code": "BAD"}})
        )

        [log] = await email_log(db)
        assert status == 500
        assert response["error"] == "Webhook failed"
        assert response["details"] == {"error": {"code": "BAD"}}
        assert log.status == EmailDeliveryStatus.FAILED
        assert log.error_message == '{"code": "BAD"}'
        assert log.webhook_response == {"error": {"code": "BAD"}}

    @pytest.mark.asyncio
    async def test_network_failure(self, db):
        await configure(db)

        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        status, response = await service.relay_email(
            db, payload(), client=EmailWebhookClient(transport=httpx.MockTransport(handler))
        )

        [log] = await email_log(db)
        assert status == 500
        assert response["details"] == {"message": "timed out"}
        assert log.error_message == "timed out"

    @pytest.mark.asyncio
    async def test_send_direct(self, db):
        await configure(db)
        event = EmailEvent(
            event_type=EmailEventType.CANDIDATE_ASSIGNED,
            candidate_id=7,
            recipient_email="interviewer@example.com",
        )

        log = await service.send_direct(db, event, client=client_returning(200, json={}))

        assert log.status == EmailDeliveryStatus.SENT

    @pytest.mark.asyncio
    async def test_send_direct_without_config(self, db):
        event = EmailEvent(
            event_type=EmailEventType.OFFER_ACKNOWLEDGED,
            candidate_id=7,
            recipient_email="staff@example.com",
        )

        assert await service.send_direct(db, event) is None


class TestWebhookConfig:

    @pytest.mark.asyncio
    async def test_create_then_update(self, db):
        created = await service.upsert_config(db, "offer_acknowledged", HOOK_URL, "s3cret")
        updated = await service.upsert_config(
            db, "offer_acknowledged", "https://hooks.example.com/v2", is_enabled=False
        )

        assert created["config"]["has_secret"] is True
        assert "webhook_secret" not in created["config"]
        assert updated["config"]["id"] == created["config"]["id"]
        assert updated["config"]["webhook_url"] == "https://hooks.example.com/v2"
        assert updated["config"]["is_enabled"] is False
        assert updated["config"]["has_secret"] is True

        listed = await service.list_configs(db)
        assert listed["total"] == 1

    @pytest.mark.asyncio
    async def test_empty_secret_clears_it(self, db):
        await service.upsert_config(db, "offer_acknowledged", HOOK_URL, "s3cret")

        result = await service.upsert_config(db, "offer_acknowledged", HOOK_URL, "")

        assert result["config"]["has_secret"] is False

    @pytest.mark.asyncio
    async def test_unknown_event_type(self, db):
        result = await service.upsert_config(db, "candidate_deleted", HOOK_URL)

        assert result == {"success": False, "error": "Unknown event type: candidate_deleted"}


class TestEmailLog:

    @pytest.mark.asyncio
    async def test_filters(self, db):
        await configure(db)
        await service.relay_email(db, payload(), client=client_returning(200, json={}))
        await service.relay_email(
            db, payload(candidate_id="8"), client=client_returning(502, text="bad gateway")
        )

        everything = await service.list_email_log(db)
        failed = await service.list_email_log(db, status="failed")
        for_seven = await service.list_email_log(db, candidate_id="7")

        assert everything["total"] == 2
        assert failed["total"] == 1
        assert failed["emails"][0]["error_message"] == "bad gateway"
        assert for_seven["emails"][0]["status"] == "sent"

    @pytest.mark.asyncio
    async def test_invalid_status_filter(self, db):
        result = await service.list_email_log(db, status="bounced")

        assert result == {"success": False, "error": "Invalid status: bounced"}
