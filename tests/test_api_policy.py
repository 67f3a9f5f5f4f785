"""
Tests for revive/api/policy.py - JSON wrappers around the compliance engine.
"""
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select

from revive.api.policy import get_policy_config, router
from revive.database import get_db
from revive.models import EventLog, Lead
from revive.schemas.policy_config import DEFAULT_POLICY

ACCOUNT_ID = "11111111-1111-1111-1111-111111111111"


@pytest.fixture
async def client(db):
    app = FastAPI()
    app.include_router(router)

    async def _override_db():
        yield db

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_policy_config] = lambda: DEFAULT_POLICY
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


class TestClassifyEndpoint:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("text,intent", [
        ("STOP", "opt_out"),
        ("St0p!!", "opt_out"),
        ("HELP", "help"),
        ("yes please", "none"),
    ])
    async def test_classify(self, client, text, intent):
        resp = await client.post("/api/v1/policy/classify", json={"text": text})
        assert resp.status_code == 200
        assert resp.json()["intent"] == intent

    @pytest.mark.asyncio
    async def test_returns_normalized(self, client):
        resp = await client.post("/api/v1/policy/classify", json={"text": "S T O P"})
        assert resp.json()["normalized"] == "stop"


class TestOutboundGateEndpoint:
    @pytest.mark.asyncio
    async def test_allowed(self, client):
        now = datetime(2026, 3, 15, tzinfo=timezone.utc)
        resp = await client.post("/api/v1/policy/outbound-gate", json={
            "local_hhmm": "20:00",
            "jurisdiction": "FL",
            "last_footer_at": (now - timedelta(days=29)).isoformat(),
            "now": now.isoformat(),
        })
        assert resp.status_code == 200
        assert resp.json() == {"blocked_by_quiet_hours": False, "footer_required": False}

    @pytest.mark.asyncio
    async def test_strict_state_blocked(self, client):
        resp = await client.post("/api/v1/policy/outbound-gate", json={
            "local_hhmm": "20:01", "jurisdiction": "FL",
        })
        assert resp.json() == {"blocked_by_quiet_hours": True, "footer_required": True}

    @pytest.mark.asyncio
    async def test_malformed_fails_closed(self, client):
        resp = await client.post("/api/v1/policy/outbound-gate", json={
            "local_hhmm": "not-a-time",
            "last_footer_at": "last tuesday",
        })
        assert resp.status_code == 200
        assert resp.json() == {"blocked_by_quiet_hours": True, "footer_required": True}


class TestRenderEndpoint:
    @pytest.mark.asyncio
    async def test_render(self, client):
        resp = await client.post("/api/v1/policy/render", json={
            "template": "Hi {{first_name}}",
            "variables": {"first_name": "Ana"},
        })
        assert resp.status_code == 200
        assert resp.json() == {"body": "Hi Ana", "length": 6, "segments": 1}

    @pytest.mark.asyncio
    async def test_render_by_kind(self, client):
        resp = await client.post("/api/v1/policy/render", json={
            "kind": "RESLOT", "variables": {"brand": "Glow"},
        })
        assert resp.json()["body"].startswith("Glow: no problem.")

    @pytest.mark.asyncio
    async def test_unknown_kind(self, client):
        resp = await client.post("/api/v1/policy/render", json={"kind": "WELCOME"})
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_too_long_is_422(self, client):
        resp = await client.post("/api/v1/policy/render", json={"template": "x" * 161})
        assert resp.status_code == 422
        detail = resp.json()["detail"]
        assert detail["error"] == "template_too_long"
        assert detail["length"] == 161
        assert detail["max_length"] == 160

    @pytest.mark.asyncio
    async def test_custom_max_length(self, client):
        resp = await client.post("/api/v1/policy/render", json={"template": "hello", "max_length": 4})
        assert resp.status_code == 422


class TestPrepareEndpoint:
    @pytest.mark.asyncio
    async def test_prepare_unknown_contact(self, client):
        resp = await client.post("/api/v1/policy/prepare", json={
            "account_id": ACCOUNT_ID, "phone": "5551234567", "template": "Hi",
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["allowed"] is False
        assert body["rule"] == "unknown_contact"
        assert body["phone"] == "+15551234567"

    @pytest.mark.asyncio
    async def test_prepare_opted_out(self, client, db):
        db.add(Lead(account_id=uuid.UUID(ACCOUNT_ID), phone="+15551234567", opted_out=True))
        await db.commit()
        resp = await client.post("/api/v1/policy/prepare", json={
            "account_id": ACCOUNT_ID, "phone": "+1 555 123 4567", "template": "Hi",
        })
        assert resp.json()["rule"] == "opted_out"

    @pytest.mark.asyncio
    async def test_prepare_invalid_phone(self, client):
        resp = await client.post("/api/v1/policy/prepare", json={
            "account_id": ACCOUNT_ID, "phone": "none", "template": "Hi",
        })
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_prepare_invalid_account(self, client):
        resp = await client.post("/api/v1/policy/prepare", json={
            "account_id": "acme", "phone": "5551234567",
        })
        assert resp.status_code == 400


class TestSentEndpoint:
    @pytest.mark.asyncio
    async def test_records_footer(self, client, db):
        db.add(Lead(account_id=uuid.UUID(ACCOUNT_ID), phone="+15551234567"))
        await db.commit()
        resp = await client.post("/api/v1/policy/sent", json={
            "account_id": ACCOUNT_ID, "phone": "5551234567", "footer_included": True,
        })
        assert resp.status_code == 200
        assert resp.json() == {"status": "recorded", "footer_advanced": True}

    @pytest.mark.asyncio
    async def test_unknown_contact_nothing_advanced(self, client):
        resp = await client.post("/api/v1/policy/sent", json={
            "account_id": ACCOUNT_ID, "phone": "5551234567", "footer_included": True,
        })
        assert resp.json()["footer_advanced"] is False


@pytest.fixture
async def gated_client(db):
    """Client whose policy a test can swap before the request."""
    app = FastAPI()
    app.include_router(router)
    config = {"policy": DEFAULT_POLICY}

    async def _override_db():
        yield db

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_policy_config] = lambda: config["policy"]
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac, config


class TestAccountBlocks:
    @pytest.mark.asyncio
    async def test_paused_is_409(self, gated_client):
        ac, config = gated_client
        config["policy"] = DEFAULT_POLICY.with_overrides({"paused": True})
        resp = await ac.post("/api/v1/policy/prepare", json={
            "account_id": ACCOUNT_ID, "phone": "5551234567", "template": "Hi",
        })
        assert resp.status_code == 409
        assert resp.json()["detail"]["error"] == "paused"

    @pytest.mark.asyncio
    async def test_blackout_is_409(self, gated_client, db):
        ac, config = gated_client
        db.add(Lead(account_id=uuid.UUID(ACCOUNT_ID), phone="+15551234567", state_code="TX"))
        await db.commit()
        today = datetime.now(timezone.utc)
        config["policy"] = DEFAULT_POLICY.with_overrides({
            "blackout_dates": [(today - timedelta(days=1)).date(), today.date(), (today + timedelta(days=1)).date()],
        })
        resp = await ac.post("/api/v1/policy/prepare", json={
            "account_id": ACCOUNT_ID, "phone": "5551234567", "template": "Hi",
        })
        assert resp.status_code == 409
        assert resp.json()["detail"]["error"] == "blackout"


class TestReminderCategory:
    @pytest.mark.asyncio
    async def test_sent_reminder_then_capped(self, gated_client, db):
        client, config = gated_client
        config["policy"] = DEFAULT_POLICY.with_overrides({"quiet_hours_start": "00:00", "quiet_hours_end": "23:59"})
        db.add(Lead(account_id=uuid.UUID(ACCOUNT_ID), phone="+15551234567", state_code="TX"))
        await db.commit()
        resp = await client.post("/api/v1/policy/sent", json={
            "account_id": ACCOUNT_ID, "phone": "5551234567", "category": "reminder",
        })
        assert resp.status_code == 200
        actions = [e.action for e in (await db.execute(select(EventLog))).scalars().all()]
        assert actions == ["reminder_sent"]

        resp = await client.post("/api/v1/policy/prepare", json={
            "account_id": ACCOUNT_ID, "phone": "5551234567", "template": "Hi",
            "category": "reminder", "is_reply": True,
        })
        assert resp.status_code == 200
        assert resp.json()["allowed"] is False
        assert resp.json()["rule"] == "reminder_cap"


class TestContactsEndpoint:
    @pytest.mark.asyncio
    async def test_import(self, client, db):
        resp = await client.post("/api/v1/policy/contacts", json={
            "account_id": ACCOUNT_ID, "phone": "(202) 456-1111", "first_name": "Ana", "state_code": "DC",
        })
        assert resp.status_code == 200
        body = resp.json()
        assert body["phone"] == "+12024561111"
        lead = (await db.execute(select(Lead))).scalar_one()
        assert str(lead.id) == body["lead_id"]
        assert lead.state_code == "DC"

    @pytest.mark.asyncio
    async def test_invalid_number(self, client):
        resp = await client.post("/api/v1/policy/contacts", json={
            "account_id": ACCOUNT_ID, "phone": "12345",
        })
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_state_code_too_long(self, client):
        resp = await client.post("/api/v1/policy/contacts", json={
            "account_id": ACCOUNT_ID, "phone": "(202) 456-1111", "state_code": "Texas",
        })
        assert resp.status_code == 422


class TestSuppressionsEndpoint:
    @pytest.mark.asyncio
    async def test_add_then_repeat(self, client):
        resp = await client.post("/api/v1/policy/suppressions", json={"phone": "555-123-4567"})
        assert resp.status_code == 200
        assert resp.json() == {"phone": "+15551234567", "added": True}

        resp = await client.post("/api/v1/policy/suppressions", json={"phone": "+15551234567"})
        assert resp.json()["added"] is False

    @pytest.mark.asyncio
    async def test_invalid_phone(self, client):
        resp = await client.post("/api/v1/policy/suppressions", json={"phone": "none"})
        assert resp.status_code == 400
