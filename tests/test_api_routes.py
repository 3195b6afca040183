"""Tests for the HTTP API (sessiongate.main + sessiongate.api).

Tests cover:
- Service info, status and health payloads
- Pairing code endpoints in every session state
- Send endpoints: connection check, field validation, aliases, failures
- Request-ID middleware
"""

from __future__ import annotations

import base64

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from conftest import PNG_MAGIC, failing_renderer
from sessiongate import __version__
from sessiongate.main import create_app
from sessiongate.session import PairingCodeCache


async def _client_for(manager) -> AsyncClient:
    app = create_app(manager)
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest_asyncio.fixture
async def client(manager):
    async with await _client_for(manager) as ac:
        yield ac


@pytest_asyncio.fixture
async def connected_client(connected_manager):
    async with await _client_for(connected_manager) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Service info / status / health
# ---------------------------------------------------------------------------

class TestServiceInfo:
    @pytest.mark.asyncio
    async def test_root(self, client):
        resp = await client.get("/")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "online"
        assert data["version"] == __version__
        assert data["state"] == "connecting"
        assert data["connected"] is False
        assert data["hasQR"] is False
        assert data["connectionAttempts"] == 0
        assert data["lastError"] is None
        assert "timestamp" in data

    @pytest.mark.asyncio
    async def test_status(self, client):
        data = (await client.get("/status")).json()
        assert data["maxAttempts"] == 5
        assert data["connected"] is False
        assert data["connectedAt"] is None

    @pytest.mark.asyncio
    async def test_status_when_connected(self, connected_client):
        data = (await connected_client.get("/status")).json()
        assert data["state"] == "connected"
        assert data["connected"] is True
        assert data["connectedAt"] is not None

    @pytest.mark.asyncio
    async def test_status_reports_attempts(self, make_manager, factory):
        mgr = make_manager(delay_seconds=10)
        await mgr.start()
        try:
            factory.latest.drop(status_code=500, reason="stream errored")
            await mgr.drain()
            async with await _client_for(mgr) as ac:
                data = (await ac.get("/status")).json()
            assert data["state"] == "closed"
            assert data["connectionAttempts"] == 1
            assert data["lastError"] == "connection closed: stream errored (500)"
        finally:
            await mgr.stop()

    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["uptime"] >= 0
        assert data["connected"] is False

    @pytest.mark.asyncio
    async def test_request_id_header(self, client):
        resp = await client.get("/health")
        assert resp.headers.get("X-Request-ID")

    @pytest.mark.asyncio
    async def test_request_id_propagated(self, client):
        resp = await client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert resp.headers["X-Request-ID"] == "abc-123"


# ---------------------------------------------------------------------------
# Pairing
# ---------------------------------------------------------------------------

class TestPairingEndpoints:
    @pytest.mark.asyncio
    async def test_waiting_without_code(self, client):
        resp = await client.get("/qr")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "waiting"
        assert data["connectionAttempts"] == 0
        assert data["lastError"] is None

    @pytest.mark.asyncio
    async def test_qr_ready(self, client, manager, factory):
        factory.latest.offer_pairing("2@abc")
        await manager.drain()

        data = (await client.get("/qr")).json()
        assert data["status"] == "qr_ready"
        prefix = "data:image/png;base64,"
        assert data["qrcode"].startswith(prefix)
        assert base64.b64decode(data["qrcode"][len(prefix):]).startswith(PNG_MAGIC)

        root = (await client.get("/")).json()
        assert root["hasQR"] is True
        assert root["state"] == "awaiting_pairing"

    @pytest.mark.asyncio
    async def test_qr_image(self, client, manager, factory):
        factory.latest.offer_pairing("2@abc")
        await manager.drain()

        resp = await client.get("/qr-image")
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "image/png"
        assert resp.content.startswith(PNG_MAGIC)

    @pytest.mark.asyncio
    async def test_qr_image_missing(self, client):
        resp = await client.get("/qr-image")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_connected(self, connected_client):
        data = (await connected_client.get("/qr")).json()
        assert data["status"] == "connected"
        assert (await connected_client.get("/qr-image")).status_code == 404

    @pytest.mark.asyncio
    async def test_unrendered_code_is_waiting(self, make_manager, factory):
        mgr = make_manager(pairing=PairingCodeCache(failing_renderer))
        await mgr.start()
        try:
            factory.latest.offer_pairing("2@abc")
            await mgr.drain()
            async with await _client_for(mgr) as ac:
                assert (await ac.get("/qr")).json()["status"] == "waiting"
                assert (await ac.get("/qr-image")).status_code == 404
                assert (await ac.get("/")).json()["hasQR"] is True
        finally:
            await mgr.stop()


# ---------------------------------------------------------------------------
# Sending
# ---------------------------------------------------------------------------

class TestSendMessage:
    @pytest.mark.asyncio
    async def test_not_connected_checked_first(self, client, factory):
        resp = await client.post("/send-message", json={})
        assert factory.latest.sent == []
        assert resp.status_code == 400
        assert "required" not in resp.json()
        assert resp.json()["error"]
        assert "/qr" in resp.json()["hint"]

    @pytest.mark.asyncio
    async def test_missing_fields(self, connected_client):
        resp = await connected_client.post("/send-message", json={"recipient": "569"})
        assert resp.status_code == 400
        assert set(resp.json()["required"]) == {"recipient", "text"}

    @pytest.mark.asyncio
    async def test_missing_body(self, connected_client):
        resp = await connected_client.post("/send-message")
        assert resp.status_code == 400
        assert "required" in resp.json()

    @pytest.mark.asyncio
    async def test_success(self, connected_client, factory):
        resp = await connected_client.post("/send-message", json={"recipient": "56912345678", "text": "Hello"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["success"] is True
        assert data["to"] == "56912345678@s.whatsapp.net"
        assert "timestamp" in data
        assert factory.latest.sent[0][0] == "56912345678@s.whatsapp.net"

    @pytest.mark.asyncio
    async def test_not_connected_sends_nothing(self, client, factory):
        resp = await client.post("/send-message", json={"recipient": "5691234", "text": "hi"})
        assert resp.status_code == 400
        assert factory.latest.sent == []

    @pytest.mark.asyncio
    async def test_bare_number_gets_default_domain(self, connected_client, factory):
        resp = await connected_client.post("/send-message", json={"recipient": "5691234", "text": "hi"})
        assert resp.json()["to"] == "5691234@s.whatsapp.net"
        assert factory.latest.sent[0][0] == "5691234@s.whatsapp.net"

    @pytest.mark.asyncio
    async def test_legacy_field_names(self, connected_client, factory):
        resp = await connected_client.post("/send-message", json={"phone": "569", "message": "Hola!"})
        assert resp.status_code == 200
        assert factory.latest.sent[0][1].text == "Hola!"

    @pytest.mark.asyncio
    async def test_send_failure(self, connected_client, factory):
        factory.latest.send_error = RuntimeError("upstream timeout")
        resp = await connected_client.post("/send-message", json={"recipient": "569", "text": "x"})
        assert resp.status_code == 500
        assert resp.json()["details"] == "upstream timeout"

    @pytest.mark.asyncio
    async def test_blank_recipient(self, connected_client):
        resp = await connected_client.post("/send-message", json={"recipient": "  ", "text": "x"})
        assert resp.status_code == 400


class TestSendImage:
    @pytest.mark.asyncio
    async def test_not_connected(self, client):
        resp = await client.post("/send-image", json={"recipient": "569", "imageUrl": "https://x/y.png"})
        assert resp.status_code == 400
        assert resp.json()["hint"] == "Scan the pairing code at /qr"

    @pytest.mark.asyncio
    async def test_missing_url(self, connected_client):
        resp = await connected_client.post("/send-image", json={"phone": "569"})
        assert resp.status_code == 400
        assert "imageUrl" in resp.json()["required"]

    @pytest.mark.asyncio
    async def test_success(self, connected_client, factory):
        resp = await connected_client.post(
            "/send-image",
            json={"phone": "569", "imageUrl": "https://x/y.png", "caption": "hi"},
        )
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "to": "569@s.whatsapp.net"}
        content = factory.latest.sent[0][1]
        assert content.url == "https://x/y.png"
        assert content.caption == "hi"

    @pytest.mark.asyncio
    async def test_failure(self, connected_client, factory):
        factory.latest.send_error = RuntimeError("media fetch failed")
        resp = await connected_client.post("/send-image", json={"phone": "569", "imageUrl": "https://x/y.png"})
        assert resp.status_code == 500
        assert resp.json()["details"] == "media fetch failed"
