"""HTTP API 与 WebSocket 指令测试。"""
import json
from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

import netsentry.core.redis as redis_module
from conftest import BrokenRedis, FakeRedis
from conftest import engine as test_engine
from netsentry.core.redis import close_redis
from netsentry.models.alert import Alert
from netsentry.models.device import Device
from netsentry.models.device_metric import DeviceMetric
from netsentry.routers.ws import handle_command
from netsentry.services.broadcaster import broadcaster, device_topic


@pytest.fixture
async def device(db_session):
    d = Device(id="A", name="core-1", ip_address="10.0.0.1", auth_user="monitor",
               auth_password="secret", status="ONLINE")
    db_session.add(d)
    db_session.add(Device(id="B", name="edge-1", ip_address="10.0.0.2", status="OFFLINE"))
    await db_session.commit()
    return d


class TestDevices:
    async def test_list_devices_hides_credentials(self, client: AsyncClient, device):
        resp = await client.get("/api/v1/devices")
        assert resp.status_code == 200
        body = resp.json()
        assert [d["name"] for d in body] == ["core-1", "edge-1"]
        assert "auth_password" not in body[0]
        assert "auth_user" not in body[0]

    async def test_filter_by_status(self, client: AsyncClient, device):
        resp = await client.get("/api/v1/devices?status=offline")
        assert [d["id"] for d in resp.json()] == ["B"]

    async def test_latest_from_cache(self, client: AsyncClient, device, fake_redis):
        detail = {"id": "A", "name": "core-1", "status": "ONLINE", "latency": 1.2,
                  "timestamp": "2026-01-01T00:00:00Z", "metrics": {"cpu_load": 5.0}}
        await fake_redis.set("metrics:latest:A", json.dumps(detail))
        resp = await client.get("/api/v1/devices/A/latest")
        assert resp.status_code == 200
        assert resp.json()["metrics"] == {"cpu_load": 5.0}

    async def test_latest_without_cache(self, client: AsyncClient, device):
        resp = await client.get("/api/v1/devices/B/latest")
        assert resp.status_code == 200
        assert resp.json()["status"] == "OFFLINE"
        assert resp.json()["metrics"] == {}

    async def test_latest_when_redis_is_down(self, client: AsyncClient, device, monkeypatch):
        monkeypatch.setattr(redis_module, "redis_client", BrokenRedis())
        resp = await client.get("/api/v1/devices/A/latest")
        assert resp.status_code == 200
        body = resp.json()
        assert body["id"] == "A"
        assert body["status"] == "ONLINE"
        assert body["metrics"] == {}

    async def test_unknown_device_404(self, client: AsyncClient):
        resp = await client.get("/api/v1/devices/nope/latest")
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    async def test_history(self, client: AsyncClient, db_session, device):
        now = datetime.now(timezone.utc)
        db_session.add_all([
            DeviceMetric(device_id="A", device_name="core-1", status="ONLINE", latency=1.0,
                         cpu_load=10.0, recorded_at=now - timedelta(minutes=10)),
            DeviceMetric(device_id="A", device_name="core-1", status="ONLINE", latency=2.0,
                         cpu_load=20.0, recorded_at=now - timedelta(minutes=5)),
            DeviceMetric(device_id="A", device_name="core-1", status="ONLINE", latency=3.0,
                         recorded_at=now - timedelta(hours=3)),
        ])
        await db_session.commit()

        resp = await client.get("/api/v1/devices/A/history?hours=1")
        assert resp.status_code == 200
        assert [p["cpu_load"] for p in resp.json()] == [10.0, 20.0]


class TestAlerts:
    async def test_list_active_alerts(self, client: AsyncClient, db_session, device):
        db_session.add_all([
            Alert(device_id="A", type="CPU_HIGH", message="cpu", severity="CRITICAL", active=True),
            Alert(device_id="B", type="OFFLINE", message="down", severity="CRITICAL", active=False,
                  resolved_at=datetime.now(timezone.utc)),
        ])
        await db_session.commit()

        resp = await client.get("/api/v1/alerts")
        assert resp.status_code == 200
        assert [a["type"] for a in resp.json()] == ["CPU_HIGH"]

        resp = await client.get("/api/v1/alerts?active=false")
        assert [a["device_id"] for a in resp.json()] == ["B"]

        resp = await client.get("/api/v1/alerts?device_id=B&active=true")
        assert resp.json() == []

        resp = await client.get("/api/v1/alerts?severity=warning")
        assert resp.json() == []
        resp = await client.get("/api/v1/alerts?severity=critical&limit=1")
        assert [a["device_id"] for a in resp.json()] == ["A"]


class TestHealth:
    async def test_health(self, client: AsyncClient, monkeypatch):
        monkeypatch.setattr("netsentry.main.engine", test_engine)
        resp = await client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["checks"] == {"api": "ok", "database": "ok", "redis": "ok"}
        assert body["status"] == "ok"


class TestRedisClient:
    async def test_close_resets_singleton(self, fake_redis: FakeRedis):
        await close_redis()
        assert fake_redis.closed
        assert redis_module.redis_client is None


class TestWebSocketCommands:
    def test_subscribe_and_unsubscribe(self):
        sub = broadcaster.connect("ws-test")
        try:
            reply = handle_command("ws-test", {"action": "subscribe", "device_id": "A"})
            assert reply == {"event": "subscribed", "data": {"topic": "device:A"}}
            assert device_topic("A") in sub.topics

            reply = handle_command("ws-test", {"action": "unsubscribe", "device_id": "A"})
            assert reply["event"] == "unsubscribed"
            assert device_topic("A") not in sub.topics
        finally:
            broadcaster.disconnect("ws-test")

    def test_invalid_command(self):
        assert handle_command("ws-test", {"action": "dance"})["event"] == "error"
        assert handle_command("ws-test", {"action": "subscribe"})["event"] == "error"
