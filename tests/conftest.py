"""
NetSentry 测试基础配置

提供 SQLite 临时文件异步数据库、mock Redis、FastAPI 测试客户端以及
轮询引擎用到的假探测器 / 假 RouterOS 会话等通用 fixture。
所有测试使用隔离的 SQLite 数据库，不依赖外部 PostgreSQL/Redis/设备。
"""
import asyncio
import tempfile
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# 必须在导入 netsentry 之前设置环境变量，避免真实连接
import os
os.environ["POSTGRES_HOST"] = "localhost"
os.environ["REDIS_HOST"] = "localhost"
os.environ["POLLER_ENABLED"] = "false"

from netsentry.core.database import Base, get_db
import netsentry.core.redis as redis_module
from netsentry.models import Alert, Device, DeviceMetric  # noqa: F401
from netsentry.routeros import ConnectionClosedError, ConnectionState
from netsentry.schemas.device import UNREACHABLE, DeviceConfig, ManagedConfig
from netsentry.services.broadcaster import TopicBroadcaster
from netsentry.services.inventory import InventoryStore, get_inventory
from netsentry.services.timeseries import TimeSeriesStore, get_timeseries


# ── SQLite 异步引擎 ──────────────────────────────────────────────────
# 轮询周期内多个设备任务并发使用独立会话，内存库的单连接会让它们互相回滚，
# 因此使用临时文件库 + NullPool，每个会话一条独立连接
_DB_DIR = tempfile.mkdtemp(prefix="netsentry-test-")
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"

engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestingSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# ── Mock Redis ────────────────────────────────────────────────────────
class FakeRedis:
    """内存级 Redis 模拟，支持 get/set/delete/publish/ping。publish 的消息记录在 published 中。"""
    def __init__(self):
        self._store: dict[str, str] = {}
        self.published: list[tuple[str, str]] = []
        self.closed = False

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None, **kwargs) -> None:
        self._store[key] = value

    async def delete(self, *keys: str) -> None:
        for k in keys:
            self._store.pop(k, None)

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 0

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        self.closed = True


class BrokenRedis:
    """所有操作都抛出连接错误的 Redis。"""
    async def get(self, *args, **kwargs):
        raise ConnectionError("redis down")

    set = publish = ping = get


@pytest.fixture
def fake_redis():
    redis = FakeRedis()
    original = redis_module.redis_client
    redis_module.redis_client = redis
    yield redis
    redis_module.redis_client = original


# ── 假设备 ────────────────────────────────────────────────────────────
class FakeProber:
    """按地址返回预设延迟；未配置的地址视为不可达。"""
    def __init__(self, latencies: dict[str, float] | None = None, delay: float = 0.0):
        self.latencies = latencies or {}
        self.delay = delay
        self.calls: list[str] = []

    async def probe(self, address: str) -> float:
        self.calls.append(address)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.latencies.get(address, UNREACHABLE)


class FakeConnection:
    """
    RouterOSConnection 的替身：按命令路径返回预设行，或抛出预设异常。
    connect 可配置为失败或延迟，用于连接池测试。
    """
    def __init__(self, host: str = "10.0.0.1", port: int = 8728, responses: dict | None = None,
                 connect_error: Exception | None = None, connect_delay: float = 0.0):
        self.host = host
        self.port = port
        self.responses = responses or {}
        self.connect_error = connect_error
        self.connect_delay = connect_delay
        self.state = ConnectionState.DISCONNECTED
        self.listeners = []
        self.queries: list[tuple[str, dict | None, list | None]] = []
        self.closed = False

    def add_listener(self, listener):
        self.listeners.append(listener)

    def _transition(self, state, error=None):
        self.state = state
        for listener in list(self.listeners):
            listener(self, state, error)

    async def connect(self):
        self._transition(ConnectionState.CONNECTING)
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_error is not None:
            self._transition(ConnectionState.FAILED, self.connect_error)
            raise self.connect_error
        self._transition(ConnectionState.READY)

    async def query(self, path, attrs=None, queries=None, timeout=None):
        self.queries.append((path, attrs, queries))
        if self.state != ConnectionState.READY:
            raise ConnectionClosedError("not ready")
        response = self.responses.get(path, [])
        if isinstance(response, BaseException):
            raise response
        return response

    def fail(self, error: Exception | None = None):
        """模拟会话中途断开。"""
        self._transition(ConnectionState.FAILED, error or ConnectionClosedError("lost"))

    async def close(self):
        self.closed = True
        if self.state != ConnectionState.DISCONNECTED:
            self._transition(ConnectionState.DISCONNECTED)


def make_device(device_id: str = "dev-1", name: str = "router-1", address: str = "10.0.0.1",
                managed: bool = True, interface: str | None = "ether1", port: int = 8728) -> DeviceConfig:
    return DeviceConfig(
        id=device_id,
        name=name,
        address=address,
        managed=ManagedConfig(username="monitor", password="secret", port=port, interface=interface)
        if managed else None,
    )


# ── Fixtures ──────────────────────────────────────────────────────────

@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """每个测试前创建所有表，测试后清空。"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """提供一个干净的数据库会话。"""
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def inventory() -> InventoryStore:
    return InventoryStore(TestingSessionLocal)


@pytest.fixture
def timeseries() -> TimeSeriesStore:
    return TimeSeriesStore(TestingSessionLocal)


@pytest.fixture
def topic_broadcaster() -> TopicBroadcaster:
    return TopicBroadcaster()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, fake_redis) -> AsyncGenerator[AsyncClient, None]:
    """提供配置好依赖覆盖的异步 HTTP 测试客户端。"""
    from netsentry.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_inventory] = lambda: InventoryStore(TestingSessionLocal)
    app.dependency_overrides[get_timeseries] = lambda: TimeSeriesStore(TestingSessionLocal)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
