"""
RouterOS 连接池 (RouterOS Connection Pool)

每个 (地址, 端口) 最多维护一个长连接会话，首次使用时惰性建立。

- 单飞 (single-flight)：同一 key 的并发 acquire 只发起一次建连，共享同一个 future；
  不同 key 之间互不阻塞，没有全局锁。
- 建连与登录整体受超时约束，超时或失败时不缓存任何东西，并关闭已打开的套接字。
- 建连成功后在会话上注册状态监听，一旦会话进入 FAILED 或 DISCONNECTED 立即从池中移除，
  下一次 acquire 会从头重新建连。

One long-lived session per (address, port), created lazily. Concurrent
acquires for one key share a single connect attempt; a session that reports
FAILED or DISCONNECTED is evicted immediately.
"""
import asyncio
import logging
from functools import partial
from typing import Callable

from netsentry.core.config import settings
from netsentry.routeros import ConnectionState, ConnectTimeoutError, RouterOSConnection
from netsentry.schemas.device import DeviceConfig

logger = logging.getLogger(__name__)

PoolKey = tuple[str, int]
ConnectionFactory = Callable[[DeviceConfig], RouterOSConnection]


def default_connection_factory(device: DeviceConfig) -> RouterOSConnection:
    managed = device.managed
    return RouterOSConnection(
        host=device.address,
        port=managed.port,
        username=managed.username,
        password=managed.password,
        tls=managed.tls,
        tls_verify=settings.api_tls_verify,
        query_timeout=settings.query_timeout_seconds,
    )


class ConnectionPool:
    def __init__(self, factory: ConnectionFactory | None = None, connect_timeout: float | None = None):
        self._factory = factory or default_connection_factory
        self.connect_timeout = settings.connect_timeout_seconds if connect_timeout is None else connect_timeout
        self._handles: dict[PoolKey, RouterOSConnection] = {}
        self._inflight: dict[PoolKey, asyncio.Future] = {}
        self.connect_attempts = 0

    def get(self, key: PoolKey) -> RouterOSConnection | None:
        return self._handles.get(key)

    def __contains__(self, key: PoolKey) -> bool:
        return key in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    async def acquire(self, device: DeviceConfig) -> RouterOSConnection:
        """返回该设备的 READY 会话，必要时建连。

        Raises:
            ValueError: 设备没有管理配置。
            SessionError: 建连、登录失败或超时。
        """
        key = device.pool_key
        if key is None:
            raise ValueError(f"device {device.name} has no management credentials")

        handle = self._handles.get(key)
        if handle is not None and handle.state == ConnectionState.READY:
            return handle

        inflight = self._inflight.get(key)
        if inflight is None:
            inflight = asyncio.ensure_future(self._connect(key, device))
            self._inflight[key] = inflight
            inflight.add_done_callback(partial(self._connect_done, key))
        # shield：单个调用方被取消不会中断其他调用方共享的建连
        return await asyncio.shield(inflight)

    def _connect_done(self, key: PoolKey, future: asyncio.Future) -> None:
        if self._inflight.get(key) is future:
            del self._inflight[key]
        if not future.cancelled():
            # 所有等待者都可能已被取消，这里取走异常避免 "never retrieved" 警告
            future.exception()

    async def _connect(self, key: PoolKey, device: DeviceConfig) -> RouterOSConnection:
        stale = self._handles.pop(key, None)
        if stale is not None:
            await stale.close()

        self.connect_attempts += 1
        conn = self._factory(device)
        logger.debug(f"Connecting to RouterOS API {key[0]}:{key[1]} ({device.name})")
        try:
            await asyncio.wait_for(conn.connect(), timeout=self.connect_timeout)
        except asyncio.TimeoutError:
            await conn.close()
            raise ConnectTimeoutError(
                f"connection to {key[0]}:{key[1]} timed out after {self.connect_timeout}s"
            ) from None
        except BaseException:
            await conn.close()
            raise

        conn.add_listener(partial(self._on_transition, key))
        self._handles[key] = conn
        logger.info(f"RouterOS session ready for {device.name} ({key[0]}:{key[1]})")
        return conn

    def _on_transition(self, key: PoolKey, conn: RouterOSConnection, state: ConnectionState,
                       error: Exception | None) -> None:
        if state not in (ConnectionState.FAILED, ConnectionState.DISCONNECTED):
            return
        if self._handles.get(key) is conn:
            del self._handles[key]
            logger.info(f"Evicted RouterOS session {key[0]}:{key[1]} ({state.value}: {error})")

    async def evict(self, key: PoolKey) -> None:
        """移除并关闭 key 对应的会话。"""
        conn = self._handles.pop(key, None)
        if conn is not None:
            await conn.close()
            logger.debug(f"Closed RouterOS session {key[0]}:{key[1]}")

    async def close_all(self) -> None:
        for inflight in list(self._inflight.values()):
            inflight.cancel()
        handles = list(self._handles.values())
        self._handles.clear()
        for conn in handles:
            try:
                await conn.close()
            except Exception:
                logger.exception(f"Failed to close RouterOS session {conn.host}:{conn.port}")
        if handles:
            logger.info(f"Closed {len(handles)} RouterOS session(s)")

    def stats(self) -> dict:
        return {
            "sessions": len(self._handles),
            "connecting": len(self._inflight),
            "connect_attempts": self.connect_attempts,
        }
