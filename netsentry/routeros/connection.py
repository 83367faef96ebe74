"""
RouterOS API 会话 (RouterOS API Session)

一个 RouterOSConnection 对应设备上的一个 API 会话，生命周期是显式状态机：

    DISCONNECTED → CONNECTING → READY → (FAILED | DISCONNECTED)

所有状态变化都通过同一个监听通道 (add_listener) 通知，连接池据此驱逐失效会话。
后台读循环按 .tag 把回复分发给等待中的查询，因此多条查询可以在同一会话上并发。

One RouterOSConnection is one API session on a device. Every state change is
reported on a single listener channel, which the connection pool consumes to
evict dead sessions. A background reader dispatches replies by .tag so
several queries can run concurrently on one session.
"""
import asyncio
import binascii
import hashlib
import itertools
import logging
import ssl
from enum import Enum
from typing import Callable, Optional

from netsentry.routeros.exceptions import (
    ConnectionClosedError,
    FatalError,
    LoginError,
    QueryTimeoutError,
    SessionError,
    TrapError,
)
from netsentry.routeros.protocol import build_command, encode_sentence, parse_sentence, read_sentence

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    FAILED = "failed"


Listener = Callable[["RouterOSConnection", ConnectionState, Optional[Exception]], None]


class _Pending:
    """等待 !done 的一条查询。"""
    __slots__ = ("future", "rows", "trap")

    def __init__(self, future: asyncio.Future):
        self.future = future
        self.rows: list[dict] = []
        self.trap: TrapError | None = None


class RouterOSConnection:
    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str = "",
        tls: bool = False,
        tls_verify: bool = False,
        query_timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.tls = tls
        self.tls_verify = tls_verify
        self.query_timeout = query_timeout

        self.state = ConnectionState.DISCONNECTED
        self.last_error: Exception | None = None
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._reader_task: asyncio.Task | None = None
        self._pending: dict[str, _Pending] = {}
        self._tags = itertools.count(1)
        self._listeners: list[Listener] = []
        self._write_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"<RouterOSConnection {self.host}:{self.port} {self.state.value}>"

    # ── 状态机 ────────────────────────────────────────────────────────

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def _transition(self, state: ConnectionState, error: Exception | None = None) -> None:
        if state == self.state:
            return
        logger.debug(f"RouterOS {self.host}:{self.port} {self.state.value} -> {state.value}")
        self.state = state
        if error is not None:
            self.last_error = error
        for listener in list(self._listeners):
            try:
                listener(self, state, error)
            except Exception:
                logger.exception(f"Connection listener failed for {self.host}:{self.port}")

    # ── 建连与登录 ────────────────────────────────────────────────────

    def _ssl_context(self) -> ssl.SSLContext:
        ctx = ssl.create_default_context()
        if not self.tls_verify:
            # 设备普遍使用自签名证书
            ctx.check_hostname = False
            ctx.verify_mode = ssl.CERT_NONE
        return ctx

    async def connect(self) -> None:
        """建立 TCP(/TLS) 连接并登录。任何失败（包括被取消）都会释放已打开的套接字。"""
        if self.state == ConnectionState.READY:
            return
        self._transition(ConnectionState.CONNECTING)
        try:
            try:
                self._reader, self._writer = await asyncio.open_connection(
                    self.host, self.port, ssl=self._ssl_context() if self.tls else None
                )
            except OSError as e:
                raise ConnectionClosedError(f"connect to {self.host}:{self.port} failed: {e}") from e
            self._reader_task = asyncio.create_task(
                self._read_loop(), name=f"routeros-reader-{self.host}:{self.port}"
            )
            await self._login()
        except BaseException as e:
            self._abort()
            self._fail_pending(ConnectionClosedError("connection attempt aborted"))
            self._transition(ConnectionState.FAILED, e if isinstance(e, Exception) else None)
            raise
        self._transition(ConnectionState.READY)

    async def _login(self) -> None:
        try:
            reply = await self._execute(
                "/login", {"name": self.username, "password": self.password}, timeout=self.query_timeout
            )
        except TrapError as e:
            raise LoginError(f"login rejected for {self.username}@{self.host}: {e}") from e
        except QueryTimeoutError as e:
            raise LoginError(f"login timed out for {self.username}@{self.host}") from e

        # RouterOS < 6.43 返回 challenge，需要再发送 MD5 响应
        challenge = reply[0].get("ret") if reply else None
        if challenge:
            digest = hashlib.md5(
                b"\x00" + self.password.encode("utf-8") + binascii.unhexlify(challenge)
            ).hexdigest()
            try:
                await self._execute(
                    "/login", {"name": self.username, "response": "00" + digest}, timeout=self.query_timeout
                )
            except TrapError as e:
                raise LoginError(f"login rejected for {self.username}@{self.host}: {e}") from e

    # ── 查询 ──────────────────────────────────────────────────────────

    async def query(self, path: str, attrs: dict | None = None, queries: list[str] | None = None,
                    timeout: float | None = None) -> list[dict]:
        """执行一条命令并返回所有 !re 行。

        Raises:
            TrapError: 设备拒绝该命令（会话仍可用）。
            QueryTimeoutError: 超时（会话仍可用）。
            SessionError: 会话已失效。
        """
        if self.state != ConnectionState.READY:
            raise ConnectionClosedError(f"session {self.host}:{self.port} is {self.state.value}")
        return await self._execute(path, attrs, queries, timeout=timeout or self.query_timeout)

    async def _execute(self, path: str, attrs: dict | None = None, queries: list[str] | None = None,
                       timeout: float | None = None) -> list[dict]:
        tag = str(next(self._tags))
        future = asyncio.get_running_loop().create_future()
        self._pending[tag] = _Pending(future)
        try:
            await self._send(build_command(path, attrs, queries, tag))
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            await self._cancel_tag(tag)
            raise QueryTimeoutError(f"{path} timed out after {timeout}s on {self.host}") from None
        finally:
            self._pending.pop(tag, None)

    async def _cancel_tag(self, tag: str) -> None:
        # 尽力而为：后续到达的 !trap/!done 因 tag 已移除而被忽略
        try:
            await self._send(["/cancel", f"=tag={tag}"])
        except SessionError:
            pass

    async def _send(self, words: list[str]) -> None:
        if self._writer is None:
            raise ConnectionClosedError(f"session {self.host}:{self.port} has no transport")
        async with self._write_lock:
            try:
                self._writer.write(encode_sentence(words))
                await self._writer.drain()
            except OSError as e:
                raise ConnectionClosedError(f"write to {self.host}:{self.port} failed: {e}") from e

    # ── 读循环 ────────────────────────────────────────────────────────

    async def _read_loop(self) -> None:
        error: SessionError
        try:
            while True:
                words = await read_sentence(self._reader)
                if not words:
                    continue
                if words[0] == "!fatal":
                    raise FatalError(words[1] if len(words) > 1 else "session terminated by device")
                self._dispatch(parse_sentence(words))
        except asyncio.CancelledError:
            raise
        except FatalError as e:
            error = e
        except (asyncio.IncompleteReadError, OSError, ValueError) as e:
            error = ConnectionClosedError(f"connection to {self.host}:{self.port} lost: {e!r}")

        logger.warning(f"RouterOS session {self.host}:{self.port} failed: {error}")
        self._fail_pending(error)
        self._abort(cancel_reader=False)
        self._transition(ConnectionState.FAILED, error)

    def _dispatch(self, reply) -> None:
        pending = self._pending.get(reply.tag) if reply.tag is not None else None
        if pending is None:
            logger.debug(f"Ignoring reply {reply.type} with unknown tag {reply.tag} from {self.host}")
            return
        if reply.type == "!re":
            pending.rows.append(reply.attrs)
        elif reply.type == "!trap":
            pending.trap = TrapError(reply.attrs.get("message", "trap"), reply.attrs.get("category"))
        elif reply.type == "!done":
            if pending.future.done():
                return
            if pending.trap is not None:
                pending.future.set_exception(pending.trap)
            else:
                # 旧版登录 challenge 在 !done 的属性里
                rows = pending.rows or ([reply.attrs] if reply.attrs else [])
                pending.future.set_result(rows)
        # !empty (RouterOS 7.18+) 后面总跟着 !done

    def _fail_pending(self, error: Exception) -> None:
        for pending in list(self._pending.values()):
            if not pending.future.done():
                pending.future.set_exception(error)
        self._pending.clear()

    # ── 释放 ──────────────────────────────────────────────────────────

    def _abort(self, cancel_reader: bool = True) -> None:
        if cancel_reader and self._reader_task is not None and not self._reader_task.done():
            self._reader_task.cancel()
        if self._writer is not None:
            self._writer.close()
        self._writer = None
        self._reader = None

    async def close(self) -> None:
        """关闭会话并释放套接字，可重复调用。"""
        if self.state == ConnectionState.DISCONNECTED and self._writer is None:
            return
        reader_task = self._reader_task
        writer = self._writer
        self._fail_pending(ConnectionClosedError(f"session {self.host}:{self.port} closed"))
        self._abort()
        if reader_task is not None and reader_task is not asyncio.current_task():
            await asyncio.gather(reader_task, return_exceptions=True)
        if writer is not None:
            try:
                await writer.wait_closed()
            except (OSError, ssl.SSLError):
                pass
        self._reader_task = None
        self._transition(ConnectionState.DISCONNECTED)
