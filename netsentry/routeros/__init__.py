"""
RouterOS API 客户端 (RouterOS API Client)

基于 asyncio 流实现的 RouterOS API 会话：长度前缀编码的 word/sentence 协议、
可选 TLS、登录、以及通过 .tag 在单个会话上并发多条查询。

asyncio-stream implementation of a RouterOS API session: length-prefixed
word/sentence protocol, optional TLS, login, and .tag multiplexing of
concurrent queries over one session.
"""
from netsentry.routeros.connection import ConnectionState, RouterOSConnection
from netsentry.routeros.exceptions import (
    ConnectionClosedError,
    ConnectTimeoutError,
    FatalError,
    LoginError,
    QueryError,
    QueryTimeoutError,
    RouterOSError,
    SessionError,
    TrapError,
)

__all__ = [
    "ConnectionState",
    "RouterOSConnection",
    "RouterOSError",
    "SessionError",
    "ConnectionClosedError",
    "ConnectTimeoutError",
    "FatalError",
    "LoginError",
    "QueryError",
    "QueryTimeoutError",
    "TrapError",
]
