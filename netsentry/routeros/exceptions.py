"""RouterOS API 异常层次。

SessionError 表示会话已不可用（需要从连接池驱逐）；
QueryError 只影响单条查询，会话仍可继续使用。
"""


class RouterOSError(Exception):
    """RouterOS API 异常基类。"""


class SessionError(RouterOSError):
    """会话级错误：连接断开、!fatal、登录失败、建连超时。"""


class ConnectionClosedError(SessionError):
    """底层连接已关闭或读写失败。"""


class ConnectTimeoutError(SessionError):
    """建连或登录超时。"""


class FatalError(SessionError):
    """设备返回 !fatal，会话被对端关闭。"""


class LoginError(SessionError):
    """认证失败。"""


class QueryError(RouterOSError):
    """查询级错误，不影响会话。"""


class TrapError(QueryError):
    """设备对某条命令返回 !trap。"""

    def __init__(self, message: str, category: str | None = None):
        self.category = category
        super().__init__(message)


class QueryTimeoutError(QueryError):
    """单条查询在超时内未收到 !done。"""
