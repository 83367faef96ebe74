"""
设备指标采集模块。

在一个 READY 的 RouterOS 会话上并发执行互相独立的只读查询：

- 资源：CPU 负载、总/空闲内存、运行时长、型号与版本
- 健康：温度、电压（并非所有型号都支持，缺失可容忍）
- 接口计数器：读取 WAN 接口的 rx-byte / tx-byte，计算流量速率；
  未配置监控接口时从活跃默认路由推断，推断不出则使用 ether1
- PPP 活跃会话数

单个查询块失败（!trap、查询超时）只会让该块的字段缺失；
会话级失败（连接断开、!fatal）会中止整个采集并把该设备从连接池驱逐。
"""
import asyncio
import logging
import re
import time
from typing import Callable

from netsentry.routeros import QueryError, RouterOSConnection, SessionError
from netsentry.schemas.device import DeviceConfig, DeviceMetrics
from netsentry.services.connection_pool import ConnectionPool
from netsentry.services.traffic import TrafficCounterCache

logger = logging.getLogger(__name__)

DEFAULT_WAN_INTERFACE = "ether1"
_IPV4 = re.compile(r"^\d+\.\d+\.\d+\.\d+$")
_REACHABLE = re.compile(r"reachable\s+(?:on|via)\s+(\S+)")


def _int(value) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _float(value) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def memory_percent(total: int | None, free: int | None) -> float | None:
    """内存使用率 = (总量 - 空闲) / 总量 × 100，总量为 0 时返回 0。"""
    if total is None or free is None:
        return None
    if total <= 0:
        return 0.0
    return round((total - free) / total * 100, 1)


def parse_resource(rows: list[dict]) -> dict:
    res = rows[0] if rows else {}
    return {
        "cpu_load": _float(res.get("cpu-load")),
        "memory_usage": memory_percent(_int(res.get("total-memory")), _int(res.get("free-memory"))),
        "uptime": res.get("uptime") or None,
        "board_name": res.get("board-name") or None,
        "version": res.get("version") or None,
    }


def parse_health(rows: list[dict]) -> dict:
    """兼容两种格式：v6 单行 {temperature, voltage}；v7 多行 {name, value}。"""
    values: dict[str, str] = {}
    for row in rows:
        if "name" in row and "value" in row:
            values[row["name"]] = row["value"]
        else:
            values.update(row)
    temperature = _float(values.get("temperature"))
    if temperature is None:
        temperature = _float(values.get("cpu-temperature"))
    return {
        "temperature": temperature,
        "voltage": _float(values.get("voltage")),
    }


def parse_wan_interface(rows: list[dict]) -> str:
    """
    从活跃默认路由推断 WAN 接口。

    优先解析 gateway-status（"1.1.1.1 reachable on pppoe-out1"），
    其次是非 IP 形式的 gateway（如 pppoe-out1），都没有时返回 ether1。
    """
    if rows:
        route = rows[0]
        match = _REACHABLE.search(route.get("gateway-status") or "")
        if match:
            return match.group(1)
        gateway = route.get("gateway") or ""
        if gateway and not _IPV4.match(gateway):
            return gateway
    return DEFAULT_WAN_INTERFACE


class MetricsFetcher:
    def __init__(self, pool: ConnectionPool, traffic_cache: TrafficCounterCache | None = None,
                 clock: Callable[[], float] = time.monotonic):
        self.pool = pool
        self.traffic_cache = traffic_cache if traffic_cache is not None else TrafficCounterCache()
        self._clock = clock

    async def fetch(self, device: DeviceConfig) -> DeviceMetrics:
        """获取设备指标。

        Raises:
            SessionError: 建连/认证失败或会话中途失效；此时该设备已被驱逐。
        """
        try:
            conn = await self.pool.acquire(device)
        except SessionError:
            await self.pool.evict(device.pool_key)
            raise

        blocks = {
            "resource": self._resource(conn),
            "health": self._health(conn),
            "sessions": self._active_sessions(conn),
            "traffic": self._traffic(conn, device),
        }

        results = await asyncio.gather(*blocks.values(), return_exceptions=True)

        fields: dict = {}
        for name, result in zip(blocks, results):
            if isinstance(result, SessionError):
                await self.pool.evict(device.pool_key)
                raise result
            if isinstance(result, QueryError):
                logger.debug(f"{name} query failed on {device.name}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            fields.update({k: v for k, v in result.items() if v is not None})
        return DeviceMetrics(**fields)

    async def _resource(self, conn: RouterOSConnection) -> dict:
        return parse_resource(await conn.query("/system/resource/print"))

    async def _health(self, conn: RouterOSConnection) -> dict:
        return parse_health(await conn.query("/system/health/print"))

    async def _active_sessions(self, conn: RouterOSConnection) -> dict:
        rows = await conn.query("/ppp/active/print", {".proplist": ".id"})
        return {"active_sessions": len(rows)}

    async def _detect_wan(self, conn: RouterOSConnection) -> str:
        rows = await conn.query(
            "/ip/route/print",
            {".proplist": "gateway,gateway-status"},
            queries=["dst-address=0.0.0.0/0", "active=true"],
        )
        return parse_wan_interface(rows)

    async def _traffic(self, conn: RouterOSConnection, device: DeviceConfig) -> dict:
        interface = device.managed.interface or await self._detect_wan(conn)
        rows = await conn.query(
            "/interface/print",
            {".proplist": "name,rx-byte,tx-byte"},
            queries=[f"name={interface}"],
        )
        now = self._clock()
        if not rows:
            logger.warning(f"Interface {interface} not found on {device.name}")
            return {}
        rx_bytes = _int(rows[0].get("rx-byte"))
        tx_bytes = _int(rows[0].get("tx-byte"))
        if rx_bytes is None or tx_bytes is None:
            return {}
        rate = self.traffic_cache.observe((device.id, interface), rx_bytes, tx_bytes, now)
        return {"rx_rate": rate.rx_mbps, "tx_rate": rate.tx_mbps}
