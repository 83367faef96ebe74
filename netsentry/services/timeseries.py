"""
时序指标写入模块。

每台设备每个周期生成一个点，先追加到本周期缓冲区，整个周期结束后一次性批量写入。
写入失败只记录日志，下一个周期自然恢复，不在周期内重试。
"""
import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from netsentry.core.database import async_session
from netsentry.models.device_metric import DeviceMetric
from netsentry.schemas.device import MetricPoint

logger = logging.getLogger(__name__)

# DeviceMetric 中可由点字段填充的列
POINT_COLUMNS = {
    "status", "latency", "cpu_load", "memory_usage", "temperature",
    "voltage", "tx_rate", "rx_rate", "active_sessions", "uptime",
}


class TimeSeriesStore:
    def __init__(self, session_factory: async_sessionmaker = async_session):
        self._session = session_factory

    async def write_batch(self, points: list[MetricPoint]) -> int:
        if not points:
            return 0
        rows = [
            DeviceMetric(
                device_id=p.device_id,
                device_name=p.device_name,
                recorded_at=p.timestamp,
                **{k: v for k, v in p.fields.items() if k in POINT_COLUMNS},
            )
            for p in points
        ]
        async with self._session() as db:
            db.add_all(rows)
            await db.commit()
        return len(rows)

    async def history(self, device_id: str, since: datetime, limit: int = 2000) -> list[DeviceMetric]:
        async with self._session() as db:
            result = await db.execute(
                select(DeviceMetric)
                .where(DeviceMetric.device_id == device_id, DeviceMetric.recorded_at >= since)
                .order_by(DeviceMetric.recorded_at)
                .limit(limit)
            )
            return list(result.scalars().all())


class PointBuffer:
    """单个周期的时序点缓冲区。"""

    def __init__(self, store: TimeSeriesStore):
        self.store = store
        self._points: list[MetricPoint] = []

    def append(self, point: MetricPoint) -> None:
        self._points.append(point)

    def __len__(self) -> int:
        return len(self._points)

    async def flush(self) -> int:
        points, self._points = self._points, []
        if not points:
            return 0
        try:
            written = await self.store.write_batch(points)
        except Exception as e:
            logger.error(f"Time-series batch write failed ({len(points)} points dropped): {e}")
            return 0
        logger.debug(f"Flushed {written} time-series points")
        return written


def get_timeseries() -> TimeSeriesStore:
    """FastAPI 依赖：时序存储。"""
    return TimeSeriesStore()
