"""
设备路由模块 (Device Router)

API端点：GET /api/v1/devices, GET /api/v1/devices/{id}/latest,
GET /api/v1/devices/{id}/history
"""
import json
import logging
from datetime import datetime, timezone, timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from netsentry.core.database import get_db
from netsentry.core.exceptions import NotFoundError
from netsentry.core.redis import get_redis
from netsentry.models.device import Device
from netsentry.schemas.device import DeviceMetricResponse, DeviceResponse
from netsentry.services.publisher import LATEST_KEY
from netsentry.services.timeseries import TimeSeriesStore, get_timeseries

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/devices", tags=["devices"])


async def _get_device_or_404(db: AsyncSession, device_id: str) -> Device:
    device = await db.get(Device, device_id)
    if device is None:
        raise NotFoundError("设备不存在 (Device not found)", detail=device_id)
    return device


@router.get("", response_model=list[DeviceResponse])
async def list_devices(
    status: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    """设备列表，可按状态过滤（ONLINE/WARNING/OFFLINE/UNKNOWN）。凭据不会出现在响应中。"""
    query = select(Device).order_by(Device.name)
    if status:
        query = query.where(Device.status == status.upper())
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{device_id}/latest")
async def get_latest(
    device_id: str,
    db: AsyncSession = Depends(get_db),
):
    """
    设备最新指标 (Latest Device Metrics)

    优先读取 Redis 中轮询引擎缓存的最新详情；缓存缺失时回退到库存中的状态字段，
    此时 metrics 为空。
    """
    device = await _get_device_or_404(db, device_id)
    try:
        redis = await get_redis()
        cached = await redis.get(LATEST_KEY.format(device_id=device.id))
    except Exception as e:
        logger.debug(f"Latest detail cache unavailable for {device.id}: {e}")
        cached = None
    if cached:
        return json.loads(cached)
    return {
        "id": device.id,
        "name": device.name,
        "status": device.status,
        "latency": 0.0,
        "timestamp": device.last_seen.isoformat() if device.last_seen else None,
        "metrics": {},
    }


@router.get("/{device_id}/history", response_model=list[DeviceMetricResponse])
async def get_history(
    device_id: str,
    hours: int = Query(1, ge=1, le=720),
    db: AsyncSession = Depends(get_db),
    timeseries: TimeSeriesStore = Depends(get_timeseries),
):
    """设备历史指标，按时间升序返回最近 hours 小时内的原始点（最多 2000 条）。"""
    await _get_device_or_404(db, device_id)
    since = datetime.now(timezone.utc) - timedelta(hours=hours)
    return await timeseries.history(device_id, since, limit=2000)
