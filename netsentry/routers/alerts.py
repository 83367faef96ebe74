"""
告警路由模块 (Alert Router)

API端点：GET /api/v1/alerts
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from netsentry.schemas.alert import AlertResponse
from netsentry.services.inventory import InventoryStore, get_inventory

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


@router.get("", response_model=list[AlertResponse])
async def list_alerts(
    active: Optional[bool] = True,
    device_id: Optional[str] = None,
    severity: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    inventory: InventoryStore = Depends(get_inventory),
):
    """
    告警列表查询接口 (Alert List Query)

    Args:
        active: True 只看活跃告警，False 只看已恢复，不传则全部
        device_id: 设备 ID 筛选
        severity: 严重级别筛选（CRITICAL/WARNING）
        limit: 最多返回条数
    """
    return await inventory.list_alerts(active=active, device_id=device_id, severity=severity, limit=limit)
