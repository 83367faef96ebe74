"""
设备库存服务 (Device Inventory Service)

轮询引擎对库存数据库的全部读写：读取设备快照、回写状态与设备标识、
幂等地插入告警以及在恢复后解除告警。每个操作使用独立会话、独立提交，
任何一个失败都不会回滚其他操作。

All reads and writes the polling engine does against the inventory database.
Each operation uses its own session and commit; one failing never rolls back
another.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from netsentry.core.config import settings
from netsentry.core.database import async_session
from netsentry.models.alert import Alert
from netsentry.models.device import Device
from netsentry.schemas.device import DeviceConfig, ManagedConfig, PollStatus

logger = logging.getLogger(__name__)


def to_device_config(device: Device) -> DeviceConfig:
    """把库存行转换为轮询用的类型化快照；没有用户名的设备只做 ICMP 检测。"""
    managed = None
    if device.auth_user:
        default_port = settings.api_tls_port if device.api_ssl else settings.api_port
        managed = ManagedConfig(
            username=device.auth_user,
            password=device.auth_password or "",
            port=device.api_port or default_port,
            tls=bool(device.api_ssl),
            interface=device.wan_interface or None,
        )
    return DeviceConfig(
        id=device.id,
        name=device.name,
        address=device.ip_address,
        role=device.type or "ACCESS",
        managed=managed,
    )


class InventoryStore:
    def __init__(self, session_factory: async_sessionmaker = async_session):
        self._session = session_factory

    async def list_devices(self) -> list[DeviceConfig]:
        async with self._session() as db:
            result = await db.execute(select(Device).order_by(Device.name))
            return [to_device_config(d) for d in result.scalars().all()]

    async def update_status(self, device_id: str, status: PollStatus, last_seen: datetime | None,
                            identity: dict | None = None) -> None:
        """回写状态；last_seen 为 None（设备不可达）时保留上次可达时间。"""
        values = {"status": status.value}
        if last_seen is not None:
            values["last_seen"] = last_seen
        for key in ("board_name", "version"):
            if identity and identity.get(key):
                values[key] = identity[key]
        async with self._session() as db:
            await db.execute(update(Device).where(Device.id == device_id).values(**values))
            await db.commit()

    async def insert_alert_if_absent(self, device_id: str, alert_type: str, message: str,
                                     severity: str) -> bool:
        """同一 (设备, 类型) 已有活跃告警时什么都不做。返回是否新建。"""
        async with self._session() as db:
            result = await db.execute(
                select(Alert.id)
                .where(Alert.device_id == device_id, Alert.type == alert_type, Alert.active == True)  # noqa: E712
                .limit(1)
            )
            if result.scalar_one_or_none() is not None:
                return False
            db.add(Alert(device_id=device_id, type=alert_type, message=message,
                         severity=severity, active=True))
            try:
                await db.commit()
            except IntegrityError:
                # 并发插入被部分唯一索引拦截
                await db.rollback()
                return False
        logger.warning(f"New Alert [{severity}]: {message} (device: {device_id})")
        return True

    async def resolve_alerts(self, device_id: str, alert_types: list[str]) -> int:
        """把该设备指定类型的活跃告警标记为已恢复，返回解除的条数。"""
        if not alert_types:
            return 0
        async with self._session() as db:
            result = await db.execute(
                update(Alert)
                .where(Alert.device_id == device_id, Alert.type.in_(alert_types), Alert.active == True)  # noqa: E712
                .values(active=False, resolved_at=datetime.now(timezone.utc))
            )
            await db.commit()
        if result.rowcount:
            logger.info(f"Resolved {result.rowcount} alert(s) {alert_types} for device {device_id}")
        return result.rowcount or 0

    async def list_alerts(self, active: bool | None = True, device_id: str | None = None,
                          severity: str | None = None, limit: int = 200) -> list[Alert]:
        """active 为 None 时返回活跃与已恢复的全部告警，按创建时间倒序。"""
        stmt = select(Alert)
        if active is not None:
            stmt = stmt.where(Alert.active == active)
        if device_id:
            stmt = stmt.where(Alert.device_id == device_id)
        if severity:
            stmt = stmt.where(Alert.severity == severity.upper())
        stmt = stmt.order_by(Alert.created_at.desc(), Alert.id.desc()).limit(limit)
        async with self._session() as db:
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def upsert_devices(self, records: list[dict]) -> tuple[int, int]:
        """按名称导入设备（用于 YAML 种子文件），返回 (新建数, 更新数)。"""
        created = updated = 0
        async with self._session() as db:
            for rec in records:
                result = await db.execute(select(Device).where(Device.name == rec["name"]))
                device = result.scalar_one_or_none()
                if device is None:
                    db.add(Device(**rec))
                    created += 1
                else:
                    for key, value in rec.items():
                        setattr(device, key, value)
                    updated += 1
            await db.commit()
        return created, updated


def get_inventory() -> InventoryStore:
    """FastAPI 依赖：库存服务。"""
    return InventoryStore()
