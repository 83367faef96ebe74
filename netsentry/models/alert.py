"""
告警模型 (Alert Model)

每个 (设备, 告警类型) 同时最多只有一条活跃告警，由部分唯一索引保证。

At most one active alert exists per (device, alert type), enforced by a
partial unique index.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, DateTime, Boolean, Text, Index, func, text
from sqlalchemy.orm import Mapped, mapped_column

from netsentry.core.database import Base


class Alert(Base):
    """
    告警事件表 (Alert Event Table)

    active=True 表示仍在触发；恢复后置为 False 并记录 resolved_at。
    """
    __tablename__ = "alerts"
    __table_args__ = (
        Index(
            "uq_alerts_active_device_type",
            "device_id",
            "type",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active = 1"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)  # 设备 ID (Device ID)
    type: Mapped[str] = mapped_column(String(30), nullable=False)  # OFFLINE/CPU_HIGH/TEMP_HIGH/VOLTAGE_LOW
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # 告警消息 (Alert Message)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)  # CRITICAL/WARNING
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)  # 是否活跃 (Is Active)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
