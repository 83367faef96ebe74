"""
设备指标模型 (Device Metric Model)

时序点：标签为设备 ID 与设备名，字段为本周期实际采集到的指标子集。
每台设备每个周期写入一行，未采集到的字段保持 NULL。

A time-series point: tagged with device id and name; fields are the subset of
metrics collected this cycle. One row per device per cycle; missing fields
stay NULL.
"""
from datetime import datetime

from sqlalchemy import String, Integer, Float, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from netsentry.core.database import Base


class DeviceMetric(Base):
    """设备指标表 (Device Metric Table)"""
    __tablename__ = "device_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # 标签 (Tags)
    device_id: Mapped[str] = mapped_column(String(36), index=True, nullable=False)
    device_name: Mapped[str] = mapped_column(String(255), nullable=False)
    # 字段 (Fields)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    latency: Mapped[float] = mapped_column(Float, nullable=False, default=0)  # 毫秒 (ms)
    cpu_load: Mapped[float | None] = mapped_column(Float, nullable=True)  # %
    memory_usage: Mapped[float | None] = mapped_column(Float, nullable=True)  # %
    temperature: Mapped[float | None] = mapped_column(Float, nullable=True)  # 摄氏度 (C)
    voltage: Mapped[float | None] = mapped_column(Float, nullable=True)  # 伏特 (V)
    tx_rate: Mapped[float | None] = mapped_column(Float, nullable=True)  # Mbps
    rx_rate: Mapped[float | None] = mapped_column(Float, nullable=True)  # Mbps
    active_sessions: Mapped[int | None] = mapped_column(Integer, nullable=True)
    uptime: Mapped[str | None] = mapped_column(String(64), nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )
