"""
设备模型 (Device Model)

定义被监控网络设备的库存表结构。设备由外部开通流程写入，
轮询引擎每个周期只读取一次快照，并回写状态、最后在线时间和设备标识。

Defines the inventory table for monitored network devices. Devices are written
by the external provisioning flow; the polling engine reads one snapshot per
cycle and writes back status, last-seen time and device identity.
"""
import uuid
from datetime import datetime

from sqlalchemy import String, DateTime, Integer, Boolean, Float, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from netsentry.core.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class Device(Base):
    """
    设备表 (Device Table)

    凭据字段为空时该设备只做 ICMP 可达性检测；有凭据时通过 RouterOS API 拉取指标。

    A device without credentials is only probed over ICMP; with credentials it
    is polled over the RouterOS API.
    """
    __tablename__ = "nodes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)  # 设备 ID (Device ID)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)  # 显示名称 (Display Name)
    ip_address: Mapped[str] = mapped_column(String(45), nullable=False)  # 管理地址 (Management Address)
    api_port: Mapped[int | None] = mapped_column(Integer, nullable=True)  # API 端口，空则按 TLS 取默认值 (API Port)
    api_ssl: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)  # 是否使用 TLS (Use TLS)
    type: Mapped[str] = mapped_column(String(50), nullable=False, default="ACCESS")  # 设备角色 (Device Role)
    auth_user: Mapped[str | None] = mapped_column(String(100), nullable=True)  # API 用户名 (API Username)
    auth_password: Mapped[str | None] = mapped_column(Text, nullable=True)  # API 密码 (API Password)
    wan_interface: Mapped[str | None] = mapped_column(String(100), nullable=True)  # 监控的接口名 (Monitored Interface)
    location_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="UNKNOWN")  # ONLINE/WARNING/OFFLINE
    last_seen: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)  # 最后轮询时间 (Last Polled)
    board_name: Mapped[str | None] = mapped_column(String(100), nullable=True)  # 硬件型号 (Board Name)
    version: Mapped[str | None] = mapped_column(String(100), nullable=True)  # RouterOS 版本 (RouterOS Version)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
