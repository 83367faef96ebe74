"""
设备与轮询结果数据结构

DeviceConfig 是轮询引擎每周期读取的设备快照；只有存在凭据时才带 ManagedConfig，
因此"仅 ping"与"完全托管"两种设备在类型上是明确区分的。
"""
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

# ICMP 不可达时的内部延迟哨兵值，发布前归零
UNREACHABLE = -1.0


class PollStatus(str, Enum):
    ONLINE = "ONLINE"
    WARNING = "WARNING"
    OFFLINE = "OFFLINE"


class ManagedConfig(BaseModel):
    """RouterOS API 管理配置，仅当设备有凭据时存在。"""
    username: str
    password: str = ""
    port: int = 8728
    tls: bool = False
    interface: str | None = None  # 需要计算流量速率的接口


class DeviceConfig(BaseModel):
    """设备快照。"""
    id: str
    name: str
    address: str
    role: str = "ACCESS"
    managed: ManagedConfig | None = None

    @property
    def is_managed(self) -> bool:
        return self.managed is not None

    @property
    def pool_key(self) -> tuple[str, int] | None:
        if self.managed is None:
            return None
        return (self.address, self.managed.port)


class DeviceMetrics(BaseModel):
    """单周期采集到的指标；未采集的字段为 None。"""
    cpu_load: float | None = None
    memory_usage: float | None = None
    temperature: float | None = None
    voltage: float | None = None
    tx_rate: float | None = None
    rx_rate: float | None = None
    active_sessions: int | None = None
    uptime: str | None = None
    board_name: str | None = None
    version: str | None = None

    def present(self) -> dict:
        return self.model_dump(exclude_none=True)


class PollResult(BaseModel):
    """一台设备一次轮询的结果，周期结束即丢弃。"""
    device_id: str
    device_name: str
    status: PollStatus
    latency: float = UNREACHABLE
    metrics: DeviceMetrics = Field(default_factory=DeviceMetrics)
    timestamp: datetime
    error: str | None = None

    @property
    def published_latency(self) -> float:
        return self.latency if self.latency >= 0 else 0.0

    def summary(self) -> "DashboardEntry":
        return DashboardEntry(
            id=self.device_id,
            status=self.status,
            latency=self.published_latency,
            tx_rate=self.metrics.tx_rate,
            rx_rate=self.metrics.rx_rate,
            cpu_load=self.metrics.cpu_load,
            memory_usage=self.metrics.memory_usage,
        )

    def detail(self) -> "DeviceDetail":
        return DeviceDetail(
            id=self.device_id,
            name=self.device_name,
            status=self.status,
            latency=self.published_latency,
            timestamp=self.timestamp,
            metrics=self.metrics.present(),
        )


class DashboardEntry(BaseModel):
    """仪表盘汇总中的单个设备条目。"""
    id: str
    status: PollStatus
    latency: float
    tx_rate: float | None = None
    rx_rate: float | None = None
    cpu_load: float | None = None
    memory_usage: float | None = None


class DeviceDetail(BaseModel):
    """设备详情推送消息，只发给订阅了该设备主题的会话。"""
    id: str
    name: str
    status: PollStatus
    latency: float
    timestamp: datetime
    metrics: dict


class MetricPoint(BaseModel):
    """时序点：tags + 本周期实际存在的 fields。"""
    device_id: str
    device_name: str
    timestamp: datetime
    fields: dict

    @classmethod
    def from_result(cls, result: PollResult) -> "MetricPoint":
        fields = {"status": result.status.value, "latency": result.published_latency}
        fields.update(result.metrics.present())
        # board_name/version 属于设备标识，写入库存而不是时序
        fields.pop("board_name", None)
        fields.pop("version", None)
        return cls(
            device_id=result.device_id,
            device_name=result.device_name,
            timestamp=result.timestamp,
            fields=fields,
        )


class DeviceResponse(BaseModel):
    """设备列表响应体（不包含凭据）。"""
    id: str
    name: str
    ip_address: str
    api_port: int | None = None
    api_ssl: bool
    type: str
    wan_interface: str | None = None
    location_lat: float | None = None
    location_lng: float | None = None
    status: str
    last_seen: datetime | None = None
    board_name: str | None = None
    version: str | None = None

    model_config = {"from_attributes": True}


class DeviceMetricResponse(BaseModel):
    """设备历史指标响应体。"""
    device_id: str
    status: str
    latency: float
    cpu_load: float | None = None
    memory_usage: float | None = None
    temperature: float | None = None
    voltage: float | None = None
    tx_rate: float | None = None
    rx_rate: float | None = None
    active_sessions: int | None = None
    recorded_at: datetime

    model_config = {"from_attributes": True}
