"""
告警评估模块。

对每个周期的轮询结果套用固定规则表，产生告警或在恢复后解除告警：

| 条件               | 类型         | 级别      |
|--------------------|--------------|-----------|
| ICMP 不可达        | OFFLINE      | CRITICAL  |
| cpu_load > 85      | CPU_HIGH     | CRITICAL  |
| temperature > 65   | TEMP_HIGH    | WARNING   |
| voltage < 20       | VOLTAGE_LOW  | WARNING   |

只有本周期实际观测到输入值的规则才参与恢复判断：设备不可达、采集块失败
或设备未托管时，对应类型的告警保持原状。设备一旦响应 ICMP，OFFLINE 即恢复。
"""
import json
import logging
import operator as op
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from netsentry.core.redis import get_redis
from netsentry.schemas.device import DeviceConfig, PollResult, PollStatus
from netsentry.services.inventory import InventoryStore

logger = logging.getLogger(__name__)

ALERT_CHANNEL = "netsentry:alert:new"

OFFLINE = "OFFLINE"

OPERATORS = {
    ">": op.gt,
    "<": op.lt,
}


@dataclass(frozen=True)
class AlertRule:
    type: str
    severity: str
    metric: str
    operator: str
    threshold: float
    message: str  # 格式化模板，可用 {value}

    def violated(self, value: float) -> bool:
        return OPERATORS[self.operator](float(value), self.threshold)


RULES: tuple[AlertRule, ...] = (
    AlertRule("CPU_HIGH", "CRITICAL", "cpu_load", ">", 85, "CPU Load critical: {value}%"),
    AlertRule("TEMP_HIGH", "WARNING", "temperature", ">", 65, "Temperature high: {value}C"),
    AlertRule("VOLTAGE_LOW", "WARNING", "voltage", "<", 20, "Voltage low: {value}V"),
)


@dataclass
class RaisedAlert:
    type: str
    severity: str
    message: str


@dataclass
class AlertDecision:
    raise_alerts: list[RaisedAlert] = field(default_factory=list)
    clear_types: list[str] = field(default_factory=list)


def evaluate(device: DeviceConfig, result: PollResult) -> AlertDecision:
    """根据一次轮询结果计算需要触发和需要解除的告警类型，不做任何 IO。"""
    decision = AlertDecision()
    if result.status == PollStatus.OFFLINE:
        decision.raise_alerts.append(
            RaisedAlert(OFFLINE, "CRITICAL", f"Device {device.name} ({device.address}) is unreachable")
        )
        return decision

    decision.clear_types.append(OFFLINE)
    observed = result.metrics.present()
    for rule in RULES:
        value = observed.get(rule.metric)
        if value is None:
            continue
        if rule.violated(value):
            decision.raise_alerts.append(
                RaisedAlert(rule.type, rule.severity, rule.message.format(value=value))
            )
        else:
            decision.clear_types.append(rule.type)
    return decision


class AlertEvaluator:
    def __init__(self, store: InventoryStore, redis_getter: Callable[[], Awaitable] = get_redis):
        self.store = store
        self._get_redis = redis_getter

    async def apply(self, device: DeviceConfig, result: PollResult) -> list[str]:
        """执行告警决策，返回本次新建的告警类型。存储失败只记录日志。"""
        decision = evaluate(device, result)
        created: list[str] = []

        for alert in decision.raise_alerts:
            try:
                inserted = await self.store.insert_alert_if_absent(
                    device.id, alert.type, alert.message, alert.severity
                )
            except Exception as e:
                logger.warning(f"Failed to record {alert.type} alert for {device.name}: {e}")
                continue
            if inserted:
                created.append(alert.type)
                await self._announce(device, alert, result)

        if decision.clear_types:
            try:
                await self.store.resolve_alerts(device.id, decision.clear_types)
            except Exception as e:
                logger.warning(f"Failed to resolve alerts for {device.name}: {e}")

        return created

    async def _announce(self, device: DeviceConfig, alert: RaisedAlert, result: PollResult) -> None:
        try:
            redis = await self._get_redis()
            await redis.publish(ALERT_CHANNEL, json.dumps({
                "device_id": device.id,
                "device_name": device.name,
                "type": alert.type,
                "severity": alert.severity,
                "message": alert.message,
                "timestamp": result.timestamp.isoformat(),
            }))
        except Exception as e:
            logger.debug(f"Alert announce skipped ({alert.type} on {device.name}): {e}")
