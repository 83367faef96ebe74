"""
接口流量速率计算模块。

基于接口累计字节计数器的差值计算速率：两次观测之间的字节增量 × 8 / 间隔秒数，
换算为 Mbps 并保留两位小数。计数器回退（设备重启、32 位回绕）或没有基线时速率为 0，
但无论如何缓存都会更新为本次观测值，作为下一周期的基线。

缓存只存在于进程内存中：重启后第一次轮询的速率为 0。
"""
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

CounterKey = tuple[str, str]  # (device_id, interface)


@dataclass
class CounterSample:
    rx_bytes: int
    tx_bytes: int
    timestamp: float  # 秒


@dataclass
class TrafficRate:
    rx_mbps: float = 0.0
    tx_mbps: float = 0.0


def _to_mbps(delta_bytes: int, seconds: float) -> float:
    return round(delta_bytes * 8 / seconds / 1_000_000, 2)


def compute_rate(previous: CounterSample | None, current: CounterSample) -> TrafficRate:
    """由前后两次计数器观测计算速率。"""
    if previous is None:
        return TrafficRate()
    elapsed = current.timestamp - previous.timestamp
    if (
        current.rx_bytes < previous.rx_bytes
        or current.tx_bytes < previous.tx_bytes
        or elapsed <= 0
    ):
        return TrafficRate()
    return TrafficRate(
        rx_mbps=_to_mbps(current.rx_bytes - previous.rx_bytes, elapsed),
        tx_mbps=_to_mbps(current.tx_bytes - previous.tx_bytes, elapsed),
    )


class TrafficCounterCache:
    """按 (设备, 接口) 保存上一次计数器观测。

    observe() 在读旧值和写新值之间没有 await，因此在单事件循环内对同一 key 是原子的。
    """

    def __init__(self):
        self._samples: dict[CounterKey, CounterSample] = {}

    def get(self, key: CounterKey) -> CounterSample | None:
        return self._samples.get(key)

    def observe(self, key: CounterKey, rx_bytes: int, tx_bytes: int, timestamp: float) -> TrafficRate:
        current = CounterSample(rx_bytes, tx_bytes, timestamp)
        previous = self._samples.get(key)
        rate = compute_rate(previous, current)
        if previous is not None and (rx_bytes < previous.rx_bytes or tx_bytes < previous.tx_bytes):
            logger.info(f"Counter reset on {key[0]}/{key[1]}, new baseline rx={rx_bytes} tx={tx_bytes}")
        self._samples[key] = current
        return rate

    def forget(self, device_id: str) -> None:
        for key in [k for k in self._samples if k[0] == device_id]:
            del self._samples[key]

    def __len__(self) -> int:
        return len(self._samples)
