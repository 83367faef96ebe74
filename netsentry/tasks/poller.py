"""
设备轮询任务模块。

固定周期触发一次轮询周期：读取设备快照 → 分块并发轮询 → 批量写入时序数据 →
推送仪表盘汇总。同一时刻最多一个周期在运行，上一个周期未结束时的触发直接跳过。

单台设备的流水线：ICMP 探测 → (可达且已托管) 采集指标 → 告警评估 →
推送设备详情 → 回写库存状态 → 追加时序点。任何单台设备的失败都不会影响其他设备。
"""
import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial

from netsentry.core.config import settings
from netsentry.routeros import SessionError
from netsentry.schemas.device import DeviceConfig, MetricPoint, PollResult, PollStatus, UNREACHABLE
from netsentry.services.alert_evaluator import AlertEvaluator
from netsentry.services.connection_pool import ConnectionPool
from netsentry.services.inventory import InventoryStore
from netsentry.services.metrics_fetcher import MetricsFetcher
from netsentry.services.prober import ReachabilityProber
from netsentry.services.publisher import Publisher
from netsentry.services.timeseries import PointBuffer, TimeSeriesStore
from netsentry.tasks.batching import run_in_chunks

logger = logging.getLogger(__name__)


@dataclass
class CycleReport:
    devices: int = 0
    chunks: int = 0
    statuses: dict[str, int] = field(default_factory=dict)
    failures: int = 0
    points_written: int = 0
    duration: float = 0.0


class PollingEngine:
    def __init__(
        self,
        inventory: InventoryStore | None = None,
        timeseries: TimeSeriesStore | None = None,
        prober: ReachabilityProber | None = None,
        pool: ConnectionPool | None = None,
        fetcher: MetricsFetcher | None = None,
        evaluator: AlertEvaluator | None = None,
        publisher: Publisher | None = None,
        batch_size: int | None = None,
        interval: float | None = None,
    ):
        self.inventory = inventory or InventoryStore()
        self.timeseries = timeseries or TimeSeriesStore()
        self.prober = prober or ReachabilityProber()
        self.pool = pool or ConnectionPool()
        self.fetcher = fetcher or MetricsFetcher(self.pool)
        self.evaluator = evaluator or AlertEvaluator(self.inventory)
        self.publisher = publisher or Publisher()
        self.batch_size = batch_size or settings.poll_batch_size
        self.interval = interval or settings.poll_interval_seconds

        self._in_flight = False
        self.skipped_ticks = 0
        self.last_report: CycleReport | None = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    # ── 单台设备 ──────────────────────────────────────────────────────

    async def poll_device(self, device: DeviceConfig, buffer: PointBuffer) -> PollResult:
        timestamp = datetime.now(timezone.utc)
        latency = await self.prober.probe(device.address)

        if latency < 0:
            result = PollResult(device_id=device.id, device_name=device.name,
                                status=PollStatus.OFFLINE, latency=UNREACHABLE, timestamp=timestamp)
        elif not device.is_managed:
            result = PollResult(device_id=device.id, device_name=device.name,
                                status=PollStatus.ONLINE, latency=latency, timestamp=timestamp)
        else:
            try:
                metrics = await self.fetcher.fetch(device)
            except SessionError as e:
                logger.warning(f"Management session to {device.name} ({device.address}) failed: {e}")
                result = PollResult(device_id=device.id, device_name=device.name,
                                    status=PollStatus.WARNING, latency=latency,
                                    timestamp=timestamp, error=str(e))
            else:
                result = PollResult(device_id=device.id, device_name=device.name,
                                    status=PollStatus.ONLINE, latency=latency,
                                    metrics=metrics, timestamp=timestamp)

        await self.evaluator.apply(device, result)
        await self.publisher.publish_detail(result)

        identity = {"board_name": result.metrics.board_name, "version": result.metrics.version}
        last_seen = timestamp if result.status != PollStatus.OFFLINE else None
        try:
            await self.inventory.update_status(device.id, result.status, last_seen, identity)
        except Exception as e:
            logger.warning(f"Failed to update inventory status for {device.name}: {e}")

        buffer.append(MetricPoint.from_result(result))
        return result

    # ── 周期 ──────────────────────────────────────────────────────────

    async def run_cycle(self) -> CycleReport:
        """执行一个完整轮询周期。读取设备快照失败时直接抛出。"""
        started = time.monotonic()
        devices = await self.inventory.list_devices()
        buffer = PointBuffer(self.timeseries)
        report = CycleReport(devices=len(devices), chunks=math.ceil(len(devices) / self.batch_size))

        outcomes = await run_in_chunks(devices, self.batch_size, partial(self.poll_device, buffer=buffer))

        results: list[PollResult] = []
        for device, outcome in zip(devices, outcomes):
            if isinstance(outcome, BaseException):
                report.failures += 1
                logger.error(f"Polling {device.name} failed: {outcome!r}")
                continue
            results.append(outcome)
            report.statuses[outcome.status.value] = report.statuses.get(outcome.status.value, 0) + 1

        report.points_written = await buffer.flush()
        await self.publisher.publish_summary(results)

        report.duration = round(time.monotonic() - started, 3)
        self.last_report = report
        logger.info(
            f"Poll cycle done: {report.devices} devices in {report.chunks} chunk(s), "
            f"{report.statuses}, {report.failures} failed, {report.duration}s"
        )
        return report

    async def tick(self) -> CycleReport | None:
        """定时器触发入口：已有周期在运行时跳过。"""
        if self._in_flight:
            self.skipped_ticks += 1
            logger.warning("Previous poll cycle still running, skipping this tick")
            return None
        self._in_flight = True
        try:
            return await self.run_cycle()
        except Exception:
            logger.exception("Error in poll cycle")
            return None
        finally:
            self._in_flight = False

    async def poll_loop(self) -> None:
        """轮询后台循环。定时器与周期执行相互独立，慢周期只会导致后续触发被跳过。"""
        logger.info(f"Poller started (interval={self.interval}s, batch={self.batch_size})")
        running: set[asyncio.Task] = set()
        try:
            while True:
                task = asyncio.create_task(self.tick())
                running.add(task)
                task.add_done_callback(running.discard)
                await asyncio.sleep(self.interval)
        finally:
            for task in running:
                task.cancel()
            await asyncio.gather(*running, return_exceptions=True)
            logger.info("Poller stopped")
