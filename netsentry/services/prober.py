"""
ICMP 可达性探测模块。

调用系统 ping 发送单个 echo（短超时，最多重试一次），返回往返时间（毫秒）
或不可达哨兵值 UNREACHABLE。超时后会杀掉子进程，不遗留僵尸进程。
"""
import asyncio
import logging
import math
import re
import time

from netsentry.core.config import settings
from netsentry.schemas.device import UNREACHABLE

logger = logging.getLogger(__name__)

# iputils / busybox 输出中的单次 RTT，例如 "time=1.23 ms" 或 "time<1 ms"
_RTT_RE = re.compile(r"time[=<]\s*([\d.]+)\s*ms")


class ReachabilityProber:
    """ICMP echo 探测器。"""

    def __init__(self, timeout: float | None = None, retries: int | None = None, binary: str | None = None):
        self.timeout = settings.ping_timeout_seconds if timeout is None else timeout
        self.retries = settings.ping_retries if retries is None else retries
        self.binary = binary or settings.ping_binary

    async def probe(self, address: str) -> float:
        """探测设备，返回延迟毫秒数；全部尝试失败时返回 UNREACHABLE。"""
        for attempt in range(self.retries + 1):
            rtt = await self._echo(address)
            if rtt is not None:
                return rtt
            logger.debug(f"ICMP echo to {address} lost (attempt {attempt + 1}/{self.retries + 1})")
        return UNREACHABLE

    def _command(self, address: str) -> list[str]:
        wait = max(1, math.ceil(self.timeout))
        return [self.binary, "-n", "-c", "1", "-W", str(wait), address]

    async def _echo(self, address: str) -> float | None:
        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *self._command(address),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except FileNotFoundError:
            logger.error(f"ping binary not found: {self.binary}")
            return None

        try:
            # ping 自身的 -W 只能是整秒，外层再加一个硬超时
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.timeout + 1)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return None
        except BaseException:
            if proc.returncode is None:
                proc.kill()
            raise

        elapsed_ms = round((time.monotonic() - start) * 1000, 1)
        if proc.returncode != 0:
            return None
        match = _RTT_RE.search(stdout.decode(errors="ignore"))
        return float(match.group(1)) if match else elapsed_ms
