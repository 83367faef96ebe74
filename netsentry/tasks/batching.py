"""
分批并发执行。

把设备列表切成固定大小的块：块与块之间严格串行，块内全部并发。
单个任务的异常作为返回值收集，不会中断同块的其他任务。
"""
import asyncio
import logging
from typing import Awaitable, Callable, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


async def run_in_chunks(
    items: Sequence[T],
    size: int,
    worker: Callable[[T], Awaitable[R]],
) -> list[R | BaseException]:
    """按块执行 worker，返回与 items 顺序一致的结果列表（失败项为异常对象）。"""
    chunks = chunked(items, size)
    outcomes: list[R | BaseException] = []
    for index, chunk in enumerate(chunks, start=1):
        results = await asyncio.gather(*(worker(item) for item in chunk), return_exceptions=True)
        outcomes.extend(results)
        logger.debug(f"Chunk {index}/{len(chunks)} done ({len(chunk)} items)")
    return outcomes
