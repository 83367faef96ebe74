"""
轮询结果发布模块 (Poll Result Publisher)

- 汇总：每个周期结束后向 dashboard 主题推送 metrics:update，包含所有设备的精简条目
- 详情：每台设备完成后向 device:<id> 主题推送 device:metrics，只有订阅该设备的会话收到

同时把每台设备的最新详情写入 Redis 缓存 (metrics:latest:<id>)，并在 Redis 频道上
转发，供其他进程消费。Redis 不可用时只记录日志，进程内推送不受影响。
"""
import json
import logging
from typing import Awaitable, Callable

from netsentry.core.redis import get_redis
from netsentry.schemas.device import PollResult
from netsentry.services.broadcaster import (
    DASHBOARD_TOPIC,
    TopicBroadcaster,
    broadcaster as default_broadcaster,
    device_topic,
)

logger = logging.getLogger(__name__)

SUMMARY_EVENT = "metrics:update"
DETAIL_EVENT = "device:metrics"
LATEST_KEY = "metrics:latest:{device_id}"
LATEST_TTL = 300  # 秒
CHANNEL_PREFIX = "netsentry:"


class Publisher:
    def __init__(self, broadcaster: TopicBroadcaster | None = None,
                 redis_getter: Callable[[], Awaitable] = get_redis):
        self.broadcaster = broadcaster or default_broadcaster
        self._get_redis = redis_getter

    async def publish_summary(self, results: list[PollResult]) -> int:
        message = {
            "event": SUMMARY_EVENT,
            "data": [r.summary().model_dump(mode="json") for r in results],
        }
        delivered = await self.broadcaster.publish(DASHBOARD_TOPIC, message)
        await self._relay(DASHBOARD_TOPIC, message)
        return delivered

    async def publish_detail(self, result: PollResult) -> int:
        topic = device_topic(result.device_id)
        data = result.detail().model_dump(mode="json")
        message = {"event": DETAIL_EVENT, "data": data}
        delivered = await self.broadcaster.publish(topic, message)
        try:
            redis = await self._get_redis()
            await redis.set(LATEST_KEY.format(device_id=result.device_id), json.dumps(data), ex=LATEST_TTL)
        except Exception as e:
            logger.debug(f"Latest metrics cache skipped for {result.device_name}: {e}")
        await self._relay(topic, message)
        return delivered

    async def _relay(self, topic: str, message: dict) -> None:
        try:
            redis = await self._get_redis()
            await redis.publish(CHANNEL_PREFIX + topic, json.dumps(message))
        except Exception as e:
            logger.debug(f"Redis relay skipped for {topic}: {e}")
