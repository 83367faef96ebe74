"""
Redis 连接模块

管理 Redis 客户端的创建和关闭，提供全局单例访问。
轮询引擎用它缓存设备最新指标、转发推送消息并发布告警事件，
连接与读写都带短超时。
"""
import redis.asyncio as redis

from netsentry.core.config import settings

# 全局 Redis 客户端实例
redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """获取 Redis 客户端实例，首次调用时创建（不会立即建连）。"""
    global redis_client
    if redis_client is None:
        redis_client = redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=settings.redis_timeout_seconds,
            socket_timeout=settings.redis_timeout_seconds,
        )
    return redis_client


async def close_redis() -> None:
    """关闭 Redis 连接池，释放资源。"""
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
