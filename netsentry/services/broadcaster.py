"""
主题广播器 (Topic Broadcaster)

基于内存队列的发布-订阅：每个会话一个有界队列，会话可以加入/离开任意主题。
连接时自动加入 dashboard 主题；断开时移除全部订阅。
投递是至多一次的，订阅者队列满时直接丢弃该消息。
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DASHBOARD_TOPIC = "dashboard"


def device_topic(device_id: str) -> str:
    return f"device:{device_id}"


@dataclass
class Subscription:
    session_id: str
    queue: asyncio.Queue
    topics: set[str] = field(default_factory=set)


class TopicBroadcaster:
    def __init__(self, maxsize: int = 100):
        self.maxsize = maxsize
        self._sessions: dict[str, Subscription] = {}
        self.dropped = 0

    def connect(self, session_id: str | None = None) -> Subscription:
        session_id = session_id or uuid.uuid4().hex
        sub = Subscription(session_id, asyncio.Queue(maxsize=self.maxsize), {DASHBOARD_TOPIC})
        self._sessions[session_id] = sub
        return sub

    def join(self, session_id: str, topic: str) -> None:
        sub = self._sessions.get(session_id)
        if sub is not None:
            sub.topics.add(topic)

    def leave(self, session_id: str, topic: str) -> None:
        sub = self._sessions.get(session_id)
        if sub is not None:
            sub.topics.discard(topic)

    def disconnect(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def members(self, topic: str) -> list[str]:
        return [sid for sid, sub in self._sessions.items() if topic in sub.topics]

    def __len__(self) -> int:
        return len(self._sessions)

    async def publish(self, topic: str, message) -> int:
        """投递给该主题的全部成员，返回成功入队的会话数。"""
        delivered = 0
        for sub in list(self._sessions.values()):
            if topic not in sub.topics:
                continue
            try:
                sub.queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                self.dropped += 1
        return delivered


broadcaster = TopicBroadcaster()
