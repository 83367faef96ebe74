"""
WebSocket 实时推送路由 (Real-time WebSocket Router)

连接后自动加入 dashboard 主题，接收每个周期的 metrics:update 汇总。
客户端发送 {"action": "subscribe", "device_id": "..."} 加入该设备主题，
之后会收到 device:metrics 详情；{"action": "unsubscribe", ...} 离开。
"""
import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from netsentry.services.broadcaster import Subscription, broadcaster, device_topic

logger = logging.getLogger(__name__)

router = APIRouter()


async def _pump(websocket: WebSocket, sub: Subscription) -> None:
    while True:
        message = await sub.queue.get()
        await websocket.send_json(message)


def handle_command(session_id: str, command: dict) -> dict:
    """处理客户端订阅指令，返回确认消息；无法识别的指令返回错误消息。"""
    action = command.get("action")
    device_id = command.get("device_id")
    if action not in ("subscribe", "unsubscribe") or not device_id:
        return {"event": "error", "data": {"message": "expected {action: subscribe|unsubscribe, device_id}"}}
    topic = device_topic(str(device_id))
    if action == "subscribe":
        broadcaster.join(session_id, topic)
    else:
        broadcaster.leave(session_id, topic)
    return {"event": f"{action}d", "data": {"topic": topic}}


@router.websocket("/ws")
async def ws_metrics(websocket: WebSocket):
    """WebSocket 实时指标推送，连接断开时移除全部订阅。"""
    await websocket.accept()
    sub = broadcaster.connect()
    pump = asyncio.create_task(_pump(websocket, sub))
    try:
        while True:
            command = await websocket.receive_json()
            if not isinstance(command, dict):
                command = {}
            await websocket.send_json(handle_command(sub.session_id, command))
    except WebSocketDisconnect:
        pass
    except ValueError as e:
        logger.debug(f"WebSocket session {sub.session_id} sent invalid JSON: {e}")
    finally:
        pump.cancel()
        await asyncio.gather(pump, return_exceptions=True)
        broadcaster.disconnect(sub.session_id)
