"""
NetSentry 应用入口模块 (NetSentry Application Entry Module)

负责 FastAPI 应用的生命周期：启动时创建数据表（数据库不可达即启动失败），
启动后台轮询循环；关闭时取消轮询、关闭全部 RouterOS 会话并释放 Redis 与数据库连接。

Owns the FastAPI lifecycle: create tables at startup (an unreachable database
aborts startup), start the poller loop; on shutdown cancel the poller, close
every pooled RouterOS session, and release Redis and the database engine.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from netsentry import __version__
from netsentry.core.config import settings
from netsentry.core.database import Base, engine
from netsentry.core.exceptions import register_exception_handlers
from netsentry.core.redis import close_redis, get_redis
# 导入所有模型以确保 SQLAlchemy 表注册 (Import all models to ensure table registration)
from netsentry.models import Alert, Device, DeviceMetric  # noqa: F401
from netsentry.routers import alerts, devices, ws
from netsentry.tasks.poller import PollingEngine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理器 (Application Lifecycle Manager)"""
    # 自动创建数据库表结构，失败直接抛出终止启动
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    poller = PollingEngine()
    app.state.poller = poller
    poll_task = None
    if settings.poller_enabled:
        poll_task = asyncio.create_task(poller.poll_loop())
    else:
        logger.info("Poller disabled (POLLER_ENABLED=false)")

    yield

    # 关闭阶段：清理资源和取消任务 (Shutdown Phase)
    if poll_task is not None:
        poll_task.cancel()
        await asyncio.gather(poll_task, return_exceptions=True)
    await poller.pool.close_all()
    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="NetSentry",
    description="Network device polling and telemetry engine | 网络设备轮询与遥测引擎",
    version=__version__,
    lifespan=lifespan,
)

# 注册全局异常处理器 (Register global exception handlers)
register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origin.split(",")],
    allow_credentials=True,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(devices.router)  # 设备与指标 (Devices and metrics)
app.include_router(alerts.router)  # 告警 (Alerts)
app.include_router(ws.router)  # WebSocket 推送 (WebSocket push)


@app.get("/health")
@app.get("/api/v1/health")
async def health():
    """
    健康检查接口 (Health Check Endpoint)

    检查数据库与 Redis 连通性，并附带轮询引擎和连接池的运行状态。
    """
    checks = {"api": "ok"}

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception:
        checks["database"] = "error"

    try:
        r = await get_redis()
        await r.ping()
        checks["redis"] = "ok"
    except Exception:
        checks["redis"] = "error"

    status = "ok" if all(v == "ok" for v in checks.values()) else "degraded"

    poller: PollingEngine | None = getattr(app.state, "poller", None)
    polling = None
    if poller is not None:
        report = poller.last_report
        polling = {
            "in_flight": poller.in_flight,
            "skipped_ticks": poller.skipped_ticks,
            "pool": poller.pool.stats(),
            "last_cycle": {
                "devices": report.devices,
                "chunks": report.chunks,
                "statuses": report.statuses,
                "failures": report.failures,
                "duration": report.duration,
            } if report else None,
        }

    return {
        "status": status,
        "checks": checks,
        "polling": polling,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
