"""
NetSentry 命令行入口模块。

提供 CLI 命令：run（启动 HTTP 服务与轮询）、check（检查数据库与 Redis 连通性）、
seed（从 YAML 导入设备）和 poll-once（执行单个轮询周期）。
"""
import asyncio
import logging
import sys

import click

from netsentry import __version__


@click.group(invoke_without_command=True)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, verbose):
    """NetSentry - 网络设备轮询与遥测引擎。"""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if ctx.invoked_subcommand is None:
        click.echo(f"NetSentry v{__version__}")
        click.echo("Use --help for available commands")


@cli.command()
@click.option("--host", default=None, help="Bind address (default: HTTP_HOST)")
@click.option("--port", default=None, type=int, help="Bind port (default: HTTP_PORT)")
def run(host, port):
    """启动 HTTP API 与后台轮询。"""
    import uvicorn

    from netsentry.core.config import settings

    uvicorn.run(
        "netsentry.main:app",
        host=host or settings.http_host,
        port=port or settings.http_port,
        log_level="info",
    )


async def _check() -> dict:
    from sqlalchemy import text

    from netsentry.core.database import engine
    from netsentry.core.redis import close_redis, get_redis

    checks = {}
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        checks["database"] = f"error: {e}"
    try:
        r = await get_redis()
        await r.ping()
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = f"error: {e}"
    await close_redis()
    await engine.dispose()
    return checks


@cli.command()
def check():
    """检查数据库与 Redis 是否可达，任何一项失败则以非零状态退出。"""
    checks = asyncio.run(_check())
    ok = True
    for name, result in checks.items():
        if result == "ok":
            click.echo(f"✅ {name}: ok")
        else:
            ok = False
            click.echo(f"❌ {name}: {result}", err=True)
    if not ok:
        sys.exit(1)


async def _seed(records: list[dict]) -> tuple[int, int]:
    from netsentry.core.database import Base, engine
    from netsentry.models import Device  # noqa: F401
    from netsentry.services.inventory import InventoryStore

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        return await InventoryStore().upsert_devices(records)
    finally:
        await engine.dispose()


@cli.command()
@click.argument("path", type=click.Path(dir_okay=False))
def seed(path):
    """从 YAML 设备清单导入设备（按名称新建或更新）。"""
    from netsentry.seed import SeedError, load_device_file

    try:
        records = load_device_file(path)
    except (FileNotFoundError, SeedError) as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    created, updated = asyncio.run(_seed(records))
    click.echo(f"✅ Imported {len(records)} devices ({created} created, {updated} updated)")


async def _poll_once():
    from netsentry.core.database import engine
    from netsentry.core.redis import close_redis
    from netsentry.tasks.poller import PollingEngine

    poller = PollingEngine()
    try:
        return await poller.run_cycle()
    finally:
        await poller.pool.close_all()
        await close_redis()
        await engine.dispose()


@cli.command("poll-once")
def poll_once():
    """执行单个轮询周期并打印统计。"""
    logger = logging.getLogger("netsentry")
    try:
        report = asyncio.run(_poll_once())
    except Exception:
        logger.exception("Poll cycle failed")
        sys.exit(1)
    click.echo(
        f"Polled {report.devices} devices in {report.chunks} chunk(s) "
        f"({report.duration}s): {report.statuses}, {report.failures} failed"
    )


def main():
    """CLI 入口函数。"""
    cli()


if __name__ == "__main__":
    main()
