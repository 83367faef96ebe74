"""
应用配置模块 (Application Configuration Module)

使用 Pydantic Settings 管理 NetSentry 的所有配置项，支持从 .env 文件和环境变量读取。
涵盖库存数据库、Redis、轮询周期、批量大小、ICMP 探测和 RouterOS API 超时等配置。

Uses Pydantic Settings to manage all NetSentry configuration, read from .env files
and environment variables. Covers the inventory database, Redis, poll cadence,
batch size, ICMP probing and RouterOS API timeouts.
"""
import logging

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    应用全局配置类 (Application Global Configuration Class)

    字段名自动映射同名环境变量（不区分大小写），支持 .env 文件加载。

    Field names map to same-named environment variables (case insensitive),
    with .env file loading.
    """

    # 数据库配置 (Database Configuration)
    postgres_host: str = "localhost"  # PostgreSQL 主机地址 (PostgreSQL Host)
    postgres_port: int = 5432  # PostgreSQL 端口号 (PostgreSQL Port)
    postgres_db: str = "netsentry"  # 数据库名称 (Database Name)
    postgres_user: str = "netsentry"  # 数据库用户名 (Database Username)
    postgres_password: str = "netsentry_dev_password"  # 数据库密码 (Database Password)

    # Redis 配置 (Redis Configuration)
    redis_host: str = "localhost"  # Redis 主机地址 (Redis Host)
    redis_port: int = 6379  # Redis 端口号 (Redis Port)
    redis_timeout_seconds: float = 2.0  # 连接与读写超时 (Socket Timeout)

    # 轮询引擎配置 (Polling Engine Configuration)
    poll_interval_seconds: float = 30.0  # 轮询周期 (Poll Cycle Period)
    poll_batch_size: int = 20  # 每批并发设备数 (Devices Per Concurrent Chunk)
    poller_enabled: bool = True  # 是否随应用启动轮询 (Start Poller With The App)

    # ICMP 探测配置 (ICMP Probe Configuration)
    ping_timeout_seconds: float = 2.0  # 单次 echo 超时 (Per-echo Timeout)
    ping_retries: int = 1  # 失败后重试次数 (Retries After A Lost Echo)
    ping_binary: str = "ping"  # 系统 ping 程序 (System ping Binary)

    # RouterOS API 配置 (RouterOS API Configuration)
    connect_timeout_seconds: float = 5.0  # 建连+登录超时 (Connect + Login Timeout)
    query_timeout_seconds: float = 10.0  # 单条查询超时 (Per-query Timeout)
    api_port: int = 8728  # 默认明文端口 (Default Plain Port)
    api_tls_port: int = 8729  # 默认 TLS 端口 (Default TLS Port)
    api_tls_verify: bool = False  # 是否校验设备证书 (Verify Device Certificates)

    # HTTP 服务配置 (HTTP Service Configuration)
    http_host: str = "0.0.0.0"
    http_port: int = 3001
    cors_origin: str = "*"

    @property
    def database_url(self) -> str:
        """
        构造 PostgreSQL 异步连接 URL (Build PostgreSQL Async Connection URL)

        生成适用于 asyncpg 驱动的连接字符串，用于 SQLAlchemy 异步会话。
        """
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def redis_url(self) -> str:
        """构造 Redis 连接 URL (Build Redis Connection URL)，默认使用 0 号库。"""
        return f"redis://{self.redis_host}:{self.redis_port}/0"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}  # Pydantic 配置：自动加载 .env 文件


# 全局配置实例 (Global Configuration Instance)
settings = Settings()

if settings.poll_batch_size < 1:
    logger.warning(
        "POLL_BATCH_SIZE=%s 无效，已回退为 20 | invalid POLL_BATCH_SIZE, falling back to 20",
        settings.poll_batch_size,
    )
    settings.poll_batch_size = 20
