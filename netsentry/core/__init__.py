"""
核心模块包 (Core Module Package)

NetSentry 的基础设施组件：配置管理、数据库连接、Redis 客户端与全局异常处理。

Infrastructure components for NetSentry: configuration, database connections,
the Redis client and global exception handling.
"""
