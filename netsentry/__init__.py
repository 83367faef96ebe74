"""NetSentry - 网络设备轮询与遥测引擎 (network device polling and telemetry engine)."""
__version__ = "0.3.0"
