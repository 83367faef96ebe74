"""
数据模型包 (Data Models Package)

集中导出所有 SQLAlchemy ORM 模型：设备库存、告警事件和设备时序指标。

Centrally exports all SQLAlchemy ORM models: device inventory, alert events
and the device time-series metrics.
"""
from netsentry.models.device import Device
from netsentry.models.alert import Alert
from netsentry.models.device_metric import DeviceMetric
