"""
设备清单 YAML 加载模块。

从 YAML 文件读取设备列表并转换为库存表的列值，供 `netsentry seed` 导入。

示例::

    devices:
      - name: core-router
        address: 10.0.0.1
        type: CORE
        api:
          username: monitor
          password: secret
          tls: true
          interface: ether1
        location: {lat: 40.41, lng: -3.70}
      - name: ap-lobby
        address: 10.0.0.20   # 没有 api 段：只做 ICMP 检测
"""
from pathlib import Path

import yaml


class SeedError(ValueError):
    """设备清单格式错误。"""


def _device_record(index: int, item: dict) -> dict:
    if not isinstance(item, dict):
        raise SeedError(f"devices[{index}] must be a mapping")
    name = item.get("name")
    address = item.get("address") or item.get("ip_address")
    if not name or not address:
        raise SeedError(f"devices[{index}] requires name and address")

    record = {
        "name": str(name),
        "ip_address": str(address),
        "type": str(item.get("type", "ACCESS")).upper(),
        "auth_user": None,
        "auth_password": None,
        "api_port": None,
        "api_ssl": False,
        "wan_interface": None,
    }

    api = item.get("api")
    if api:
        if not api.get("username"):
            raise SeedError(f"devices[{index}] ({name}): api.username is required")
        record.update(
            auth_user=str(api["username"]),
            auth_password=str(api.get("password", "")),
            api_port=int(api["port"]) if api.get("port") else None,
            api_ssl=bool(api.get("tls", False)),
            wan_interface=api.get("interface"),
        )

    location = item.get("location") or {}
    if location:
        record["location_lat"] = float(location["lat"]) if location.get("lat") is not None else None
        record["location_lng"] = float(location["lng"]) if location.get("lng") is not None else None
    return record


def load_device_file(path: str) -> list[dict]:
    """读取 YAML 设备清单。

    Raises:
        FileNotFoundError: 文件不存在。
        SeedError: 内容格式不正确或设备名重复。
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Device file not found: {path}")

    with open(p) as f:
        data = yaml.safe_load(f) or {}

    items = data.get("devices", []) if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise SeedError("top-level 'devices' must be a list")

    records = [_device_record(i, item) for i, item in enumerate(items)]
    names = [r["name"] for r in records]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise SeedError(f"duplicate device names: {', '.join(duplicates)}")
    return records
