"""YAML 设备清单导入与库存读取测试。"""
import pytest
from click.testing import CliRunner

from netsentry.cli import cli
from netsentry.seed import SeedError, load_device_file

DEVICES_YAML = """
devices:
  - name: core-1
    address: 10.0.0.1
    type: core
    api:
      username: monitor
      password: secret
      tls: true
      interface: ether1
    location: {lat: 40.4, lng: -3.7}
  - name: ap-lobby
    address: 10.0.0.20
"""


@pytest.fixture
def device_file(tmp_path):
    path = tmp_path / "devices.yaml"
    path.write_text(DEVICES_YAML)
    return str(path)


class TestLoadDeviceFile:
    def test_records(self, device_file):
        core, ap = load_device_file(device_file)
        assert core["ip_address"] == "10.0.0.1"
        assert core["type"] == "CORE"
        assert core["auth_user"] == "monitor"
        assert core["api_ssl"] is True
        assert core["api_port"] is None
        assert core["wan_interface"] == "ether1"
        assert core["location_lat"] == 40.4
        assert ap["auth_user"] is None
        assert ap["type"] == "ACCESS"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_device_file(str(tmp_path / "missing.yaml"))

    @pytest.mark.parametrize("content", [
        "devices: {name: x}",
        "devices:\n  - name: x\n",
        "devices:\n  - {name: x, address: 1.1.1.1, api: {password: p}}\n",
        "devices:\n  - {name: x, address: 1.1.1.1}\n  - {name: x, address: 1.1.1.2}\n",
    ])
    def test_invalid(self, tmp_path, content):
        path = tmp_path / "bad.yaml"
        path.write_text(content)
        with pytest.raises(SeedError):
            load_device_file(str(path))


class TestInventorySnapshot:
    async def test_upsert_and_list_devices(self, inventory, device_file):
        records = load_device_file(device_file)
        assert await inventory.upsert_devices(records) == (2, 0)
        assert await inventory.upsert_devices(records) == (0, 2)

        devices = {d.name: d for d in await inventory.list_devices()}
        core = devices["core-1"]
        assert core.is_managed
        assert core.managed.tls
        assert core.managed.port == 8729
        assert core.managed.interface == "ether1"
        assert core.pool_key == ("10.0.0.1", 8729)
        assert core.role == "CORE"

        ap = devices["ap-lobby"]
        assert not ap.is_managed
        assert ap.pool_key is None


class TestCli:
    def test_seed_rejects_bad_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("devices: 3")
        result = CliRunner().invoke(cli, ["seed", str(path)])
        assert result.exit_code == 1

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "version" in result.output
