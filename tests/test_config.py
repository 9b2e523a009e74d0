from pathlib import Path

import pytest

from ybstats.core.config import DEFAULT_PORTS, Config, get_config
from ybstats.core.kinds import PortRole, get_spec
from ybstats.core.resolver import resolve_targets
from ybstats.errors import ConfigError, InvalidRequestError


def test_missing_file_gives_defaults(tmp_path):
    config = Config.load(tmp_path / "absent.yaml")
    assert config.ports == DEFAULT_PORTS
    assert config.execution.parallel == 1
    assert config.snapshot_dir == Path("ybstats.snapshots")


def test_load_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "hosts: [10.0.0.1, 10.0.0.2]\n"
        "ports: 7000,9000\n"
        "tls_ports: [7000]\n"
        "snapshot_dir: /tmp/snaps\n"
        "execution:\n"
        "  parallel: 4\n"
        "  timeout: 2.5\n"
        "logging:\n"
        "  level: debug\n"
    )
    config = Config.load(path)
    assert config.hosts == "10.0.0.1,10.0.0.2"
    assert config.ports == "7000,9000"
    assert config.tls_ports == [7000]
    assert config.execution.parallel == 4
    assert config.execution.timeout == 2.5
    assert config.logging.level == "DEBUG"


def test_env_var_selects_file(tmp_path, monkeypatch):
    path = tmp_path / "env.yaml"
    path.write_text("hosts: 10.1.1.1\n")
    monkeypatch.setenv("YBSTATS_CONFIG", str(path))
    assert get_config(reload=True).hosts == "10.1.1.1"


def test_invalid_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("hosts: [unclosed\n")
    with pytest.raises(ConfigError):
        Config.load(path)


def test_invalid_value(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("execution:\n  parallel: many\n")
    with pytest.raises(ConfigError):
        Config.load(path)


def test_save_overrides_keeps_other_keys(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("snapshot_dir: /data/snaps\n")
    config = Config.load(path)
    assert config.save_overrides({"ports": "7000", "parallel": "8"})
    reloaded = Config.load(path)
    assert reloaded.ports == "7000"
    assert reloaded.execution.parallel == 8
    assert reloaded.snapshot_dir == Path("/data/snaps")
    assert not config.save_overrides({})


def test_resolver_routes_ports_by_role(config):
    targets = resolve_targets(config, ports="7000,9000,9300,8080")
    assert targets.port_roles[9300] is PortRole.NODE_EXPORTER

    masters = [e.hostname_port for e in targets.work_list(get_spec("masters"))]
    assert masters == ["10.0.0.1:7000", "10.0.0.1:8080", "10.0.0.2:7000", "10.0.0.2:8080"]

    node = [e.port for e in targets.work_list(get_spec("node-exporter"))]
    assert sorted(set(node)) == [8080, 9300]


def test_resolver_overrides_and_validation(config):
    targets = resolve_targets(config, hosts="10.0.0.9", parallel=5)
    assert targets.overrides == {"hosts": "10.0.0.9", "parallel": "5"}
    assert targets.parallel == 5

    with pytest.raises(InvalidRequestError):
        resolve_targets(config, parallel=0)
    with pytest.raises(InvalidRequestError):
        resolve_targets(config, ports="70000")
    with pytest.raises(InvalidRequestError):
        resolve_targets(config, hostname_match="[")


def test_tls_port_uses_https(config):
    config.tls_ports = [7000]
    [endpoint, _] = resolve_targets(config).work_list(get_spec("versions"))
    assert endpoint.url("/api/v1/version") == "https://10.0.0.1:7000/api/v1/version"
