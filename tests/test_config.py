"""Config loading, size/interval parsing and live config sources."""
import pytest

from status_agent.config import (
    CALL_TIMEOUT,
    DIAL_TIMEOUT,
    HEARTBEAT,
    MAX_RETRY_TIMES,
    AgentConfig,
    FileConfigSource,
    _parse_interval,
    load_config,
    parse_size,
)
from status_agent.errors import ConfigUnavailable


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("STATUS_SERVER_DOMAIN", raising=False)
    monkeypatch.delenv("STATUS_ANALYTICS", raising=False)


def test_defaults():
    cfg = AgentConfig()
    assert cfg.analytics.enabled is False
    assert cfg.timing.heartbeat == HEARTBEAT == 900
    assert cfg.timing.dial_timeout == DIAL_TIMEOUT == 60
    assert cfg.timing.call_timeout == CALL_TIMEOUT == 5
    assert cfg.timing.max_retries == MAX_RETRY_TIMES == 3


@pytest.mark.parametrize("value,expected", [
    ("10GB", 10 * 1000 ** 3),
    ("10 GiB", 10 * 1024 ** 3),
    ("512MiB", 512 * 1024 ** 2),
    ("1.5kB", 1500),
    ("2048", 2048),
    ("1TB", 1000 ** 4),
    (4096, 4096),
])
def test_parse_size(value, expected):
    assert parse_size(value) == expected


@pytest.mark.parametrize("value", ["", "lots", "10 parsecs", "GB"])
def test_parse_size_invalid(value):
    with pytest.raises(ValueError):
        parse_size(value)


@pytest.mark.parametrize("value,expected", [
    (15, 15), ("15s", 15), ("1m", 60), ("2h", 7200), ("250ms", 0.25), ("30", 30),
])
def test_parse_interval(value, expected):
    assert _parse_interval(value) == expected


def test_load_config(tmp_path):
    p = tmp_path / "agent.yaml"
    p.write_text(
        "analytics:\n"
        "  enabled: true\n"
        "services:\n"
        "  status_server_domain: status.example.com:443\n"
        "datastore:\n"
        "  path: /data/repo\n"
        "  storage_max: 50GB\n"
        "timing:\n"
        "  heartbeat: 1m\n"
        "  call_timeout: 2s\n"
        "  max_retries: 5\n"
    )
    cfg = load_config(str(p))
    assert cfg.analytics.enabled is True
    assert cfg.services.status_server_domain == "status.example.com:443"
    assert cfg.datastore.path == "/data/repo"
    assert cfg.datastore.storage_max == "50GB"
    assert cfg.timing.heartbeat == 60
    assert cfg.timing.call_timeout == 2
    assert cfg.timing.dial_timeout == 60
    assert cfg.timing.max_retries == 5


def test_env_overrides(tmp_path, monkeypatch):
    p = tmp_path / "agent.yaml"
    p.write_text("analytics:\n  enabled: false\n")
    monkeypatch.setenv("STATUS_ANALYTICS", "true")
    monkeypatch.setenv("STATUS_SERVER_DOMAIN", "override:1234")
    cfg = load_config(str(p))
    assert cfg.analytics.enabled is True
    assert cfg.services.status_server_domain == "override:1234"


def test_load_config_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))


def test_zero_retries_rejected(tmp_path):
    p = tmp_path / "agent.yaml"
    p.write_text("timing:\n  max_retries: 0\n")
    with pytest.raises(ValueError):
        load_config(str(p))


class TestFileConfigSource:
    def test_rereads_file_each_call(self, tmp_path):
        p = tmp_path / "agent.yaml"
        p.write_text("analytics:\n  enabled: false\n")
        source = FileConfigSource(str(p))
        assert source.current().analytics.enabled is False

        p.write_text("analytics:\n  enabled: true\nservices:\n  status_server_domain: a:1\n")
        cfg = source.current()
        assert cfg.analytics.enabled is True
        assert cfg.services.status_server_domain == "a:1"

    def test_missing_file_is_config_unavailable(self, tmp_path):
        source = FileConfigSource(str(tmp_path / "missing.yaml"))
        with pytest.raises(ConfigUnavailable):
            source.current()

    def test_bad_yaml_is_config_unavailable(self, tmp_path):
        p = tmp_path / "agent.yaml"
        p.write_text("analytics: [unclosed\n")
        with pytest.raises(ConfigUnavailable):
            FileConfigSource(str(p)).current()


class TestMalformedValues:
    def test_scalar_section_falls_back_to_defaults(self, tmp_path):
        p = tmp_path / "agent.yaml"
        p.write_text("analytics: true\nservices: status.test:9000\ntiming: fast\n")
        cfg = load_config(str(p))
        assert cfg.analytics.enabled is False
        assert cfg.services.status_server_domain == ""
        assert cfg.timing.heartbeat == HEARTBEAT

    def test_empty_values_mean_defaults(self, tmp_path):
        p = tmp_path / "agent.yaml"
        p.write_text(
            "analytics:\n  enabled:\n"
            "services:\n  status_server_domain:\n"
            "datastore:\n  storage_max:\n"
            "timing:\n  heartbeat:\n"
        )
        cfg = load_config(str(p))
        assert cfg.analytics.enabled is False
        assert cfg.services.status_server_domain == ""
        assert cfg.datastore.storage_max == "10GB"
        assert cfg.timing.heartbeat == HEARTBEAT

    def test_top_level_scalar_is_config_unavailable(self, tmp_path):
        p = tmp_path / "agent.yaml"
        p.write_text("just a string\n")
        with pytest.raises(ConfigUnavailable):
            FileConfigSource(str(p)).current()

    @pytest.mark.parametrize("key,value", [
        ("heartbeat", "0s"),
        ("heartbeat", -5),
        ("dial_timeout", 0),
        ("call_timeout", "-1s"),
    ])
    def test_non_positive_timing_rejected(self, tmp_path, key, value):
        p = tmp_path / "agent.yaml"
        p.write_text(f"timing:\n  {key}: {value}\n")
        with pytest.raises(ValueError, match=key):
            load_config(str(p))
        with pytest.raises(ConfigUnavailable):
            FileConfigSource(str(p)).current()
