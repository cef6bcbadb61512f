"""
Agent configuration loading.

Defines the config dataclasses and loads them from a YAML file. Supports
environment overrides (STATUS_SERVER_DOMAIN, STATUS_ANALYTICS), interval
shorthand such as '15s', '1m', '2h' and human-readable sizes such as '10GB'.

The agent never caches a loaded config: every tick asks a ConfigSource for
the current values, so the consent flag and the status server address can
change without restarting the agent.
"""
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from status_agent.errors import ConfigUnavailable

HEARTBEAT = 15 * 60
DIAL_TIMEOUT = 60
CALL_TIMEOUT = 5
MAX_RETRY_TIMES = 3


@dataclass
class AnalyticsConfig:
    """Explicit consent to collect and report metrics."""
    enabled: bool = False


@dataclass
class ServicesConfig:
    status_server_domain: str = ""  # host:port


@dataclass
class DatastoreConfig:
    path: str = ""
    storage_max: str = "10GB"


@dataclass
class IdentityConfig:
    key_file: str = "/var/lib/status-agent/node.key"


@dataclass
class TimingConfig:
    """Timing constants (seconds). Tests shrink these."""
    heartbeat: float = HEARTBEAT
    dial_timeout: float = DIAL_TIMEOUT
    call_timeout: float = CALL_TIMEOUT
    max_retries: int = MAX_RETRY_TIMES
    backoff_initial: float = 0.5
    backoff_multiplier: float = 1.5
    backoff_max: float = 60.0
    backoff_jitter: float = 0.5


@dataclass
class AgentConfig:
    """Top-level config aggregating all sections."""
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    services: ServicesConfig = field(default_factory=ServicesConfig)
    datastore: DatastoreConfig = field(default_factory=DatastoreConfig)
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)


def _parse_interval(val) -> float:
    """Parse an interval, accepting '15s', '1m', '2h' shorthand."""
    if isinstance(val, (int, float)):
        return val
    s = str(val).strip().lower()
    if s.endswith("ms"):
        return float(s[:-2]) / 1000
    if s.endswith("s"):
        return float(s[:-1])
    if s.endswith("m"):
        return float(s[:-1]) * 60
    if s.endswith("h"):
        return float(s[:-1]) * 3600
    return float(s)


def _parse_bool(val) -> bool:
    if isinstance(val, bool):
        return val
    return str(val).strip().lower() in ("1", "true", "yes", "on")


_SIZE_RE = re.compile(r"^([0-9]*\.?[0-9]+)\s*([a-z]*)$")

# SI suffixes are powers of 1000, IEC suffixes powers of 1024
_SIZE_UNITS = {
    "": 1, "b": 1,
    "k": 1000, "kb": 1000, "kib": 1024, "ki": 1024,
    "m": 1000 ** 2, "mb": 1000 ** 2, "mib": 1024 ** 2, "mi": 1024 ** 2,
    "g": 1000 ** 3, "gb": 1000 ** 3, "gib": 1024 ** 3, "gi": 1024 ** 3,
    "t": 1000 ** 4, "tb": 1000 ** 4, "tib": 1024 ** 4, "ti": 1024 ** 4,
    "p": 1000 ** 5, "pb": 1000 ** 5, "pib": 1024 ** 5, "pi": 1024 ** 5,
    "e": 1000 ** 6, "eb": 1000 ** 6, "eib": 1024 ** 6, "ei": 1024 ** 6,
}


def parse_size(val) -> int:
    """Parse a human-readable size such as '10GB', '512 MiB' or '1024' into bytes.

    Raises:
        ValueError: the string is not a recognised size.
    """
    if isinstance(val, int):
        if val < 0:
            raise ValueError(f"Negative size: {val}")
        return val
    s = str(val).strip().lower().replace(",", "")
    m = _SIZE_RE.match(s)
    if not m:
        raise ValueError(f"Invalid size: {val!r}")
    number, unit = m.groups()
    if unit not in _SIZE_UNITS:
        raise ValueError(f"Unknown size unit in {val!r}")
    return int(float(number) * _SIZE_UNITS[unit])


def _section(data: dict, name: str) -> dict:
    """A top-level section; anything but a mapping counts as empty."""
    sec = data.get(name)
    return sec if isinstance(sec, dict) else {}


def _value(section: dict, key: str, default):
    """A section value; an empty YAML value (null) means the default."""
    val = section.get(key)
    return default if val is None else val


def config_from_dict(data: dict) -> AgentConfig:
    """Build an AgentConfig from a parsed YAML mapping.

    Raises:
        ValueError: a timing value is out of range.
    """
    if not isinstance(data, dict):
        raise ValueError(f"config must be a mapping, got {type(data).__name__}")
    cfg = AgentConfig()

    # consent, env takes priority
    a = _section(data, "analytics")
    enabled = os.environ.get("STATUS_ANALYTICS", _value(a, "enabled", cfg.analytics.enabled))
    cfg.analytics.enabled = _parse_bool(enabled)

    srv = _section(data, "services")
    domain = os.environ.get("STATUS_SERVER_DOMAIN", _value(srv, "status_server_domain", ""))
    cfg.services.status_server_domain = str(domain).strip()

    ds = _section(data, "datastore")
    cfg.datastore.path = str(_value(ds, "path", cfg.datastore.path))
    cfg.datastore.storage_max = str(_value(ds, "storage_max", cfg.datastore.storage_max))

    ident = _section(data, "identity")
    cfg.identity.key_file = str(_value(ident, "key_file", cfg.identity.key_file))

    t = _section(data, "timing")
    timing = cfg.timing
    timing.heartbeat = _parse_interval(_value(t, "heartbeat", timing.heartbeat))
    timing.dial_timeout = _parse_interval(_value(t, "dial_timeout", timing.dial_timeout))
    timing.call_timeout = _parse_interval(_value(t, "call_timeout", timing.call_timeout))
    timing.max_retries = int(_value(t, "max_retries", timing.max_retries))
    timing.backoff_initial = _parse_interval(_value(t, "backoff_initial", timing.backoff_initial))
    timing.backoff_multiplier = float(_value(t, "backoff_multiplier", timing.backoff_multiplier))
    timing.backoff_max = _parse_interval(_value(t, "backoff_max", timing.backoff_max))
    timing.backoff_jitter = float(_value(t, "backoff_jitter", timing.backoff_jitter))
    for name in ("heartbeat", "dial_timeout", "call_timeout"):
        if getattr(timing, name) <= 0:
            raise ValueError(f"timing.{name} must be positive")
    if timing.max_retries < 1:
        raise ValueError("timing.max_retries must be at least 1")

    return cfg


def load_config(path: str) -> AgentConfig:
    """Load agent config from a YAML file.

    Args:
        path: config file path.

    Returns:
        The parsed AgentConfig.

    Raises:
        FileNotFoundError: the config file does not exist.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(p) as f:
        data = yaml.safe_load(f) or {}

    return config_from_dict(data)


class ConfigSource:
    """Live config accessor handed to the agent and reporter."""

    def current(self) -> AgentConfig:
        raise NotImplementedError


class FileConfigSource(ConfigSource):
    """Re-reads the YAML file on every call."""

    def __init__(self, path: str):
        self.path = path

    def current(self) -> AgentConfig:
        try:
            return load_config(self.path)
        except (OSError, ValueError, TypeError, AttributeError, yaml.YAMLError) as e:
            raise ConfigUnavailable(f"failed to load config: {e}") from e


class StaticConfigSource(ConfigSource):
    """Holds an in-memory config; callers mutate it to simulate live changes."""

    def __init__(self, config: AgentConfig = None):
        self.config = config or AgentConfig()

    def current(self) -> AgentConfig:
        return self.config
