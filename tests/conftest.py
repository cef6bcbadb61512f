"""
Status agent test fixtures.

Provides a fake host node, an in-memory config source and an httpx
MockTransport that records every request sent to the status server.
No test touches the network or the real config file.
"""
import json
from typing import List, Optional

import httpx
import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from status_agent.config import AgentConfig, StaticConfigSource
from status_agent.host import HostNode
from status_agent.models import AgentIdentity, ExchangeStats
from status_agent.reporter import COLLECT_HEALTH_PATH, UPDATE_METRICS_PATH


class FakeNode(HostNode):
    """In-memory host node with scripted exchange stats."""

    def __init__(self, node_id: Optional[str] = "N1", key=None, storage: int = 0):
        self._id = node_id
        self._key = key
        self.storage = storage
        self.stats = ExchangeStats()
        self.stats_error: Optional[Exception] = None
        self.stats_override = None

    @property
    def identity(self):
        return self._id

    @property
    def private_key(self):
        return self._key

    def storage_usage(self) -> int:
        return self.storage

    def exchange_stats(self):
        if self.stats_error is not None:
            raise self.stats_error
        if self.stats_override is not None:
            return self.stats_override
        return self.stats


class RecordingServer:
    """MockTransport handler that records calls and replays scripted statuses."""

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.statuses: List[int] = []  # consumed per call; empty means 200
        self.raise_connect = 0         # fail this many calls with ConnectError

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_connect:
            self.raise_connect -= 1
            raise httpx.ConnectError("connection refused", request=request)
        status = self.statuses.pop(0) if self.statuses else 200
        return httpx.Response(status, json={})

    def calls(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    @property
    def metrics_calls(self):
        return self.calls(UPDATE_METRICS_PATH)

    @property
    def health_calls(self):
        return self.calls(COLLECT_HEALTH_PATH)

    def bodies(self, path: str) -> List[dict]:
        return [json.loads(r.content) for r in self.calls(path)]


@pytest.fixture
def signing_key():
    return Ed25519PrivateKey.generate()


@pytest.fixture
def node(signing_key):
    return FakeNode(node_id="N1", key=signing_key, storage=4096)


@pytest.fixture
def identity():
    return AgentIdentity(
        node_id="N1",
        version="1.0",
        os_type="linux",
        arch_type="x86_64",
        cpu_info="Test CPU @ 2.00GHz",
    )


@pytest.fixture
def config_source():
    cfg = AgentConfig()
    cfg.analytics.enabled = True
    cfg.services.status_server_domain = "status.test:9000"
    cfg.datastore.storage_max = "10GB"
    cfg.timing.heartbeat = 0.05
    cfg.timing.backoff_initial = 0
    cfg.timing.backoff_jitter = 0
    return StaticConfigSource(cfg)


@pytest.fixture
def server():
    return RecordingServer()


@pytest.fixture
def transport(server):
    return httpx.MockTransport(server)


@pytest.fixture
def keyless_node():
    return FakeNode(node_id="N1", key=None)


@pytest.fixture
def anonymous_node(signing_key):
    return FakeNode(node_id=None, key=signing_key)
