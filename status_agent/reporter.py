"""Status reporter - sends signed metrics and health alerts to the status server."""
import asyncio
import logging
import random
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import httpx

from status_agent import __version__
from status_agent.config import ConfigSource, TimingConfig
from status_agent.errors import (
    AgentError,
    CallError,
    CallTimeout,
    ConfigUnavailable,
    ConnectError,
)
from status_agent.models import AgentIdentity, HealthAlert, SignedEnvelope

logger = logging.getLogger(__name__)

UPDATE_METRICS_PATH = "/status.Status/UpdateMetrics"
COLLECT_HEALTH_PATH = "/status.Status/CollectHealth"


def backoff_delay(attempt: int, timing: TimingConfig) -> float:
    """Delay before retry number `attempt` (0-based), with jitter."""
    delay = min(timing.backoff_initial * (timing.backoff_multiplier ** attempt), timing.backoff_max)
    if timing.backoff_jitter:
        delay *= random.uniform(1 - timing.backoff_jitter, 1 + timing.backoff_jitter)
    return max(0.0, delay)


async def retry(
    op: Callable[[], Awaitable[None]],
    timing: Optional[TimingConfig] = None,
    name: str = "operation",
) -> bool:
    """Run `op` up to `timing.max_retries` times with exponential backoff.

    Agent errors are retried; the last one is logged and absorbed. Returns
    True if some attempt succeeded.
    """
    timing = timing or TimingConfig()
    attempts = max(1, timing.max_retries)
    for attempt in range(attempts):
        try:
            await op()
            return True
        except AgentError as e:
            if attempt + 1 >= attempts:
                logger.warning(f"{name} failed after {attempts} attempts, dropping: {e}")
                return False
            wait = backoff_delay(attempt, timing)
            logger.debug(f"{name} failed (attempt {attempt + 1}): {e}. Retry in {wait:.2f}s")
            await asyncio.sleep(wait)
    return False


def _base_url(domain: str) -> str:
    if "://" in domain:
        return domain.rstrip("/")
    return f"http://{domain}"


class StatusReporter:
    def __init__(
        self,
        config_source: ConfigSource,
        identity: AgentIdentity,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config_source = config_source
        self.identity = identity
        self._transport = transport

    def _timing(self) -> TimingConfig:
        try:
            return self.config_source.current().timing
        except ConfigUnavailable:
            return TimingConfig()

    @asynccontextmanager
    async def connect(self):
        """Open a short-lived client to the status server.

        The address is read from live config on every call; the client is
        closed on every exit path.
        """
        cfg = self.config_source.current()
        domain = cfg.services.status_server_domain
        if not domain:
            raise ConfigUnavailable("status server domain is not configured")
        timing = cfg.timing
        try:
            client = httpx.AsyncClient(
                base_url=_base_url(domain),
                timeout=httpx.Timeout(timing.call_timeout, connect=timing.dial_timeout),
                headers={"User-Agent": f"status-agent/{__version__}"},
                transport=self._transport,
            )
        except httpx.InvalidURL as e:
            raise ConfigUnavailable(f"invalid status server domain {domain!r}: {e}") from e
        try:
            yield client
        finally:
            await client.aclose()

    async def _call(self, path: str, body: dict):
        async with self.connect() as client:
            try:
                resp = await client.post(path, json=body)
                resp.raise_for_status()
            except (httpx.ConnectError, httpx.ConnectTimeout) as e:
                raise ConnectError(f"failed to connect to status server: {e}") from e
            except httpx.TimeoutException as e:
                raise CallTimeout(f"{path} timed out: {e}") from e
            except httpx.InvalidURL as e:
                raise ConfigUnavailable(f"invalid status server url for {path}: {e}") from e
            except httpx.HTTPStatusError as e:
                raise CallError(f"{path} returned {e.response.status_code}") from e
            except httpx.HTTPError as e:
                raise CallError(f"{path} failed: {e}") from e

    async def update_metrics(self, envelope: SignedEnvelope):
        """Single UpdateMetrics attempt."""
        await self._call(UPDATE_METRICS_PATH, envelope.to_wire())

    async def collect_health(self, failure_point: str):
        """Single CollectHealth attempt."""
        alert = HealthAlert(
            node_id=self.identity.node_id,
            version=self.identity.version,
            failure_point=failure_point,
            time_created=datetime.now(timezone.utc),
        )
        await self._call(COLLECT_HEALTH_PATH, alert.to_wire())

    async def deliver(self, envelope: SignedEnvelope) -> bool:
        ok = await retry(lambda: self.update_metrics(envelope), self._timing(), "UpdateMetrics")
        if ok:
            logger.debug(f"Metrics delivered ({len(envelope.payload)} bytes)")
        return ok

    async def alert(self, failure_point: str) -> bool:
        logger.warning(f"Reporting health alert: {failure_point}")
        return await retry(lambda: self.collect_health(failure_point), self._timing(), "CollectHealth")
