"""
Collection agent scheduler.

Runs one sample -> sign -> send cycle immediately on activation and then once
per heartbeat, each time only if the analytics consent flag is currently set.
Cycles run sequentially on a single task; no failure escapes a cycle.
"""
import asyncio
import logging
from typing import Optional

import httpx

from status_agent.collector import collect_identity, sample
from status_agent.config import HEARTBEAT, ConfigSource
from status_agent.errors import (
    ConfigUnavailable,
    SerializationError,
    SignatureError,
    SigningUnavailable,
    StatsUnavailable,
)
from status_agent.host import HostNode
from status_agent.models import AgentIdentity, CumulativeCounters
from status_agent.payload import build_envelope
from status_agent.reporter import StatusReporter

logger = logging.getLogger(__name__)


class CollectionAgent:
    def __init__(
        self,
        node: HostNode,
        identity: AgentIdentity,
        config_source: ConfigSource,
        reporter: Optional[StatusReporter] = None,
    ):
        self.node = node
        self.identity = identity
        self.config_source = config_source
        self.reporter = reporter or StatusReporter(config_source, identity)
        # owned exclusively by this agent; only run_cycle touches it
        self.counters = CumulativeCounters()
        self._heartbeat_interval = HEARTBEAT

    async def run_cycle(self) -> bool:
        """Sample, sign and deliver once. Returns True if metrics were delivered."""
        try:
            cfg = self.config_source.current()
        except ConfigUnavailable as e:
            logger.debug(f"Skipping cycle, config unavailable: {e}")
            return False

        try:
            snapshot, self.counters = sample(self.identity, self.node, self.counters)
        except StatsUnavailable as e:
            await self.reporter.alert(str(e))
            return False

        try:
            envelope = build_envelope(self.node, snapshot, cfg.datastore.storage_max)
        except SerializationError as e:
            await self.reporter.alert(f"failed to marshal metrics record to a byte array: {e}")
            return False
        except (SigningUnavailable, SignatureError) as e:
            await self.reporter.alert(str(e))
            return False

        # delivery failures are dropped, not alerted
        return await self.reporter.deliver(envelope)

    async def tick(self) -> bool:
        """Run a cycle if consent is currently granted."""
        try:
            enabled = self.config_source.current().analytics.enabled
        except ConfigUnavailable as e:
            logger.debug(f"Consent check failed: {e}")
            return False
        if not enabled:
            return False
        try:
            await self.run_cycle()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Collection cycle failed")
        return True

    def _heartbeat(self) -> float:
        """Current heartbeat; an unreadable config keeps the last good value."""
        try:
            self._heartbeat_interval = self.config_source.current().timing.heartbeat
        except ConfigUnavailable as e:
            logger.debug(f"Keeping heartbeat {self._heartbeat_interval}s: {e}")
        return self._heartbeat_interval

    async def run(self, stop_event: Optional[asyncio.Event] = None):
        """Tick now, then every heartbeat until `stop_event` is set or the task is cancelled."""
        stop_event = stop_event or asyncio.Event()
        logger.info(f"Collection agent started for node {self.identity.node_id}")
        await self.tick()
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._heartbeat())
            except asyncio.TimeoutError:
                await self.tick()
        logger.info("Collection agent stopped")


def activate(
    node: Optional[HostNode],
    version: str,
    build_hash: str,
    config_source: ConfigSource,
    stop_event: Optional[asyncio.Event] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[asyncio.Task]:
    """Start the collection agent as a background task on the running loop.

    Returns None without starting anything if there is no node, the node has
    no identity yet, or the config cannot be read.
    """
    if node is None:
        return None
    try:
        config_source.current()
    except ConfigUnavailable as e:
        logger.warning(f"Status agent not started: {e}")
        return None
    if not node.identity:
        return None

    identity = collect_identity(node, version, build_hash)
    reporter = StatusReporter(config_source, identity, transport=transport)
    agent = CollectionAgent(node, identity, config_source, reporter)
    return asyncio.create_task(agent.run(stop_event), name="status-agent")
