"""
System and exchange metrics sampling.

Uses psutil for CPU and process memory, and the host node for storage usage
and block exchange counters. Interval upload/download are derived from the
cumulative byte counters against the totals seen at the previous tick.
"""
import logging
import platform
import time
from typing import Tuple

import psutil

from status_agent.errors import StatsUnavailable
from status_agent.host import HostNode
from status_agent.models import AgentIdentity, CumulativeCounters, ExchangeStats, MetricsSnapshot

logger = logging.getLogger(__name__)

KILOBYTE = 1024


def interval_delta(current: int, previous: int) -> int:
    """Non-negative change of a cumulative counter; a reset counts as 0."""
    return max(0, current - previous)


def to_kb(n: int) -> int:
    return n // KILOBYTE


def _cpu_model() -> str:
    """Best-effort human-readable CPU model."""
    try:
        with open("/proc/cpuinfo") as f:
            for line in f:
                if line.lower().startswith("model name"):
                    return line.split(":", 1)[1].strip()
    except OSError:
        pass
    return platform.processor()


def collect_identity(node: HostNode, version: str, build_hash: str = "") -> AgentIdentity:
    """Capture static identity facts once at activation."""
    try:
        cpu_info = _cpu_model()
    except Exception as e:
        logger.warning(f"Failed to read CPU model: {e}")
        cpu_info = ""
    uname = platform.uname()
    return AgentIdentity(
        node_id=node.identity,
        version=version,
        os_type=uname.system.lower(),
        arch_type=uname.machine,
        cpu_info=cpu_info,
        start_time=time.monotonic(),
        build_hash=build_hash,
    )


def _read_exchange_stats(node: HostNode) -> ExchangeStats:
    try:
        st = node.exchange_stats()
    except Exception as e:
        raise StatsUnavailable(f"failed to read exchange stats: {e}") from e
    if not isinstance(st, ExchangeStats):
        raise StatsUnavailable(
            f"exchange stats have unexpected type {type(st).__name__}"
        )
    return st


def sample(
    identity: AgentIdentity,
    node: HostNode,
    previous: CumulativeCounters,
) -> Tuple[MetricsSnapshot, CumulativeCounters]:
    """Sample the node and compute interval deltas.

    Returns the snapshot and the new cumulative counters. The counters always
    hold the latest raw totals, whether or not the snapshot is delivered.

    Raises:
        StatsUnavailable: exchange stats could not be read. No counters change.
    """
    snap = MetricsSnapshot(identity=identity)
    snap.uptime = int(time.monotonic() - identity.start_time)

    try:
        # interval=None compares against the previous call, never blocks
        snap.cpu_used = psutil.cpu_percent(interval=None)
        snap.memory_used = to_kb(psutil.Process().memory_info().rss)
    except (psutil.Error, OSError) as e:
        logger.debug(f"Process stats unavailable: {e}")

    try:
        snap.storage_used = to_kb(node.storage_usage())
    except Exception as e:
        logger.debug(f"Storage usage unavailable: {e}")

    st = _read_exchange_stats(node)

    snap.upload = to_kb(interval_delta(st.data_sent, previous.bytes_sent))
    snap.download = to_kb(interval_delta(st.data_received, previous.bytes_received))
    snap.total_upload = to_kb(st.data_sent)
    snap.total_download = to_kb(st.data_received)
    snap.blocks_up = st.blocks_sent
    snap.blocks_down = st.blocks_received
    snap.peers_connected = len(st.peers)

    counters = CumulativeCounters(bytes_sent=st.data_sent, bytes_received=st.data_received)
    return snap, counters
