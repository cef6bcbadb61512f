"""
Host node accessors.

The agent only needs a narrow view of the storage node it runs inside: its
identity, its signing key, how much storage it uses and its block exchange
statistics. HostNode describes that view; LocalNode implements it for a
standalone agent using psutil and a key file on disk.
"""
import hashlib
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import psutil
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from status_agent.models import ExchangeStats

logger = logging.getLogger(__name__)


class HostNode(ABC):
    """Accessor contract for the storage node hosting the agent."""

    @property
    @abstractmethod
    def identity(self) -> Optional[str]:
        """Node identifier, or None if the node has none yet."""

    @property
    @abstractmethod
    def private_key(self) -> Optional[Ed25519PrivateKey]:
        """Signing key, or None if unavailable."""

    @abstractmethod
    def storage_usage(self) -> int:
        """Bytes of storage used by the node."""

    @abstractmethod
    def exchange_stats(self) -> ExchangeStats:
        """Cumulative block exchange statistics."""


def node_id_for(key: Ed25519PrivateKey) -> str:
    """Derive a stable node id from the public half of a key."""
    raw = key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return hashlib.sha256(raw).hexdigest()[:40]


def load_or_create_key(path: str) -> Ed25519PrivateKey:
    """Load a PEM Ed25519 key, generating and saving one if the file is missing."""
    p = Path(path)
    if p.exists():
        key = serialization.load_pem_private_key(p.read_bytes(), password=None)
        if not isinstance(key, Ed25519PrivateKey):
            raise ValueError(f"{path} does not hold an Ed25519 key")
        return key

    key = Ed25519PrivateKey.generate()
    pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    p.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(p, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(pem)
    logger.info(f"Generated new node key at {path}")
    return key


class LocalNode(HostNode):
    """Standalone host: key from disk, storage from a directory, traffic from the NIC counters."""

    def __init__(self, key: Optional[Ed25519PrivateKey], datastore_path: str = ""):
        self._key = key
        self._identity = node_id_for(key) if key is not None else None
        self.datastore_path = datastore_path

    @property
    def identity(self) -> Optional[str]:
        return self._identity

    @property
    def private_key(self) -> Optional[Ed25519PrivateKey]:
        return self._key

    def storage_usage(self) -> int:
        if not self.datastore_path:
            return 0
        total = 0
        for root, _dirs, files in os.walk(self.datastore_path):
            for name in files:
                try:
                    total += os.path.getsize(os.path.join(root, name))
                except OSError:
                    continue
        return total

    def exchange_stats(self) -> ExchangeStats:
        net = psutil.net_io_counters()
        try:
            conns = psutil.net_connections(kind="inet")
            peers = sorted({
                f"{c.raddr.ip}:{c.raddr.port}"
                for c in conns
                if c.raddr and c.status == psutil.CONN_ESTABLISHED
            })
        except (psutil.AccessDenied, OSError):
            peers = []
        return ExchangeStats(
            data_sent=net.bytes_sent,
            data_received=net.bytes_recv,
            blocks_sent=net.packets_sent,
            blocks_received=net.packets_recv,
            peers=peers,
        )
