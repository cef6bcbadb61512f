"""
Metrics payload serialization and signing.

The payload is a flat JSON record with sorted keys. It is signed with the
node's Ed25519 key and shipped together with the raw public key, so the status
service can check authenticity without a separate key exchange.
"""
import json
import logging
from datetime import datetime, timezone

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from status_agent.config import parse_size
from status_agent.errors import SerializationError, SignatureError, SigningUnavailable
from status_agent.host import HostNode
from status_agent.models import MetricsSnapshot, SignedEnvelope

logger = logging.getLogger(__name__)


def snapshot_record(snapshot: MetricsSnapshot, storage_max: str = "") -> dict:
    """Flatten a snapshot and its identity into the wire record."""
    ident = snapshot.identity
    try:
        capacity = parse_size(storage_max) if storage_max else 0
    except ValueError as e:
        logger.debug(f"Ignoring unparsable storage_max {storage_max!r}: {e}")
        capacity = 0
    return {
        "time_created": datetime.now(timezone.utc).isoformat(),
        "node_id": ident.node_id,
        "version": ident.version,
        "arch_type": ident.arch_type,
        "os_type": ident.os_type,
        "cpu_info": ident.cpu_info,
        "cpu_used": snapshot.cpu_used,
        "memory_used": snapshot.memory_used,
        "storage_used": snapshot.storage_used,
        "storage_volume_cap": capacity,
        "up_time": snapshot.uptime,
        "upload": snapshot.upload,
        "download": snapshot.download,
        "total_upload": snapshot.total_upload,
        "total_download": snapshot.total_download,
        "blocks_up": snapshot.blocks_up,
        "blocks_down": snapshot.blocks_down,
        "peers_connected": snapshot.peers_connected,
        "settings": {},
    }


def serialize_snapshot(snapshot: MetricsSnapshot, storage_max: str = "") -> bytes:
    try:
        record = snapshot_record(snapshot, storage_max)
        return json.dumps(record, sort_keys=True, separators=(",", ":")).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SerializationError(f"failed to marshal metrics record: {e}") from e


def decode_payload(payload: bytes) -> dict:
    return json.loads(payload.decode("utf-8"))


def build_envelope(node: HostNode, snapshot: MetricsSnapshot, storage_max: str = "") -> SignedEnvelope:
    """Serialize and sign a snapshot.

    Raises:
        SerializationError: the record could not be encoded.
        SigningUnavailable: the node has no private key.
        SignatureError: signing or public key marshalling failed.
    """
    payload = serialize_snapshot(snapshot, storage_max)

    key = node.private_key
    if key is None:
        raise SigningUnavailable("node's private key is null")

    try:
        signature = key.sign(payload)
    except Exception as e:
        raise SignatureError(f"failed to sign raw data with node private key: {e}") from e

    try:
        public_key = key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
    except Exception as e:
        raise SignatureError(f"failed to marshal node public key: {e}") from e

    return SignedEnvelope(payload=payload, signature=signature, public_key=public_key)


def verify_envelope(envelope: SignedEnvelope) -> bool:
    """Check the envelope signature against its embedded public key."""
    try:
        pub = Ed25519PublicKey.from_public_bytes(envelope.public_key)
        pub.verify(envelope.signature, envelope.payload)
    except (InvalidSignature, ValueError):
        return False
    return True
