"""
Agent error taxonomy.

Sampling and build failures are reported to the status service as health
alerts; delivery failures are retried and then dropped.
"""


class AgentError(Exception):
    """Base class for all agent failures."""


class ConfigUnavailable(AgentError):
    """Consent flag or endpoint could not be read from live config."""


class StatsUnavailable(AgentError):
    """Host exchange statistics could not be read."""


class SigningUnavailable(AgentError):
    """The node has no private key to sign with."""


class SignatureError(AgentError):
    """Signing the payload or marshalling the public key failed."""


class SerializationError(AgentError):
    """The metrics record could not be encoded."""


class DeliveryError(AgentError):
    """Base class for transport failures."""


class ConnectError(DeliveryError):
    """The status server could not be reached within the dial timeout."""


class CallTimeout(DeliveryError):
    """The remote call did not complete within the call timeout."""


class CallError(DeliveryError):
    """The remote call returned an error status."""
