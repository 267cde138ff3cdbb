"""Error taxonomy for the chat relay"""


class RelayError(Exception):
    """Base class for every error raised by the relay core"""


class ValidationError(RelayError):
    """Bad payload shape or length; reported to the sender, never persisted or broadcast"""


class PersistenceError(RelayError):
    """The message store is unavailable or a read/write failed"""


class UpstreamProviderError(RelayError):
    """The AI completion provider failed"""


class TransportError(RelayError):
    """Malformed or unexpected frame received from a client"""
