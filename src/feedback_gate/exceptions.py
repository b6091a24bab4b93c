"""
Exceptions raised by the feedback gate.
"""


class ConfigError(Exception):
    """Raised when the startup configuration is missing or malformed."""


class LedgerError(Exception):
    """Base class for ledger consistency and persistence failures."""


class UnknownChannelError(LedgerError):
    """Raised when a channel has no open-request list in the ledger."""


class OpenRequestNotFoundError(LedgerError):
    """Raised when an open request to be closed is not in its channel list.

    This points at double-processing of a reply or a request that was never
    tracked, so the current event must not go on to grant a credit.
    """
