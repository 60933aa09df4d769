"""
Error taxonomy for gridledger.

Construction-time errors (BuildError, SigningError) are raised before anything
is signed or submitted. DecodeError is raised only for externally received
bytes. InvalidTransaction is the single ledger-side rejection class; its
message is diagnostic text, not a programmatic signal.
"""


class GridError(Exception):
    """Base class for all gridledger errors."""


class BuildError(GridError):
    """Raised when an action, payload, transaction or batch cannot be built."""


class YamlParseError(BuildError):
    """Raised when a YAML input file does not describe valid actions."""


class SigningError(GridError):
    """Raised when a signing key is unavailable or signing fails."""


class DecodeError(GridError):
    """Raised when bytes do not match the expected canonical encoding."""


class InvalidTransaction(GridError):
    """Raised when a transaction violates a ledger rule during validate/apply."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthorizationError(GridError):
    """Raised when state outside a transaction's declared addresses is accessed."""


class SubmissionError(GridError):
    """Raised when a batch list cannot be submitted or is rejected by the ledger."""
