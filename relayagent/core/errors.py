"""
Error taxonomy for the bridge core.

User-visible failures stay plain descriptive strings: every class here is
raised with a message meant to be shown as-is.
"""


class RelayError(RuntimeError):
    """Base class for bridge errors."""


class ResolutionError(RelayError):
    """The agent executable (or a required service) could not be located."""


class SandboxViolation(RelayError):
    """A tool path resolves outside the working directory."""


class SizeLimitExceeded(RelayError):
    """A file or output exceeds a configured ceiling."""


class ShellTimeout(RelayError):
    """A shell command ran past its timeout and was killed."""


class ProtocolDecodeError(RelayError):
    """A wire line could not be decoded (recovered locally as plain text)."""


class StorageError(RelayError):
    """A session store read or write failed."""


class ApprovalNotFound(RelayError):
    """No pending approval request matches the given id."""


class InvalidSessionId(StorageError):
    """A session id is not usable as a single file or directory name."""
