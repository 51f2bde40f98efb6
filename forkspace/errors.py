"""Exception hierarchy shared by the forkspace services.

Validation and probe failures never surface as exceptions; they collapse to
booleans or enum variants at the call site. Everything else propagates to the
caller as one of these, carrying a human-readable message.
"""


class ForkspaceError(Exception):
    """Base exception for forkspace operations."""


class ConflictError(ForkspaceError):
    """A name or path collides with something that already exists."""


class ExternalToolError(ForkspaceError):
    """An external tool (git, the system trash) reported a failure."""


class FacilityUnavailableError(ForkspaceError):
    """A required OS facility is missing in this environment."""


class NotFoundError(ForkspaceError):
    """The referenced record is no longer present."""


class InvalidPathError(ForkspaceError):
    """A path failed validation where a valid directory is required."""
