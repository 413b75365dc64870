"""Exception hierarchy shared by the fetch, indexing, and CLI layers."""

from __future__ import annotations

from typing import Optional


class PRContextError(Exception):
    """Base class for every error raised by prcontext."""


class RemoteError(PRContextError):
    """A call to the hosting platform failed.

    Carries the operation name and target path so callers can log
    something meaningful without re-deriving them.
    """

    def __init__(
        self,
        message: str,
        operation: str = "",
        path: str = "",
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.path = path
        self.status = status

    def __str__(self) -> str:
        base = super().__str__()
        where = " ".join(p for p in (self.operation, self.path) if p)
        return f"{where}: {base}" if where else base


class TransientRemoteError(RemoteError):
    """Network hiccup or server-side failure worth retrying."""


class RateLimitError(TransientRemoteError):
    """The platform asked us to slow down.

    ``kind`` is ``"primary"`` for an exhausted request quota and
    ``"secondary"`` for abuse-detection throttling.  ``retry_after`` is the
    cooldown in seconds announced by the platform, if any.
    """

    def __init__(
        self,
        message: str,
        kind: str = "primary",
        retry_after: Optional[float] = None,
        operation: str = "",
        path: str = "",
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message, operation=operation, path=path, status=status)
        self.kind = kind
        self.retry_after = retry_after


class NotFoundError(RemoteError):
    """The requested file or directory does not exist at that ref."""


class NoEligibleFilesError(PRContextError):
    """Traversal found no source file that can be indexed."""
