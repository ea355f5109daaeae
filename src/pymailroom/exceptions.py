"""Custom exception hierarchy for pymailroom."""

from __future__ import annotations


class MailroomError(Exception):
    """Base exception for all pymailroom errors."""


class MailroomConfigError(MailroomError):
    """Invalid or missing configuration."""


class UnknownLocationError(MailroomError):
    """A status was reported for a name outside the location registry."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown location: {name!r}")


class MailroomTransportError(MailroomError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class MailroomLoadError(MailroomError):
    """The full snapshot read could not complete.

    The board cache keeps its last good state (empty on the first load).
    """


class MailroomWriteError(MailroomError):
    """A status report could not be persisted.

    Raised after the optimistic entry has been reconciled.  ``resynced`` is
    ``True`` when the follow-up full reload succeeded, ``False`` when the
    board had to roll the optimistic entry back locally instead.
    """

    def __init__(self, message: str, *, name: str = "", resynced: bool = False) -> None:
        self.name = name
        self.resynced = resynced
        super().__init__(message)


class MailroomSubscriptionError(MailroomError):
    """The change feed disconnected or failed.

    Not fatal: reads keep decaying correctly, but remote updates stop
    arriving until :meth:`pymailroom.client.StatusBoard.resubscribe` succeeds.
    """
