"""Exception hierarchy shared by the registry, engine, coordinator and gateways."""

from __future__ import annotations


class MirrorError(Exception):
    """Base class for all blob-mirror errors."""


class NotFoundError(MirrorError):
    """A referenced target, message or repository does not exist."""


class MessageNotFoundError(NotFoundError):
    """The chat platform no longer knows the message (deleted out of band)."""

    def __init__(self, channel_id: str, message_id: str) -> None:
        super().__init__(f"Message {message_id} not found in channel {channel_id}")
        self.channel_id = channel_id
        self.message_id = message_id


class PreconditionFailedError(MirrorError):
    """An operation was refused because the current state does not allow it."""


class PartialFailureError(MirrorError):
    """A reconciliation stopped partway through its plan.

    Operations counted in ``completed`` are already applied and persisted.
    Retrying the reconciliation re-derives the plan from the current posted
    sequence, so only the ``remaining`` tail is attempted again.
    """

    def __init__(self, target_id: str, completed: int, remaining: int) -> None:
        super().__init__(
            f"Reconciliation of {target_id} stopped after {completed} operation(s), "
            f"{remaining} remaining"
        )
        self.target_id = target_id
        self.completed = completed
        self.remaining = remaining


class GatewayError(MirrorError):
    """The chat platform rejected a request."""


class TransientGatewayError(GatewayError):
    """Network or rate-limit failure; the request may succeed if repeated."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class LockUnavailableError(MirrorError):
    """The per-target exclusion could not be acquired before the timeout, or was lost.

    ``lost`` is True when the lease expired or was taken over while held.
    """

    def __init__(self, target_id: str, timeout: float, *, lost: bool = False) -> None:
        if lost:
            message = f"Lost the lock on mirror target {target_id} while holding it"
        else:
            message = f"Could not lock mirror target {target_id} within {timeout:.1f}s"
        super().__init__(message)
        self.lost = lost
        self.target_id = target_id
        self.timeout = timeout


class StoreError(MirrorError):
    """The content store failed or returned inconsistent data."""


class InvalidMirrorUrlError(MirrorError):
    """The URL does not point at a file in a GitHub repository."""


class RegistrationIncompleteError(MirrorError):
    """A mirror target was created but its first reconciliation failed.

    The target exists and keeps whatever messages were posted; a resync or
    the next push fills in the rest.
    """

    def __init__(self, target_id: str, cause: Exception) -> None:
        super().__init__(f"Mirror target {target_id} was created but not fully posted: {cause}")
        self.target_id = target_id
