"""Exception types raised by the alert engine."""

from __future__ import annotations


class AlertError(Exception):
    """Base class for alert engine errors."""


class StoreError(AlertError):
    """A rule, history or settings record could not be read or written."""


class SnapshotDecodeError(AlertError):
    """A stored metric payload could not be decoded."""


class DeliveryError(AlertError):
    """A notification channel rejected or could not accept a message."""


class AlertPermissionError(AlertError):
    """The requesting user does not own one of the targeted systems."""


class InvalidRequestError(AlertError):
    """A bulk rule request is missing required data."""
