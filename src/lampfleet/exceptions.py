"""Custom exception hierarchy for lampfleet."""

from __future__ import annotations


class LampFleetError(Exception):
    """Base exception for all lampfleet errors."""


class FleetConfigError(LampFleetError):
    """Invalid or missing configuration."""


class FleetProtocolError(LampFleetError):
    """Inbound message could not be decoded into a known command.

    Raised at the transport boundary for JSON failures, unknown ``type``
    tags and schema violations.  The server drops these messages (or
    answers with a ``rejected`` message when configured to).
    """

    def __init__(
        self,
        message: str,
        *,
        message_type: str | None = None,
        raw: str | bytes | None = None,
    ) -> None:
        self.message_type = message_type
        self.raw = raw
        super().__init__(message)


class FleetTransportError(LampFleetError):
    """Websocket-level failure (connect, closed channel, send error)."""

    def __init__(self, message: str, *, url: str = "") -> None:
        self.url = url
        super().__init__(message)
