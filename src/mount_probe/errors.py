from __future__ import annotations


class ProbeError(Exception):
    """Base class for errors raised inside mount_probe."""


class ProviderUnavailable(ProbeError):
    """A mount enumeration or usage query could not be completed."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class MalformedEntry(ProbeError, ValueError):
    def __init__(self, line: str, reason: str) -> None:
        super().__init__(f"{reason}: {line!r}")
        self.line = line
        self.reason = reason
