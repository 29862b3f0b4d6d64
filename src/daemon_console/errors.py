from __future__ import annotations

from typing import Optional, Sequence


class DaemonConsoleError(Exception):
    """Base class for the errors raised by this package."""


class ConfigurationError(DaemonConsoleError):
    pass


class TokenAcquisitionError(DaemonConsoleError):
    """The identity provider refused to issue a token."""

    def __init__(
        self,
        error: str,
        description: str = "",
        codes: Optional[Sequence[int]] = None,
    ):
        super().__init__(f"{error}: {description}" if description else error)
        self.error = error
        self.description = description
        self.codes = list(codes or [])


class GraphServiceError(DaemonConsoleError):
    def __init__(self, status: int, url: str, message: str = "", body_snippet: str = ""):
        super().__init__(message or f"HTTP {status} for {url}")
        self.status = status
        self.url = url
        self.body_snippet = body_snippet

    def __str__(self) -> str:
        base = super().__str__()
        if self.body_snippet:
            return f"{base} ({self.status}): {self.body_snippet}"
        return f"{base} ({self.status})"
