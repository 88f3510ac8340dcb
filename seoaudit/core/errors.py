"""
Error taxonomy for the audit engine.

Only InvalidAuditTarget ever escapes run_audit(). Everything else is
recovered inside the component that raised it.
"""

from __future__ import annotations


class AuditError(Exception):
    """Base class for all audit engine errors."""


class InvalidAuditTarget(AuditError, ValueError):
    """The requested URL cannot be audited (bad scheme, missing host)."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid audit target {url!r}: {reason}")


class FetchError(AuditError):
    """
    An HTTP fetch did not produce a usable response.

    status_code is 0 for transport failures, 408 for timeouts and the
    HTTP status otherwise.
    """

    def __init__(self, url: str, status_code: int = 0, reason: str = ""):
        self.url = url
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"Fetch failed for {url} (status={status_code}): {reason}")

    @property
    def is_timeout(self) -> bool:
        return self.status_code == 408

    @property
    def is_transport_error(self) -> bool:
        return self.status_code == 0


class UpstreamServiceError(AuditError):
    """An external scoring service (PageSpeed, CrUX, mobile usability) failed."""

    def __init__(self, service: str, reason: str):
        self.service = service
        self.reason = reason
        super().__init__(f"{service} request failed: {reason}")
