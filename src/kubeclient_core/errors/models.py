"""Kubernetes ``Status`` response models."""

from dataclasses import dataclass
from typing import Any

import httpx


@dataclass
class Status:
    """The ``Status`` object returned by the API server on failures.

    See: https://kubernetes.io/docs/reference/using-api/api-concepts/#response-status-kind
    """

    status: str | None = None  # "Success" or "Failure"
    message: str | None = None  # Human-readable description
    reason: str | None = None  # Machine-readable reason, e.g. "Unauthorized"
    code: int | None = None  # HTTP status code

    # Extended data such as the name/kind of the affected object
    details: dict[str, Any] | None = None

    @classmethod
    def from_response(cls, response: httpx.Response) -> "Status | None":
        """Parse a ``Status`` object from an HTTP response.

        Args:
            response: HTTP response object

        Returns:
            Status object or None if the body is not a ``Status``
        """
        try:
            data = response.json()
        except (ValueError, TypeError, AttributeError):
            # JSON decode errors, type errors, or missing .json() method
            return None

        if not isinstance(data, dict) or data.get("kind") != "Status":
            return None

        code = data.get("code")
        return cls(
            status=data.get("status"),
            message=data.get("message"),
            reason=data.get("reason"),
            code=code if isinstance(code, int) else None,
            details=data.get("details") or None,
        )

    def to_exception_message(self) -> str:
        """Convert the status to an exception message."""
        lines = []

        if self.message:
            lines.append(self.message)
        elif self.reason:
            lines.append(self.reason)

        if self.reason and self.message:
            lines.append(f"Reason: {self.reason}")

        if self.details:
            kind = self.details.get("kind")
            name = self.details.get("name")
            if kind or name:
                lines.append(f"Object: {kind or '?'}/{name or '?'}")

        return "\n".join(lines) if lines else "Unknown API error"
