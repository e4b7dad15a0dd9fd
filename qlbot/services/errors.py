"""Failures surfaced by the credential, gateway and conversation layers.

Cache failures are deliberately absent: they never leave the cache boundary.
"""

from typing import Optional


class QinglongError(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class TokenTimeout(QinglongError):
    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Token request timed out ({timeout_seconds:g}s)")


class TokenRefreshFailed(QinglongError):
    def __init__(self, issuer_message: str):
        self.issuer_message = issuer_message
        super().__init__(f"Failed to obtain panel token: {issuer_message}")


class GatewayTimeout(QinglongError):
    def __init__(self, method: str, endpoint: str, timeout_seconds: float):
        self.method = method
        self.endpoint = endpoint
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Request timed out ({timeout_seconds:g}s)")


class GatewayUnavailable(QinglongError):
    def __init__(self, method: str, endpoint: str, reason: str):
        self.method = method
        self.endpoint = endpoint
        self.reason = reason
        super().__init__(f"Panel unavailable: {reason}")


class DownstreamRejected(QinglongError):
    """Panel answered with a non-success status."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class ValidationFailed(QinglongError):
    """Free-text input did not match the pending action's grammar."""

    def __init__(self, message: str, expected_format: Optional[str] = None):
        self.expected_format = expected_format
        super().__init__(message)


class ScriptRejected(QinglongError):
    """A script offered for upload could not be fetched or is not acceptable."""


class UnresolvedScriptPath(QinglongError):
    """A button's script or folder name, possibly shortened, names zero or several entries."""

    def __init__(self, fragment: str, matches: list[str]):
        self.fragment = fragment
        self.matches = matches
        if matches:
            listed = ", ".join(matches)
            message = f"Several entries match {fragment}: {listed}. Open the list again or use the panel"
        else:
            message = f"Not found: {fragment}"
        super().__init__(message)
