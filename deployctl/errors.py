"""
Exceptions and non-fatal warnings raised during deploy and verification.
"""

from typing import List, Optional


class DeployError(Exception):
    """Base class for deployctl failures."""


class RemoteCommandError(DeployError):
    """A remote command could not be sent, awaited or read."""

    def __init__(self, message: str, command_id: Optional[str] = None):
        super().__init__(message)
        self.command_id = command_id


class InvalidInstanceId(DeployError, ValueError):
    """The EC2 instance ID is missing or malformed."""


class ServiceDidNotStart(DeployError):
    """The service never reported running within the retry budget."""

    def __init__(self, attempts: List, service_logs: Optional[str] = None):
        super().__init__(f"Service failed to start after {len(attempts)} attempts")
        self.attempts = attempts
        self.service_logs = service_logs


class VerificationWarning(DeployError):
    """Non-fatal verification anomaly. Collected on reports, never raised to callers."""


class HealthCheckDegraded(VerificationWarning):
    """Primary health endpoint did not report healthy."""


class ExternalCheckUnreachable(VerificationWarning):
    """The externally reachable health probe failed."""


class ServiceUnstable(VerificationWarning):
    """Service stopped reporting running after it was confirmed up."""
