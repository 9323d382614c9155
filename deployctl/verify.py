"""
Post-deploy verification: wait for the service to run, then probe its health.

Only a service that never reports running is fatal. Health endpoint
shortfalls are collected as warnings so that a slow application warm-up
after the container is already up does not fail the deployment.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import logging

import requests

from .channel import RemoteCommandChannel
from .config import (
    DEFAULT_FALLBACK_PATH,
    DEFAULT_HEALTH_PATH,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PROJECT_DIR,
    DEFAULT_RETRY_DELAY,
    DEFAULT_SERVICE,
    EXTERNAL_PROBE_TIMEOUT,
    VerifierSettings,
)
from .errors import (
    ExternalCheckUnreachable,
    HealthCheckDegraded,
    RemoteCommandError,
    ServiceDidNotStart,
    ServiceUnstable,
    VerificationWarning,
)
from .events import EventCallback, EventTypes
from .redact import redact_lines

logger = logging.getLogger(__name__)


RUNNING_MARKER = "Up"
NOT_RUNNING_MARKER = "Service not running"
HEALTHY_MARKER = "healthy"
ROOT_RUNNING_MARKER = "running"


class ServiceStatus(Enum):
    UNKNOWN = "unknown"
    NOT_RUNNING = "not_running"
    RUNNING = "running"


class HealthStatus(Enum):
    UNCHECKED = "unchecked"
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNKNOWN = "unknown"

    @property
    def is_degraded_or_unknown(self) -> bool:
        return self in (HealthStatus.DEGRADED, HealthStatus.UNKNOWN)


@dataclass
class VerificationAttempt:
    """One status poll of the remote service."""
    attempt_number: int
    service_status: ServiceStatus = ServiceStatus.UNKNOWN
    health_status: HealthStatus = HealthStatus.UNCHECKED
    output: str = ""


@dataclass
class ExternalProbe:
    """Direct HTTP health request against the public address. Diagnostic only."""
    address: str
    ok: bool
    response: Optional[str] = None
    error: Optional[str] = None


@dataclass
class HealthReport:
    status: HealthStatus
    health_response: str = ""
    root_response: Optional[str] = None
    external: Optional[ExternalProbe] = None
    warnings: List[VerificationWarning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        # Health shortfalls never fail a deployment once the service is running.
        return True


@dataclass
class VerificationResult:
    attempts: List[VerificationAttempt]
    health: Optional[HealthReport] = None
    container_logs: str = ""
    stable: Optional[bool] = None

    @property
    def warnings(self) -> List[VerificationWarning]:
        return list(self.health.warnings) if self.health else []

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "attempts": len(self.attempts),
            "service_status": self.attempts[-1].service_status.value if self.attempts else None,
            "health_status": self.health.status.value if self.health else HealthStatus.UNCHECKED.value,
            "stable": self.stable,
            "warnings": [str(w) for w in self.warnings],
        }
        if self.health and self.health.external:
            data["external"] = {
                "address": self.health.external.address,
                "ok": self.health.external.ok,
                "error": self.health.external.error,
            }
        return data


def classify_service_output(output: str) -> ServiceStatus:
    """Map docker-compose ps output to a service status."""
    if NOT_RUNNING_MARKER not in output and RUNNING_MARKER in output:
        return ServiceStatus.RUNNING
    return ServiceStatus.NOT_RUNNING


def _no_events(event_type: str, data: Dict[str, Any]) -> None:
    pass


class DeploymentVerifier:
    """
    Confirms a just-deployed compose service is up and answering.

    The verifier never deploys anything itself. All remote work goes
    through the channel, one command at a time.
    """

    def __init__(
        self,
        channel: RemoteCommandChannel,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        health_path: str = DEFAULT_HEALTH_PATH,
        fallback_path: str = DEFAULT_FALLBACK_PATH,
        project_dir: str = DEFAULT_PROJECT_DIR,
        service: str = DEFAULT_SERVICE,
        stability_delay: float = 0,
        sleep: Callable[[float], None] = time.sleep,
        event_callback: Optional[EventCallback] = None,
        http_get: Callable[..., requests.Response] = requests.get,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")

        self.channel = channel
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.health_path = health_path
        self.fallback_path = fallback_path
        self.project_dir = project_dir
        self.service = service
        self.stability_delay = stability_delay
        self.sleep = sleep
        self.event_callback = event_callback or _no_events
        self.http_get = http_get

    @classmethod
    def from_settings(cls, channel: RemoteCommandChannel, settings: VerifierSettings, **kwargs) -> "DeploymentVerifier":
        return cls(
            channel,
            max_retries=settings.max_retries,
            retry_delay=settings.retry_delay,
            health_path=settings.health_path,
            fallback_path=settings.fallback_path,
            project_dir=settings.project_dir,
            service=settings.service,
            stability_delay=settings.stability_delay,
            **kwargs,
        )

    def _status_command(self) -> str:
        return (
            f"cd {self.project_dir} && docker-compose ps {self.service} "
            f"| grep -E \"Up|running\" || echo \"{NOT_RUNNING_MARKER}\""
        )

    def _logs_command(self, service: Optional[str]) -> str:
        target = f" {service}" if service else ""
        return f"cd {self.project_dir} && docker-compose logs{target} || echo \"No logs available\""

    def _check_status(self, attempt: VerificationAttempt) -> VerificationAttempt:
        try:
            attempt.output = self.channel.run(self._status_command())
        except RemoteCommandError as e:
            logger.warning(f"Status check {attempt.attempt_number} could not run: {e}")
            attempt.service_status = ServiceStatus.UNKNOWN
            return attempt

        attempt.service_status = classify_service_output(attempt.output)
        return attempt

    def poll_until_running(self) -> List[VerificationAttempt]:
        """
        Poll the service status until it reports running.

        Returns:
            Attempts made, the last one RUNNING

        Raises:
            ServiceDidNotStart: After max_retries attempts without success
        """
        attempts: List[VerificationAttempt] = []

        for number in range(1, self.max_retries + 1):
            logger.info(f"Checking service status (attempt {number}/{self.max_retries})...")
            attempt = self._check_status(VerificationAttempt(attempt_number=number))
            attempts.append(attempt)
            self.event_callback(EventTypes.VERIFY_ATTEMPT, {
                "attempt": number,
                "max_retries": self.max_retries,
                "service_status": attempt.service_status.value,
                "output": attempt.output.strip(),
            })

            if attempt.service_status == ServiceStatus.RUNNING:
                logger.info(f"Service is running: {attempt.output.strip()}")
                self.event_callback(EventTypes.VERIFY_RUNNING, {"attempt": number})
                return attempts

            if number < self.max_retries:
                logger.debug(f"Service not running yet, retrying in {self.retry_delay}s...")
                self.sleep(self.retry_delay)

        logger.error(f"Service failed to start after {self.max_retries} attempts")
        service_logs = self._fetch_diagnostic_logs()
        self.event_callback(EventTypes.SERVICE_DID_NOT_START, {
            "attempts": self.max_retries,
            "logs_fetched": service_logs is not None,
        })
        raise ServiceDidNotStart(attempts, service_logs)

    def _fetch_diagnostic_logs(self) -> Optional[str]:
        try:
            logs = self.fetch_service_logs()
        except RemoteCommandError as e:
            logger.warning(f"Could not fetch service logs: {e}")
            return None

        logger.error(f"Service logs:\n{redact_lines(logs)}")
        return logs

    def fetch_service_logs(self, service: Optional[str] = None) -> str:
        """Return docker-compose logs for one service, or all of them."""
        return self.channel.run(self._logs_command(service))

    def _probe(self, path: str) -> str:
        try:
            return self.channel.run(f"curl -s http://localhost{path}")
        except RemoteCommandError as e:
            logger.warning(f"Health probe for {path} could not run: {e}")
            return ""

    def check_health(self, external_address: Optional[str] = None) -> HealthReport:
        """
        Probe the health endpoint, falling back to the root endpoint.

        Args:
            external_address: Public host to probe directly, for diagnostics only

        Returns:
            HealthReport. Never raises for an unhealthy service.
        """
        warnings: List[VerificationWarning] = []

        health_response = self._probe(self.health_path)
        logger.info(f"Health check response: {health_response.strip()}")

        root_response = None
        if HEALTHY_MARKER in health_response:
            status = HealthStatus.HEALTHY
            logger.info("API health check successful")
            self.event_callback(EventTypes.HEALTH_OK, {"path": self.health_path})
        else:
            warnings.append(HealthCheckDegraded(
                f"{self.health_path} did not report '{HEALTHY_MARKER}', trying {self.fallback_path}"
            ))
            logger.warning(f"{self.health_path} did not return '{HEALTHY_MARKER}', trying {self.fallback_path} as fallback")

            root_response = self._probe(self.fallback_path)
            logger.info(f"Root endpoint response: {root_response.strip()}")

            if ROOT_RUNNING_MARKER in root_response:
                status = HealthStatus.DEGRADED
                logger.info("Root endpoint check successful")
                self.event_callback(EventTypes.HEALTH_DEGRADED, {"path": self.fallback_path})
            else:
                status = HealthStatus.UNKNOWN
                warnings.append(HealthCheckDegraded("API may not be fully initialized yet"))
                logger.warning("API may not be fully initialized yet")
                self.event_callback(EventTypes.HEALTH_WARN, {
                    "health_response": health_response.strip(),
                    "root_response": root_response.strip(),
                })

        external = None
        if external_address:
            external = self.probe_external(external_address)
            if not external.ok:
                warnings.append(ExternalCheckUnreachable(external.error or "external probe failed"))

        return HealthReport(
            status=status,
            health_response=health_response,
            root_response=root_response,
            external=external,
            warnings=warnings,
        )

    def probe_external(self, address: str) -> ExternalProbe:
        """Hit the health endpoint directly over the public address."""
        url = f"http://{address}{self.health_path}"
        logger.info(f"Verifying external access via {address}...")

        try:
            response = self.http_get(url, timeout=EXTERNAL_PROBE_TIMEOUT)
            body = response.text
        except requests.exceptions.RequestException as e:
            probe = ExternalProbe(address=address, ok=False, error=f"Request failed: {e}")
        else:
            if HEALTHY_MARKER in body:
                probe = ExternalProbe(address=address, ok=True, response=body)
            else:
                probe = ExternalProbe(
                    address=address, ok=False, response=body,
                    error=f"External health check did not return '{HEALTHY_MARKER}'",
                )

        if probe.ok:
            logger.info("External API health check successful")
        else:
            logger.warning(f"External health check failed: {probe.error}. "
                           "This might be network configuration or the API still initializing.")
        self.event_callback(EventTypes.EXTERNAL_PROBE, {"address": address, "ok": probe.ok, "error": probe.error})
        return probe

    def confirm_stable(self) -> Optional[ServiceUnstable]:
        """
        Re-check the service once after stability_delay.

        Returns:
            ServiceUnstable if the service no longer reports running, else None
        """
        self.sleep(self.stability_delay)
        attempt = self._check_status(VerificationAttempt(attempt_number=1))
        if attempt.service_status == ServiceStatus.RUNNING:
            return None

        warning = ServiceUnstable(
            f"Service not running {self.stability_delay}s after it was confirmed up: {attempt.output.strip()}"
        )
        logger.warning(str(warning))
        self.event_callback(EventTypes.STABILITY_WARN, {"output": attempt.output.strip()})
        return warning

    def verify(self, external_address: Optional[str] = None) -> VerificationResult:
        """
        Run the full verification: poll, dump service logs, check health.

        Raises:
            ServiceDidNotStart: The service never reported running
        """
        attempts = self.poll_until_running()
        result = VerificationResult(attempts=attempts)

        try:
            result.container_logs = self.fetch_service_logs(self.service)
            logger.info(f"Container logs output:\n{redact_lines(result.container_logs)}")
            self.event_callback(EventTypes.SERVICE_LOGS, {"lines": len(result.container_logs.splitlines())})
        except RemoteCommandError as e:
            logger.warning(f"Could not fetch container logs: {e}")

        result.health = self.check_health(external_address)

        if self.stability_delay > 0:
            warning = self.confirm_stable()
            result.stable = warning is None
            if warning is not None:
                result.health.warnings.append(warning)

        logger.info("Service is running. Deployment verification completed.")
        return result
