"""
Defaults and environment-driven settings for deployments and verification.
"""

import os
from dataclasses import dataclass


DEFAULT_REGION = "eu-north-1"
DEFAULT_ENVIRONMENT = "dev"
DEFAULT_MAX_RETRIES = 10
DEFAULT_RETRY_DELAY = 10
DEFAULT_PROJECT_DIR = "~/project-vista-app"
DEFAULT_SERVICE = "backend"
DEFAULT_REPOSITORY_PREFIX = "vista-backend"
DEFAULT_HEALTH_PATH = "/api/health"
DEFAULT_FALLBACK_PATH = "/"
DEFAULT_PORTS = ["80:8000"]
SSM_DOCUMENT_NAME = "AWS-RunShellScript"
EXTERNAL_PROBE_TIMEOUT = 10


@dataclass
class VerifierSettings:
    """Knobs for the deployment verifier."""
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY
    project_dir: str = DEFAULT_PROJECT_DIR
    service: str = DEFAULT_SERVICE
    health_path: str = DEFAULT_HEALTH_PATH
    fallback_path: str = DEFAULT_FALLBACK_PATH
    stability_delay: float = 0


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


def settings_from_env() -> VerifierSettings:
    """
    Build verifier settings from DEPLOYCTL_* environment variables.

    Returns:
        VerifierSettings with defaults for anything unset
    """
    settings = VerifierSettings(
        max_retries=_env_int("DEPLOYCTL_MAX_RETRIES", DEFAULT_MAX_RETRIES),
        retry_delay=_env_float("DEPLOYCTL_RETRY_DELAY", DEFAULT_RETRY_DELAY),
        project_dir=os.environ.get("DEPLOYCTL_PROJECT_DIR", DEFAULT_PROJECT_DIR),
        service=os.environ.get("DEPLOYCTL_SERVICE", DEFAULT_SERVICE),
        health_path=os.environ.get("DEPLOYCTL_HEALTH_PATH", DEFAULT_HEALTH_PATH),
        fallback_path=os.environ.get("DEPLOYCTL_FALLBACK_PATH", DEFAULT_FALLBACK_PATH),
        stability_delay=_env_float("DEPLOYCTL_STABILITY_DELAY", 0),
    )

    if settings.max_retries < 1:
        raise ValueError("DEPLOYCTL_MAX_RETRIES must be at least 1")
    if settings.retry_delay < 0:
        raise ValueError("DEPLOYCTL_RETRY_DELAY must not be negative")

    return settings
