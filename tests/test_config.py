import pytest

from deployctl.config import settings_from_env
from deployctl.verify import DeploymentVerifier


def test_defaults(monkeypatch):
    for name in ("DEPLOYCTL_MAX_RETRIES", "DEPLOYCTL_RETRY_DELAY", "DEPLOYCTL_SERVICE", "DEPLOYCTL_STABILITY_DELAY"):
        monkeypatch.delenv(name, raising=False)

    settings = settings_from_env()

    assert settings.max_retries == 10
    assert settings.retry_delay == 10
    assert settings.service == "backend"
    assert settings.health_path == "/api/health"
    assert settings.stability_delay == 0


def test_env_overrides(monkeypatch, fake_channel):
    monkeypatch.setenv("DEPLOYCTL_MAX_RETRIES", "3")
    monkeypatch.setenv("DEPLOYCTL_RETRY_DELAY", "2.5")
    monkeypatch.setenv("DEPLOYCTL_SERVICE", "api")

    settings = settings_from_env()
    verifier = DeploymentVerifier.from_settings(fake_channel(), settings)

    assert verifier.max_retries == 3
    assert verifier.retry_delay == 2.5
    assert verifier.service == "api"


@pytest.mark.parametrize("value", ["ten", "0"])
def test_invalid_max_retries(monkeypatch, value):
    monkeypatch.setenv("DEPLOYCTL_MAX_RETRIES", value)

    with pytest.raises(ValueError, match="DEPLOYCTL_MAX_RETRIES"):
        settings_from_env()
