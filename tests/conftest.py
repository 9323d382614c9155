import pytest

from deployctl.channel import RemoteCommandChannel
from deployctl.errors import RemoteCommandError


class FakeChannel(RemoteCommandChannel):
    """Scripted channel: answers each kind of remote command from canned output."""

    def __init__(self, status=None, health="", root="", logs="backend | started", fail_on=(),
                 health_path="/api/health"):
        self.status_outputs = list(status or [])
        self.health = health
        self.health_path = health_path
        self.root = root
        self.logs = logs
        self.fail_on = fail_on
        self.commands = []
        self.awaited = []
        self._outputs = {}

    def send(self, command):
        text = command if isinstance(command, str) else " && ".join(command)
        self.commands.append(text)
        command_id = f"cmd-{len(self.commands)}"

        for marker in self.fail_on:
            if marker in text:
                raise RemoteCommandError(f"send failed for {marker}")

        if "docker-compose ps" in text:
            output = self.status_outputs.pop(0)
        elif "docker-compose logs" in text:
            output = self.logs
        elif text.endswith(f"localhost{self.health_path}"):
            output = self.health
        elif text.endswith("localhost/"):
            output = self.root
        else:
            output = ""

        self._outputs[command_id] = output
        return command_id

    def await_completion(self, command_id):
        self.awaited.append(command_id)

    def fetch_output(self, command_id):
        return self._outputs[command_id]

    def count(self, fragment):
        return sum(1 for c in self.commands if fragment in c)


@pytest.fixture
def fake_channel():
    return FakeChannel


@pytest.fixture
def deployctl_home(tmp_path, monkeypatch):
    monkeypatch.setenv("DEPLOYCTL_HOME", str(tmp_path))
    for name in ("INSTANCE_IP", "EC2_INSTANCE_ID", "ENVIRONMENT", "DEPLOYCTL_MAX_RETRIES", "DEPLOYCTL_RETRY_DELAY", "DEPLOYCTL_STABILITY_DELAY"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path
