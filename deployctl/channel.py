"""
Remote command channels for running shell commands on a deployment host.
"""

from abc import ABC, abstractmethod
from typing import List, Union
import logging

import boto3
from botocore.exceptions import BotoCoreError, ClientError, WaiterError

from .config import SSM_DOCUMENT_NAME
from .errors import RemoteCommandError

logger = logging.getLogger(__name__)


Command = Union[str, List[str]]


class RemoteCommandChannel(ABC):
    """Issues shell commands on a remote host and reads back their output."""

    @abstractmethod
    def send(self, command: Command) -> str:
        """
        Dispatch a command without waiting for it.

        Args:
            command: A shell command, or a list run in order

        Returns:
            Command ID used for await_completion and fetch_output
        """

    @abstractmethod
    def await_completion(self, command_id: str) -> None:
        """Block until the command has finished executing."""

    @abstractmethod
    def fetch_output(self, command_id: str) -> str:
        """Return the standard output of a finished command."""

    def run(self, command: Command) -> str:
        """Send a command, wait for it and return its output."""
        command_id = self.send(command)
        self.await_completion(command_id)
        return self.fetch_output(command_id)


class SsmCommandChannel(RemoteCommandChannel):
    """Runs commands on one EC2 instance through SSM Run Command."""

    def __init__(
        self,
        instance_id: str,
        region: str,
        document_name: str = SSM_DOCUMENT_NAME,
        cloudwatch_output: bool = False,
        waiter_delay: int = 5,
        waiter_max_attempts: int = 60,
        client=None,
    ):
        self.instance_id = instance_id
        self.region = region
        self.document_name = document_name
        self.cloudwatch_output = cloudwatch_output
        self.waiter_delay = waiter_delay
        self.waiter_max_attempts = waiter_max_attempts
        self.ssm_client = client

    def _get_client(self):
        """Lazy initialization of the SSM client."""
        if self.ssm_client is None:
            self.ssm_client = boto3.client('ssm', region_name=self.region)
        return self.ssm_client

    def send(self, command: Command) -> str:
        commands = [command] if isinstance(command, str) else list(command)
        kwargs = {
            "InstanceIds": [self.instance_id],
            "DocumentName": self.document_name,
            "Parameters": {"commands": commands},
        }
        if self.cloudwatch_output:
            kwargs["CloudWatchOutputConfig"] = {"CloudWatchOutputEnabled": True}

        try:
            response = self._get_client().send_command(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise RemoteCommandError(f"Failed to send command to {self.instance_id}: {e}") from e

        command_id = response["Command"]["CommandId"]
        logger.debug(f"Sent command {command_id} to {self.instance_id}")
        return command_id

    def await_completion(self, command_id: str) -> None:
        try:
            waiter = self._get_client().get_waiter("command_executed")
            waiter.wait(
                CommandId=command_id,
                InstanceId=self.instance_id,
                WaiterConfig={"Delay": self.waiter_delay, "MaxAttempts": self.waiter_max_attempts},
            )
        except WaiterError as e:
            raise RemoteCommandError(f"Command {command_id} did not complete: {e}", command_id) from e
        except (ClientError, BotoCoreError) as e:
            raise RemoteCommandError(f"Failed waiting for command {command_id}: {e}", command_id) from e

    def fetch_output(self, command_id: str) -> str:
        try:
            invocation = self._get_client().get_command_invocation(
                CommandId=command_id,
                InstanceId=self.instance_id,
            )
        except (ClientError, BotoCoreError) as e:
            raise RemoteCommandError(f"Failed to read output of {command_id}: {e}", command_id) from e

        return invocation.get("StandardOutputContent", "")
