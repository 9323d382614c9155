"""
Tests for the SSM command channel.
"""

import pytest
from unittest.mock import Mock, patch
from botocore.exceptions import (
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
    WaiterError,
)

from deployctl.channel import SsmCommandChannel
from deployctl.errors import RemoteCommandError

INSTANCE = "i-0123456789abcdef0"


def _client(command_id="c-1", output="ok"):
    client = Mock()
    client.send_command.return_value = {"Command": {"CommandId": command_id}}
    client.get_command_invocation.return_value = {"StandardOutputContent": output, "Status": "Success"}
    return client


def _client_error(operation):
    return ClientError({"Error": {"Code": "InvalidInstanceId", "Message": "Instance not managed"}}, operation)


class TestSsmCommandChannel:

    def test_send_single_command(self):
        client = _client()
        channel = SsmCommandChannel(INSTANCE, "eu-north-1", client=client)

        command_id = channel.send("mkdir -p ~/app")

        assert command_id == "c-1"
        client.send_command.assert_called_once_with(
            InstanceIds=[INSTANCE],
            DocumentName="AWS-RunShellScript",
            Parameters={"commands": ["mkdir -p ~/app"]},
        )

    def test_send_command_list_with_cloudwatch(self):
        client = _client()
        channel = SsmCommandChannel(INSTANCE, "eu-north-1", cloudwatch_output=True, client=client)

        channel.send(["cd ~/app", "docker-compose up -d"])

        kwargs = client.send_command.call_args.kwargs
        assert kwargs["Parameters"] == {"commands": ["cd ~/app", "docker-compose up -d"]}
        assert kwargs["CloudWatchOutputConfig"] == {"CloudWatchOutputEnabled": True}

    def test_send_client_error(self):
        client = _client()
        client.send_command.side_effect = _client_error("SendCommand")
        channel = SsmCommandChannel(INSTANCE, "eu-north-1", client=client)

        with pytest.raises(RemoteCommandError, match="Failed to send command"):
            channel.send("uptime")

    def test_send_endpoint_unreachable(self):
        client = _client()
        client.send_command.side_effect = EndpointConnectionError(endpoint_url="https://ssm.eu-north-1.amazonaws.com/")
        channel = SsmCommandChannel(INSTANCE, "eu-north-1", client=client)

        with pytest.raises(RemoteCommandError, match="Could not connect to the endpoint URL"):
            channel.send("uptime")

    def test_send_without_credentials(self):
        client = _client()
        client.send_command.side_effect = NoCredentialsError()
        channel = SsmCommandChannel(INSTANCE, "eu-north-1", client=client)

        with pytest.raises(RemoteCommandError, match="Unable to locate credentials"):
            channel.send("uptime")

    def test_await_uses_command_executed_waiter(self):
        client = _client()
        channel = SsmCommandChannel(INSTANCE, "eu-north-1", waiter_delay=2, waiter_max_attempts=7, client=client)

        channel.await_completion("c-1")

        client.get_waiter.assert_called_once_with("command_executed")
        client.get_waiter.return_value.wait.assert_called_once_with(
            CommandId="c-1",
            InstanceId=INSTANCE,
            WaiterConfig={"Delay": 2, "MaxAttempts": 7},
        )

    def test_await_waiter_error(self):
        client = _client()
        client.get_waiter.return_value.wait.side_effect = WaiterError(
            name="CommandExecuted", reason="Waiter encountered a terminal failure state", last_response={}
        )
        channel = SsmCommandChannel(INSTANCE, "eu-north-1", client=client)

        with pytest.raises(RemoteCommandError) as exc_info:
            channel.await_completion("c-9")

        assert exc_info.value.command_id == "c-9"

    def test_await_waiter_lookup_fails(self):
        client = _client()
        client.get_waiter.side_effect = NoCredentialsError()
        channel = SsmCommandChannel(INSTANCE, "eu-north-1", client=client)

        with pytest.raises(RemoteCommandError) as exc_info:
            channel.await_completion("c-3")

        assert exc_info.value.command_id == "c-3"

    def test_fetch_output_read_timeout(self):
        client = _client()
        client.get_command_invocation.side_effect = ReadTimeoutError(
            endpoint_url="https://ssm.eu-north-1.amazonaws.com/"
        )
        channel = SsmCommandChannel(INSTANCE, "eu-north-1", client=client)

        with pytest.raises(RemoteCommandError) as exc_info:
            channel.fetch_output("c-5")

        assert exc_info.value.command_id == "c-5"

    def test_fetch_output(self):
        client = _client(output="status: healthy")
        channel = SsmCommandChannel(INSTANCE, "eu-north-1", client=client)

        assert channel.fetch_output("c-1") == "status: healthy"
        client.get_command_invocation.assert_called_once_with(CommandId="c-1", InstanceId=INSTANCE)

    def test_fetch_output_missing_content(self):
        client = _client()
        client.get_command_invocation.return_value = {"Status": "Success"}
        channel = SsmCommandChannel(INSTANCE, "eu-north-1", client=client)

        assert channel.fetch_output("c-1") == ""

    def test_run_sends_waits_and_reads(self):
        client = _client(command_id="c-42", output="Up 3 seconds")
        channel = SsmCommandChannel(INSTANCE, "eu-north-1", client=client)

        assert channel.run("docker-compose ps backend") == "Up 3 seconds"
        client.get_waiter.return_value.wait.assert_called_once()
        assert client.get_command_invocation.call_args.kwargs["CommandId"] == "c-42"

    @patch("deployctl.channel.boto3.client")
    def test_client_created_lazily(self, mock_boto_client):
        mock_boto_client.return_value = _client()
        channel = SsmCommandChannel(INSTANCE, "us-east-1")

        mock_boto_client.assert_not_called()
        channel.send("uptime")
        channel.send("uptime")

        mock_boto_client.assert_called_once_with("ssm", region_name="us-east-1")
