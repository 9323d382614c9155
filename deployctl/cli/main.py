"""Main CLI entrypoint for deployctl."""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click

from ..channel import SsmCommandChannel
from ..config import DEFAULT_ENVIRONMENT, DEFAULT_REGION, VerifierSettings, settings_from_env
from ..errors import DeployError, InvalidInstanceId, ServiceDidNotStart
from ..events import EventTypes, emit_event, event_recorder, get_status_from_events, read_events
from ..redact import redact_lines, redact_string
from ..release import image_uri, render_compose, ship_release, validate_instance_id
from ..state import create_run_dir, new_run_id, read_run_json, run_exists, write_run_json
from ..verify import DeploymentVerifier, VerificationResult


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
def main(verbose):
    """deployctl - Ship compose releases to EC2 over SSM and verify them."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _json_output(data: Dict[str, Any]) -> None:
    click.echo(json.dumps(data, indent=None))


def _human_output(message: str, output_json: bool) -> None:
    if not output_json:
        click.echo(message)


def _fail(message: str, output_json: bool, code: int = 1) -> None:
    if output_json:
        _json_output({'error': message})
    else:
        click.echo(f"❌ {message}", err=True)
    sys.exit(code)


def _load_env_json(env_json: Optional[str]) -> Dict[str, str]:
    if not env_json:
        return {}
    try:
        with open(Path(env_json)) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"invalid JSON: {e}", param_hint="--env-json")
    if not isinstance(data, dict):
        raise click.BadParameter("must contain a JSON object", param_hint="--env-json")
    return {str(k): str(v) for k, v in data.items()}


def _verifier_options(func):
    options = [
        click.option('--instance-ip', envvar='INSTANCE_IP', help='Public address for an external health probe'),
        click.option('--max-retries', type=click.IntRange(min=1), help='Status polls before giving up'),
        click.option('--retry-delay', type=click.FloatRange(min=0), help='Seconds between status polls'),
        click.option('--stability-delay', type=click.FloatRange(min=0),
                     help='Re-check the service this many seconds after health checks (0 disables)'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _load_settings(output_json, max_retries=None, retry_delay=None, stability_delay=None) -> VerifierSettings:
    """Read DEPLOYCTL_* settings and apply command-line overrides."""
    try:
        settings = settings_from_env()
    except ValueError as e:
        _fail(f"Invalid configuration: {e}", output_json)
        return
    if max_retries is not None:
        settings.max_retries = max_retries
    if retry_delay is not None:
        settings.retry_delay = retry_delay
    if stability_delay is not None:
        settings.stability_delay = stability_delay
    return settings


def _report_verification(run_id: str, result: VerificationResult, output_json: bool) -> None:
    emit_event(run_id, EventTypes.DONE, result.to_dict())

    if output_json:
        _json_output({'run_id': run_id, 'status': 'healthy', **result.to_dict()})
        return

    click.echo(f"✅ Service running after {len(result.attempts)} attempt(s)")
    health = result.health.status.value if result.health else 'unchecked'
    color = 'green' if health == 'healthy' else 'yellow'
    click.echo(f"Health: {click.style(health, fg=color)}")
    for warning in result.warnings:
        click.echo(f"  ⚠️  {warning}")


def _run_verification(run_id, channel, settings, instance_ip, output_json) -> None:
    verifier = DeploymentVerifier.from_settings(channel, settings, event_callback=event_recorder(run_id))
    try:
        result = verifier.verify(external_address=instance_ip or None)
    except ServiceDidNotStart as e:
        if e.service_logs and not output_json:
            click.echo(redact_lines(e.service_logs), err=True)
        _fail(str(e), output_json)
        return

    _report_verification(run_id, result, output_json)


@main.command()
@click.option('--instance-id', envvar='EC2_INSTANCE_ID', help='Target EC2 instance ID')
@click.option('--region', envvar='AWS_REGION', default=DEFAULT_REGION, show_default=True, help='AWS region')
@click.option('--environment', envvar='ENVIRONMENT', default=DEFAULT_ENVIRONMENT, show_default=True,
              help='Deployment environment (dev, prod)')
@click.option('--image-tag', envvar='IMAGE_TAG', required=True, help='Image tag to deploy')
@click.option('--registry', envvar='ECR_REGISTRY', required=True, help='Container registry host')
@click.option('--env-json', type=click.Path(exists=True, dir_okay=False), help='Container environment JSON file')
@click.option('--skip-verify', is_flag=True, help='Send the release without verifying it')
@_verifier_options
@click.option('--json', 'output_json', is_flag=True, help='Output machine-readable JSON')
def deploy(instance_id, region, environment, image_tag, registry, env_json, skip_verify,
           instance_ip, max_retries, retry_delay, stability_delay, output_json):
    """Ship a release to the instance, then verify it."""
    try:
        instance_id = validate_instance_id(instance_id)
    except InvalidInstanceId as e:
        _fail(str(e), output_json)
        return
    settings = _load_settings(output_json, max_retries, retry_delay, stability_delay)

    env = _load_env_json(env_json)
    env.setdefault('ENVIRONMENT', environment)
    image = image_uri(registry, environment, image_tag)

    run_id = new_run_id(environment)
    create_run_dir(run_id)
    write_run_json(run_id, instance_id, region, environment=environment, image=image)
    emit_event(run_id, EventTypes.DEPLOY_START, {"instance_id": instance_id, "image": image})

    _human_output(f"🚀 Deploying {image} to {instance_id} (run {run_id})", output_json)

    channel = SsmCommandChannel(instance_id, region, cloudwatch_output=True)
    try:
        ship_release(
            channel,
            render_compose(image, env, service=settings.service),
            registry,
            region,
            project_dir=settings.project_dir,
            event_callback=event_recorder(run_id),
        )
    except DeployError as e:
        emit_event(run_id, EventTypes.ERROR, {"reason": redact_string(str(e))})
        _fail(f"Deployment failed: {e}", output_json)
        return

    if skip_verify:
        if output_json:
            _json_output({'run_id': run_id, 'status': 'sent'})
        else:
            click.echo("📦 Release sent, verification skipped")
        return

    _run_verification(run_id, channel, settings, instance_ip, output_json)


@main.command()
@click.option('--instance-id', envvar='EC2_INSTANCE_ID', help='Target EC2 instance ID')
@click.option('--region', envvar='AWS_REGION', default=DEFAULT_REGION, show_default=True, help='AWS region')
@click.option('--environment', envvar='ENVIRONMENT', default=DEFAULT_ENVIRONMENT, show_default=True,
              help='Deployment environment (dev, prod)')
@_verifier_options
@click.option('--json', 'output_json', is_flag=True, help='Output machine-readable JSON')
def verify(instance_id, region, environment, instance_ip, max_retries, retry_delay, stability_delay, output_json):
    """Verify the service already deployed on the instance."""
    try:
        instance_id = validate_instance_id(instance_id)
    except InvalidInstanceId as e:
        _fail(str(e), output_json)
        return
    settings = _load_settings(output_json, max_retries, retry_delay, stability_delay)

    run_id = new_run_id(environment)
    create_run_dir(run_id)
    write_run_json(run_id, instance_id, region, environment=environment)
    _human_output(f"🔍 Verifying {instance_id} (run {run_id})", output_json)

    channel = SsmCommandChannel(instance_id, region)
    _run_verification(run_id, channel, settings, instance_ip, output_json)


@main.command()
@click.argument('run_id')
@click.option('--json', 'output_json', is_flag=True, help='Output machine-readable JSON')
def status(run_id, output_json):
    """Show the status of a run."""
    try:
        found = run_exists(run_id)
    except ValueError as e:
        _fail(str(e), output_json, code=2)
        return
    if not found:
        _fail(f"Run {run_id} not found", output_json, code=2)
        return

    run_status = get_status_from_events(run_id)
    info = read_run_json(run_id) or {}

    if output_json:
        _json_output({'run_id': run_id, 'status': run_status, **info})
        return

    color = 'green' if run_status == 'healthy' else 'red' if run_status == 'failed' else 'yellow'
    click.echo(f"📊 Run: {run_id}")
    click.echo(f"Status: {click.style(run_status, fg=color)}")
    if info.get('instance_id'):
        click.echo(f"Instance: {info['instance_id']} ({info.get('region', '?')})")
    if info.get('image'):
        click.echo(f"Image: {info['image']}")


@main.command()
@click.argument('run_id')
@click.option('--json', 'output_json', is_flag=True, help='Output machine-readable JSON')
def events(run_id, output_json):
    """Print the events recorded for a run."""
    try:
        found = run_exists(run_id)
    except ValueError as e:
        _fail(str(e), output_json, code=2)
        return
    if not found:
        _fail(f"Run {run_id} not found", output_json, code=2)
        return

    for event in read_events(run_id):
        if output_json:
            _json_output(event)
        else:
            _print_event_human(event)


def _print_event_human(event: Dict[str, Any]) -> None:
    event_type = event.get('type', 'UNKNOWN')
    data = event.get('data', {})
    timestamp = event.get('ts', '')
    time_str = timestamp[11:19] if len(timestamp) >= 19 else timestamp

    if event_type in ('VERIFY_RUNNING', 'HEALTH_OK', 'DONE'):
        color = 'green'
    elif event_type in ('SERVICE_DID_NOT_START', 'ERROR'):
        color = 'red'
    elif event_type in ('HEALTH_DEGRADED', 'HEALTH_WARN', 'STABILITY_WARN'):
        color = 'yellow'
    elif event_type.startswith('DEPLOY_'):
        color = 'blue'
    else:
        color = 'white'

    message = redact_string(json.dumps(data)) if data else ''
    click.echo(f"[{time_str}] {click.style(event_type, fg=color)}: {message}")


if __name__ == '__main__':
    main()
