"""
Ship a compose release to the instance over the remote command channel.
"""

import base64
import re
from typing import Dict, List, Optional
import logging

import yaml

from .channel import RemoteCommandChannel
from .config import DEFAULT_PORTS, DEFAULT_PROJECT_DIR, DEFAULT_REPOSITORY_PREFIX, DEFAULT_SERVICE
from .errors import InvalidInstanceId
from .events import EventCallback, EventTypes
from .redact import redact_string

logger = logging.getLogger(__name__)


INSTANCE_ID_PATTERN = re.compile(r"^i-[a-zA-Z0-9]{8,17}$")


def validate_instance_id(instance_id: Optional[str]) -> str:
    """
    Check an EC2 instance ID.

    Raises:
        InvalidInstanceId: If the ID is empty or not i-xxxxxxxx
    """
    if not instance_id:
        raise InvalidInstanceId("EC2 instance ID is not set")

    if not INSTANCE_ID_PATTERN.match(instance_id):
        raise InvalidInstanceId(
            f"Invalid EC2 instance ID format: {instance_id}. Expected format: i-xxxxxxxxxxxxxxxxx"
        )

    return instance_id


def image_uri(registry: str, environment: str, tag: str, repository_prefix: str = DEFAULT_REPOSITORY_PREFIX) -> str:
    return f"{registry.rstrip('/')}/{repository_prefix}-{environment}:{tag}"


def render_compose(
    image: str,
    env: Dict[str, str],
    service: str = DEFAULT_SERVICE,
    ports: Optional[List[str]] = None,
) -> str:
    """
    Render a single-service docker-compose document.

    Args:
        image: Full image reference
        env: Environment passed to the container
        service: Compose service name
        ports: Port mappings, defaults to 80:8000

    Returns:
        YAML text
    """
    document = {
        "version": "3.8",
        "services": {
            service: {
                "image": image,
                "ports": list(ports or DEFAULT_PORTS),
                "restart": "always",
                "environment": [f"{key}={value}" for key, value in env.items()],
            }
        },
    }
    return yaml.safe_dump(document, sort_keys=False, default_flow_style=False)


def release_steps(compose_text: str, registry: str, region: str, project_dir: str = DEFAULT_PROJECT_DIR) -> List[Dict]:
    """Build the ordered remote steps for a release."""
    encoded = base64.b64encode(compose_text.encode("utf-8")).decode("ascii")

    return [
        {
            "name": "create_project_dir",
            "commands": [f"mkdir -p {project_dir}"],
        },
        {
            "name": "write_compose",
            "commands": [f"echo {encoded} | base64 -d > {project_dir}/docker-compose.yml"],
        },
        {
            "name": "compose_up",
            "commands": [
                f"cd {project_dir}",
                f"export AWS_REGION='{region}'",
                f"export ECR_REGISTRY='{registry}'",
                f"aws ecr get-login-password --region '{region}' | docker login --username AWS --password-stdin '{registry}'",
                "docker-compose pull",
                "docker-compose down || true",
                "docker-compose up -d",
                "echo \"Deployment completed successfully\"",
            ],
        },
    ]


def ship_release(
    channel: RemoteCommandChannel,
    compose_text: str,
    registry: str,
    region: str,
    project_dir: str = DEFAULT_PROJECT_DIR,
    event_callback: Optional[EventCallback] = None,
) -> Dict[str, str]:
    """
    Run the release steps on the instance one after another.

    Returns:
        Mapping of step name to its output

    Raises:
        RemoteCommandError: If any step cannot be sent or completed
    """
    outputs: Dict[str, str] = {}

    for step in release_steps(compose_text, registry, region, project_dir):
        logger.info(f"Running release step {step['name']}...")
        if event_callback:
            event_callback(EventTypes.DEPLOY_STEP, {"step": step["name"]})

        output = channel.run(step["commands"])
        outputs[step["name"]] = output
        logger.debug(f"{step['name']} output: {redact_string(output.strip())}")

    if event_callback:
        event_callback(EventTypes.DEPLOY_SENT, {"steps": list(outputs)})
    logger.info("Release commands completed on instance")
    return outputs
