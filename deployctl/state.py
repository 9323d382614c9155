"""
Local run directories for deploy and verify invocations.

Run IDs look like ``<environment>-YYYYMMDD-hhmmss-xxxx`` so that a listing
of DEPLOYCTL_HOME shows which environment each run targeted.
"""

import json
import os
import re
import secrets
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .config import DEFAULT_ENVIRONMENT

RUN_ID_PATTERN = re.compile(r"^(?P<environment>[a-z][a-z0-9]{0,31})-(?P<stamp>\d{8}-\d{6})-[0-9a-f]{4}$")


def new_run_id(environment: str = DEFAULT_ENVIRONMENT) -> str:
    """
    Generate a run ID for a deploy or verify against an environment.

    Characters outside [a-z0-9] are dropped from the environment name.
    """
    prefix = re.sub(r"[^a-z0-9]", "", environment.lower())[:32]
    if not prefix or not prefix[0].isalpha():
        prefix = f"env{prefix}"[:32]
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    return f"{prefix}-{stamp}-{secrets.token_hex(2)}"


def is_valid_run_id(run_id: str) -> bool:
    return RUN_ID_PATTERN.match(run_id) is not None


def run_environment(run_id: str) -> Optional[str]:
    """Return the environment a run ID was issued for."""
    match = RUN_ID_PATTERN.match(run_id)
    return match.group("environment") if match else None


def get_home() -> Path:
    """
    Get the deployctl home directory.

    Returns:
        Path: Home directory, from DEPLOYCTL_HOME or ./.deployctl
    """
    return Path(os.environ.get("DEPLOYCTL_HOME", ".deployctl")).resolve()


def get_run_dir(run_id: str) -> Path:
    """
    Get the directory for a specific run.

    Raises:
        ValueError: If run ID is invalid
    """
    if not is_valid_run_id(run_id):
        raise ValueError(f"Invalid run ID: {run_id}")

    return get_home() / run_id


def create_run_dir(run_id: str) -> Path:
    run_dir = get_run_dir(run_id)
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir


def write_run_json(run_id: str, instance_id: str, region: str, **extra: Any) -> None:
    """
    Write the run's target description to run.json.

    Args:
        run_id: Run ID
        instance_id: Target EC2 instance
        region: AWS region
        extra: Additional fields (environment, image, ...)
    """
    data = {
        "instance_id": instance_id,
        "region": region,
        "created_at": datetime.now().isoformat(),
    }
    data.update(extra)

    with open(get_run_dir(run_id) / "run.json", "w") as f:
        json.dump(data, f, indent=2)


def read_run_json(run_id: str) -> Optional[Dict[str, Any]]:
    run_file = get_run_dir(run_id) / "run.json"
    if not run_file.exists():
        return None

    with open(run_file, "r") as f:
        return json.load(f)


def run_exists(run_id: str) -> bool:
    return get_run_dir(run_id).exists()


def list_runs() -> list[str]:
    """
    List all run IDs, most recent first.
    """
    home = get_home()
    if not home.exists():
        return []

    runs = [item.name for item in home.iterdir() if item.is_dir() and is_valid_run_id(item.name)]
    return sorted(runs, key=lambda r: RUN_ID_PATTERN.match(r).group("stamp"), reverse=True)
