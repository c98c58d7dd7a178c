"""
Run configuration for aws-resource-list.

Built once from CLI flags, environment variables and an optional YAML
defaults file, then threaded through every component unchanged.
"""
import os
import yaml
from pathlib import Path
from typing import Optional, List, Dict, Any
from dataclasses import dataclass, replace

from aws_resource_list.errors import UsageError


OUTPUT_FORMATS = ('json', 'table', 'jq')

DEFAULT_REGION = 'us-east-1'
DEFAULT_FORMAT = 'json'
DEFAULT_CONCURRENCY = 3
DEFAULT_SLEEP = 0.5

CONFIG_ENV_VAR = 'AWS_RESOURCE_LIST_CONFIG'
DEFAULT_CONFIG_PATH = Path.home() / '.aws-resource-list.yaml'

# Accepted types per defaults-file key
DEFAULTS_FILE_TYPES = {
    'profile': (str,),
    'format': (str,),
    'region': (str,),
    'concurrency': (int,),
    'sleep': (int, float),
    'no_paginate': (bool,),
    'verbose': (bool,),
}

DEFAULTS_FILE_KEYS = tuple(DEFAULTS_FILE_TYPES)


@dataclass(frozen=True)
class ListerConfig:
    """Immutable options for one invocation."""
    service: str
    region: str = DEFAULT_REGION
    profile: Optional[str] = None
    output_format: str = DEFAULT_FORMAT
    verbose: bool = False
    no_paginate: bool = False
    all_regions: bool = False
    concurrency: int = DEFAULT_CONCURRENCY
    sleep: float = DEFAULT_SLEEP
    output_file: Optional[Path] = None
    # True only when the profile came from --profile (preflight verifies it)
    explicit_profile: bool = False
    # Region positional given alongside --all-regions (unused)
    ignored_region: Optional[str] = None

    def __post_init__(self):
        if self.output_format not in OUTPUT_FORMATS:
            raise UsageError(f"Invalid format: {self.output_format}")
        if self.concurrency < 1:
            raise UsageError("Concurrency must be a positive integer")
        if self.sleep < 0:
            raise UsageError("Sleep must be a non-negative number (seconds)")

    def profile_args(self) -> List[str]:
        """Arguments selecting the credential profile, if any."""
        if self.profile:
            return ['--profile', self.profile]
        return []

    def paginate_args(self) -> List[str]:
        """Arguments controlling aws CLI auto-pagination."""
        if self.no_paginate:
            return ['--no-paginate']
        return []

    def with_format(self, output_format: str) -> 'ListerConfig':
        """Copy of this config with a different output format."""
        return replace(self, output_format=output_format)


def resolve_config_path(config_arg: Optional[str]) -> Optional[Path]:
    """
    Locate the defaults file.

    Args:
        config_arg: Value of --config, if given

    Returns:
        Path to load, or None when no defaults file applies

    Raises:
        UsageError: If a file named explicitly does not exist
    """
    explicit = config_arg or os.getenv(CONFIG_ENV_VAR)
    if explicit:
        path = Path(explicit).expanduser()
        if not path.is_file():
            raise UsageError(f"Config file not found: {path}")
        return path

    if DEFAULT_CONFIG_PATH.is_file():
        return DEFAULT_CONFIG_PATH

    return None


def load_defaults_file(path: Optional[Path]) -> Dict[str, Any]:
    """
    Load flag defaults from a YAML file.

    Args:
        path: Path to YAML defaults file, or None

    Returns:
        Mapping of recognised keys to values (empty when path is None)

    Raises:
        UsageError: If the file is not a YAML mapping, has unknown keys or
            a value of the wrong type
    """
    if path is None:
        return {}

    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise UsageError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise UsageError(f"Invalid config in {path}: must be a YAML mapping")

    unknown = sorted(set(data) - set(DEFAULTS_FILE_KEYS))
    if unknown:
        raise UsageError(f"Unknown keys in {path}: {', '.join(unknown)}")

    for key, value in data.items():
        expected = DEFAULTS_FILE_TYPES[key]
        # YAML booleans are ints in Python; only the bool keys accept them
        if isinstance(value, bool) and bool not in expected:
            raise UsageError(f"Invalid value for '{key}' in {path}: {value!r}")
        if not isinstance(value, expected):
            names = ' or '.join(t.__name__ for t in expected)
            raise UsageError(f"Invalid value for '{key}' in {path}: expected {names}, got {value!r}")

    return data
