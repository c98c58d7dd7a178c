"""
Preflight checks for aws-resource-list.

Verifies the aws CLI, the selected profile and the credentials before any
listing call, and validates the requested region.
"""
import shutil
import logging
from typing import List, Optional

from aws_resource_list.exec import CommandRunner
from aws_resource_list.errors import (
    AwsCliMissingError,
    CredentialsError,
    InvalidRegionError,
    ProfileNotFoundError,
)


logger = logging.getLogger(__name__)

REGIONS_QUERY = ['ec2', 'describe-regions', '--query', 'Regions[].RegionName', '--output', 'text']


def check_aws_cli(runner: CommandRunner) -> str:
    """
    Ensure the aws binary is on PATH and report its version.

    Returns:
        Version string reported by `aws --version` (may be empty)

    Raises:
        AwsCliMissingError: If aws is not installed
    """
    if shutil.which(runner.aws_binary) is None:
        raise AwsCliMissingError("AWS CLI not installed")

    result = runner.run([runner.aws_binary, '--version'])
    version = (result.stdout or result.stderr).strip()
    logger.debug(f"Detected AWS CLI: {version}")

    if 'aws-cli/2' not in version:
        logger.warning("AWS CLI v2 not detected; some checks may behave differently")

    return version


def check_profile(runner: CommandRunner, profile: str):
    """
    Ensure an explicitly requested profile exists.

    If the CLI cannot enumerate profiles the check is skipped with a warning.

    Raises:
        ProfileNotFoundError: If the profile is not configured
    """
    result = runner.run([runner.aws_binary, 'configure', 'list-profiles'])
    if not result.ok:
        logger.warning("Cannot verify profile existence (aws configure list-profiles not available); proceeding")
        return

    profiles = [line.strip() for line in result.stdout.splitlines() if line.strip()]
    if profile not in profiles:
        raise ProfileNotFoundError(f"AWS profile '{profile}' not found")


def check_credentials(runner: CommandRunner):
    """
    Ensure credentials are usable via sts get-caller-identity.

    Raises:
        CredentialsError: If the identity call still fails after every retry
    """
    result = runner.run_aws(['sts', 'get-caller-identity'])
    if not result.ok:
        raise CredentialsError(
            "AWS CLI credentials/configuration invalid or unable to call STS\n"
            "Run 'aws configure --profile <profile>' or set AWS_ACCESS_KEY_ID/AWS_SECRET_ACCESS_KEY "
            "(and optionally AWS_SESSION_TOKEN/AWS_PROFILE)"
        )


def run_preflight(runner: CommandRunner):
    """
    Run every environment check in order.

    Raises:
        AwsCliMissingError, ProfileNotFoundError, CredentialsError
    """
    check_aws_cli(runner)

    config = runner.config
    if config.explicit_profile and config.profile:
        check_profile(runner, config.profile)

    check_credentials(runner)


def fetch_regions(runner: CommandRunner) -> Optional[List[str]]:
    """
    Fetch the provider's region list.

    Returns:
        Ordered region names, or None if the list could not be retrieved
    """
    result = runner.run_aws_once(REGIONS_QUERY)
    if not result.ok:
        return None
    return result.stdout.split()


def validate_region(runner: CommandRunner, region: str):
    """
    Ensure region is published by the provider.

    Degrades to a warning when the region list is unavailable.

    Raises:
        InvalidRegionError: If the region is not in the list
    """
    logger.debug(f"Validating region: {region}")

    regions = fetch_regions(runner)
    if regions is None:
        logger.warning("Unable to query region list. Skipping region validation")
        return

    if region not in regions:
        raise InvalidRegionError(
            f"Invalid AWS region: '{region}'\n"
            f"Available: {' '.join(regions)}"
        )
