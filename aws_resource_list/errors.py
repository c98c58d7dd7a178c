"""
Error types for aws-resource-list.

Every error carries the stable exit code the CLI terminates with, so calling
scripts can branch on the cause.
"""

EXIT_SUCCESS = 0
EXIT_USAGE = 1
EXIT_NO_AWS = 2
EXIT_AWS_NOT_CONFIGURED = 3
EXIT_INVALID_REGION = 4
EXIT_PROFILE_NOT_FOUND = 5
EXIT_LISTING_FAILED = 6
EXIT_CANNOT_WRITE_FILE = 7
EXIT_INTERRUPTED = 130


class ResourceListError(Exception):
    """Base error; terminates the run with `exit_code`."""
    exit_code = 1


class UsageError(ResourceListError):
    """Raised for bad flags, bad values or a wrong positional count."""
    exit_code = EXIT_USAGE


class EnvironmentCheckError(ResourceListError):
    """Raised when the local environment cannot support a run."""
    pass


class AwsCliMissingError(EnvironmentCheckError):
    """Raised when the aws binary is not on PATH."""
    exit_code = EXIT_NO_AWS


class CredentialsError(EnvironmentCheckError):
    """Raised when sts get-caller-identity fails."""
    exit_code = EXIT_AWS_NOT_CONFIGURED


class InvalidRegionError(EnvironmentCheckError):
    """Raised when a requested region is not published by the provider."""
    exit_code = EXIT_INVALID_REGION


class ProfileNotFoundError(EnvironmentCheckError):
    """Raised when an explicit profile is not configured."""
    exit_code = EXIT_PROFILE_NOT_FOUND


class OutputFileError(EnvironmentCheckError):
    """Raised when the output file cannot be created or appended to."""
    exit_code = EXIT_CANNOT_WRITE_FILE


class ListingFailedError(ResourceListError):
    """Raised when a listing call still fails after every retry."""
    exit_code = EXIT_LISTING_FAILED
