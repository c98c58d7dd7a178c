#!/usr/bin/env python3
"""
aws-resource-list - list AWS resources by service and region

Usage:
    aws-resource-list [options] <service>
    aws-resource-list [options] <region> <service>

Examples:
    aws-resource-list us-east-1 ec2
    aws-resource-list ec2                     # region defaults to us-east-1
    aws-resource-list -p myprofile -f jq us-west-2 rds
    aws-resource-list -a -c 4 -o inventory.txt ec2
"""
import argparse
import logging
import math
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Optional, List

from aws_resource_list.config import (
    ListerConfig,
    OUTPUT_FORMATS,
    DEFAULT_REGION,
    DEFAULT_FORMAT,
    DEFAULT_CONCURRENCY,
    DEFAULT_SLEEP,
    resolve_config_path,
    load_defaults_file,
)
from aws_resource_list.console import OutputWriter, configure_logging
from aws_resource_list.errors import (
    ResourceListError,
    UsageError,
    ListingFailedError,
    EXIT_SUCCESS,
    EXIT_INTERRUPTED,
)
from aws_resource_list.exec import CommandRunner, ProcessRegistry
from aws_resource_list.fanout import RegionFanOut
from aws_resource_list.preflight import REGIONS_QUERY, run_preflight, validate_region
from aws_resource_list.services import (
    ServiceDispatcher,
    parse_service,
    resolve_output_format,
    valid_service_keys,
)


logger = logging.getLogger(__name__)


class ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises UsageError instead of exiting."""

    def error(self, message):
        raise UsageError(message)


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError("Concurrency must be a positive integer") from None
    if number < 1:
        raise argparse.ArgumentTypeError("Concurrency must be a positive integer")
    return number


def non_negative_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError("Sleep must be a number (seconds)") from None
    if not math.isfinite(number) or number < 0:
        raise argparse.ArgumentTypeError("Sleep must be a non-negative number (seconds)")
    return number


def build_parser() -> ArgumentParser:
    """Build the command-line parser."""
    parser = ArgumentParser(
        prog='aws-resource-list',
        description='List AWS resources by service and region using the aws CLI',
        epilog=f"Services: {', '.join(valid_service_keys())}",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument('-p', '--profile', help='AWS CLI profile to use (overrides $AWS_PROFILE)')
    parser.add_argument('-f', '--format', dest='output_format', choices=OUTPUT_FORMATS,
                        help=f'Output format (default: {DEFAULT_FORMAT})')
    parser.add_argument('-v', '--verbose', action='store_true', default=None,
                        help='Verbose logging to stderr')
    parser.add_argument('--no-paginate', action='store_true', default=None,
                        help='Pass --no-paginate to the aws CLI')
    parser.add_argument('-a', '--all-regions', action='store_true',
                        help='Run the listing across all AWS regions')
    parser.add_argument('-c', '--concurrency', type=positive_int,
                        help=f'Number of parallel region jobs (default: {DEFAULT_CONCURRENCY})')
    parser.add_argument('-s', '--sleep', type=non_negative_float,
                        help=f'Seconds to wait between starting region jobs (default: {DEFAULT_SLEEP})')
    parser.add_argument('-o', '--output-file',
                        help='Append output to FILE (also prints to console)')
    parser.add_argument('--config',
                        help='YAML defaults file (default: $AWS_RESOURCE_LIST_CONFIG or ~/.aws-resource-list.yaml)')
    parser.add_argument('positionals', nargs='*', metavar='[region] service',
                        help='Optional region followed by the service to list')

    return parser


def _pick(*values):
    """First value that is not None."""
    for value in values:
        if value is not None:
            return value
    return None


def parse_args(argv: Optional[List[str]] = None) -> ListerConfig:
    """
    Turn command-line tokens into a ListerConfig.

    Raises:
        UsageError: On unknown options, malformed values or a wrong positional count
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    defaults = load_defaults_file(resolve_config_path(args.config))

    if len(args.positionals) == 1:
        region = _pick(defaults.get('region'), DEFAULT_REGION)
        service_key = args.positionals[0]
    elif len(args.positionals) == 2:
        region, service_key = args.positionals
    else:
        raise UsageError("Expected <service> or <region> <service>")

    service = parse_service(service_key)

    profile = _pick(args.profile, os.environ.get('AWS_PROFILE') or None, defaults.get('profile'))

    try:
        return ListerConfig(
            service=service.value,
            region=region,
            profile=profile,
            output_format=_pick(args.output_format, defaults.get('format'), DEFAULT_FORMAT),
            verbose=bool(_pick(args.verbose, defaults.get('verbose'), False)),
            no_paginate=bool(_pick(args.no_paginate, defaults.get('no_paginate'), False)),
            all_regions=args.all_regions,
            concurrency=int(_pick(args.concurrency, defaults.get('concurrency'), DEFAULT_CONCURRENCY)),
            sleep=float(_pick(args.sleep, defaults.get('sleep'), DEFAULT_SLEEP)),
            output_file=Path(args.output_file).expanduser() if args.output_file else None,
            explicit_profile=args.profile is not None,
            ignored_region=region if args.all_regions and len(args.positionals) == 2 else None
        )
    except (TypeError, ValueError) as e:
        raise UsageError(f"Invalid value in defaults file: {e}") from e


def run(config: ListerConfig, writer: OutputWriter, runner: Optional[CommandRunner] = None) -> int:
    """
    Run preflight and the listing for a parsed configuration.

    Args:
        config: Parsed configuration
        writer: Output writer (already open)
        runner: Command runner (default: one built from config)

    Returns:
        Process exit code

    Raises:
        ResourceListError: On preflight, region or listing failures
    """
    config = resolve_output_format(config)
    if runner is None:
        runner = CommandRunner(config)
    else:
        runner.config = config

    run_preflight(runner)

    kind = parse_service(config.service)
    dispatcher = ServiceDispatcher(runner, writer)

    try:
        if not config.all_regions:
            validate_region(runner, config.region)
            if not dispatcher.dispatch(kind, config.region):
                raise ListingFailedError(f"Listing {config.service} in {config.region} failed")
            return EXIT_SUCCESS

        result = runner.run_aws(REGIONS_QUERY)
        if not result.ok:
            raise ListingFailedError("Unable to retrieve the AWS region list")

        fanout = RegionFanOut(dispatcher, config.concurrency, config.sleep)
        report = fanout.run(kind, result.stdout.split())
        logger.debug(f"Listed {len(report.succeeded)}/{len(report.launched)} regions")
        return EXIT_SUCCESS
    except KeyboardInterrupt:
        runner.cancel_event.set()
        runner.registry.terminate_all()
        raise


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    try:
        config = parse_args(argv)
    except UsageError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        print(build_parser().format_usage().rstrip(), file=sys.stderr)
        return e.exit_code

    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGTERM, _raise_interrupt)

    writer = OutputWriter(config.output_file)
    configure_logging(writer, config.verbose)

    try:
        writer.open()
        if config.ignored_region:
            logger.debug(f"Ignoring region {config.ignored_region} in all-regions mode")
        runner = CommandRunner(config, ProcessRegistry(), threading.Event())
        return run(config, writer, runner)
    except ResourceListError as e:
        logger.error(str(e))
        return e.exit_code
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return EXIT_INTERRUPTED
    finally:
        writer.close()


if __name__ == '__main__':
    sys.exit(main())
