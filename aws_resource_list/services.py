"""
Service catalog and dispatcher for aws-resource-list.

Each ServiceKind maps to a fixed aws CLI listing command. The dispatcher
renders the result as raw JSON, an aws-rendered table, or a tab-separated
jq projection.
"""
import shutil
import logging
from enum import Enum
from dataclasses import dataclass
from typing import Dict, List, Optional

from aws_resource_list.config import ListerConfig
from aws_resource_list.console import OutputWriter
from aws_resource_list.errors import UsageError
from aws_resource_list.exec import CommandRunner, CommandResult


logger = logging.getLogger(__name__)


class ServiceKind(Enum):
    """Service keys accepted on the command line."""
    EC2 = "ec2"
    RDS = "rds"
    S3 = "s3"
    CLOUDFRONT = "cloudfront"
    VPC = "vpc"
    IAM = "iam"
    ROUTE53 = "route53"
    CLOUDWATCH = "cloudwatch"
    CLOUDFORMATION = "cloudformation"
    LAMBDA = "lambda"
    SNS = "sns"
    SQS = "sqs"
    DYNAMODB = "dynamodb"
    EBS = "ebs"
    ALL = "all"


@dataclass(frozen=True)
class ServiceSpec:
    """How to list one kind of resource."""
    title: str
    command: List[str]
    jq_filter: str
    regional: bool = True

    def header(self, region: str) -> str:
        if self.regional:
            return f"=== {self.title} in region: {region} ==="
        return f"=== {self.title} (global) ==="


SERVICE_CATALOG: Dict[ServiceKind, ServiceSpec] = {
    ServiceKind.EC2: ServiceSpec(
        title="EC2 Instances",
        command=['ec2', 'describe-instances'],
        jq_filter='.Reservations[].Instances[] | [.InstanceId, .InstanceType, .State.Name, '
                  '.Placement.AvailabilityZone, (.PublicIpAddress // "-")] | @tsv',
    ),
    ServiceKind.RDS: ServiceSpec(
        title="RDS Instances",
        command=['rds', 'describe-db-instances'],
        jq_filter='.DBInstances[] | [.DBInstanceIdentifier, .DBInstanceClass, .Engine, '
                  '.DBInstanceStatus, (.Endpoint.Address // "-")] | @tsv',
    ),
    ServiceKind.S3: ServiceSpec(
        title="S3 Buckets",
        command=['s3api', 'list-buckets'],
        jq_filter='.Buckets[] | [.Name, .CreationDate] | @tsv',
        regional=False,
    ),
    ServiceKind.CLOUDFRONT: ServiceSpec(
        title="CloudFront Distributions",
        command=['cloudfront', 'list-distributions'],
        jq_filter='(.DistributionList.Items // [])[] | [.Id, .DomainName, .Status, (.Enabled | tostring)] | @tsv',
        regional=False,
    ),
    ServiceKind.VPC: ServiceSpec(
        title="VPCs",
        command=['ec2', 'describe-vpcs'],
        jq_filter='.Vpcs[] | [.VpcId, .CidrBlock, .State, (.IsDefault | tostring)] | @tsv',
    ),
    ServiceKind.IAM: ServiceSpec(
        title="IAM Users",
        command=['iam', 'list-users'],
        jq_filter='.Users[] | [.UserName, .UserId, .Arn, .CreateDate] | @tsv',
        regional=False,
    ),
    ServiceKind.ROUTE53: ServiceSpec(
        title="Route53 Hosted Zones",
        command=['route53', 'list-hosted-zones'],
        jq_filter='.HostedZones[] | [.Id, .Name, (.Config.PrivateZone | tostring), '
                  '(.ResourceRecordSetCount | tostring)] | @tsv',
        regional=False,
    ),
    ServiceKind.CLOUDWATCH: ServiceSpec(
        title="CloudWatch Alarms",
        command=['cloudwatch', 'describe-alarms'],
        jq_filter='.MetricAlarms[] | [.AlarmName, .StateValue, (.MetricName // "-"), (.Namespace // "-")] | @tsv',
    ),
    ServiceKind.CLOUDFORMATION: ServiceSpec(
        title="CloudFormation Stacks",
        command=['cloudformation', 'describe-stacks'],
        jq_filter='.Stacks[] | [.StackName, .StackStatus, .CreationTime] | @tsv',
    ),
    ServiceKind.LAMBDA: ServiceSpec(
        title="Lambda Functions",
        command=['lambda', 'list-functions'],
        jq_filter='.Functions[] | [.FunctionName, (.Runtime // "-"), (.MemorySize | tostring), .LastModified] | @tsv',
    ),
    ServiceKind.SNS: ServiceSpec(
        title="SNS Topics",
        command=['sns', 'list-topics'],
        jq_filter='.Topics[] | [.TopicArn] | @tsv',
    ),
    ServiceKind.SQS: ServiceSpec(
        title="SQS Queues",
        command=['sqs', 'list-queues'],
        jq_filter='(.QueueUrls // [])[] | [.] | @tsv',
    ),
    ServiceKind.DYNAMODB: ServiceSpec(
        title="DynamoDB Tables",
        command=['dynamodb', 'list-tables'],
        jq_filter='.TableNames[] | [.] | @tsv',
    ),
    ServiceKind.EBS: ServiceSpec(
        title="EBS Volumes",
        command=['ec2', 'describe-volumes'],
        jq_filter='.Volumes[] | [.VolumeId, .VolumeType, (.Size | tostring), .State, .AvailabilityZone] | @tsv',
    ),
}

# Global services first; 'all' can produce very large output
ALL_ORDER = [
    ServiceKind.S3, ServiceKind.IAM, ServiceKind.ROUTE53, ServiceKind.CLOUDFRONT,
    ServiceKind.EC2, ServiceKind.RDS, ServiceKind.VPC, ServiceKind.CLOUDWATCH,
    ServiceKind.CLOUDFORMATION, ServiceKind.LAMBDA, ServiceKind.SNS, ServiceKind.SQS,
    ServiceKind.DYNAMODB, ServiceKind.EBS,
]

SERVICE_ALIASES = {
    'route-53': ServiceKind.ROUTE53,
}


def valid_service_keys() -> List[str]:
    """Service keys accepted on the command line, in catalog order."""
    return [kind.value for kind in ServiceKind]


def parse_service(key: str) -> ServiceKind:
    """
    Map a service key to its ServiceKind.

    Raises:
        UsageError: If the key is unknown (message lists valid keys)
    """
    key = key.strip().lower()
    if key in SERVICE_ALIASES:
        return SERVICE_ALIASES[key]
    try:
        return ServiceKind(key)
    except ValueError:
        raise UsageError(
            f"Invalid or unsupported service: {key}\n"
            f"Valid services: {', '.join(valid_service_keys())}"
        ) from None


def resolve_output_format(config: ListerConfig, jq_binary: str = 'jq') -> ListerConfig:
    """Fall back from jq to json output when jq is not installed."""
    if config.output_format == 'jq' and shutil.which(jq_binary) is None:
        logger.warning("jq not installed; falling back to json")
        return config.with_format('json')
    return config


class ServiceDispatcher:
    """Runs listing operations and writes their output."""

    def __init__(self, runner: CommandRunner, writer: OutputWriter):
        self.runner = runner
        self.writer = writer

    @property
    def config(self) -> ListerConfig:
        return self.runner.config

    def build_command(self, spec: ServiceSpec, region: str) -> List[str]:
        """aws arguments (without profile) for one listing in the configured format."""
        args = list(spec.command)
        if spec.regional:
            args += ['--region', region]
        args += self.config.paginate_args()

        if self.config.output_format == 'table':
            args += ['--output', 'table']
        else:
            args += ['--output', 'json']

        return args

    def dispatch(self, kind: ServiceKind, region: str) -> bool:
        """
        List one service (or every service for ALL) in a region.

        Args:
            kind: Service to list
            region: Region for regional services

        Returns:
            True if every listing call succeeded
        """
        if kind is ServiceKind.ALL:
            results = [self.list_service(each, region) for each in ALL_ORDER]
            return all(results)

        return self.list_service(kind, region)

    def list_service(self, kind: ServiceKind, region: str) -> bool:
        """List a single service and write its header and output."""
        spec = SERVICE_CATALOG[kind]
        self.writer.out(spec.header(region))

        result = self.runner.run_aws(self.build_command(spec, region))
        if not result.ok:
            self._report_failure(kind, region, result)
            return False

        if self.config.output_format == 'jq':
            return self._write_projection(kind, spec, result)

        self._write(result.stdout)
        return True

    def _write_projection(self, kind: ServiceKind, spec: ServiceSpec, result: CommandResult) -> bool:
        if not result.stdout.strip():
            return True

        projected = self.runner.run_jq(spec.jq_filter, result.stdout)
        if not projected.ok:
            logger.error(f"jq projection failed for {kind.value}: {projected.stderr.strip()}")
            return False

        self._write(projected.stdout)
        return True

    def _write(self, text: Optional[str]):
        text = (text or '').rstrip('\n')
        if text:
            self.writer.out(text)

    def _report_failure(self, kind: ServiceKind, region: str, result: CommandResult):
        stderr = result.stderr.strip()
        if stderr:
            self.writer.err(stderr)
        logger.error(f"Listing {kind.value} in {region} failed (exit {result.returncode})")
