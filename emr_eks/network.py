import enum
import logging
import re

from aws_cdk import Stack, aws_ec2 as ec2
from constructs import Construct

from emr_eks.config import context_bool, context_str
from emr_eks.errors import NetworkNotFoundError

logger = logging.getLogger(__name__)

VPC_ID_PATTERN = re.compile(r'^vpc-[0-9a-f]{8}([0-9a-f]{9})?$')


def eks_vpc_props() -> dict:
    """Keyword arguments for the VPC declared when no existing one is used."""
    return dict(
        ip_addresses=ec2.IpAddresses.cidr('10.0.0.0/16'),
        max_azs=3,
        subnet_configuration=[
            ec2.SubnetConfiguration(
                name='eks-vpc-private-sub',
                subnet_type=ec2.SubnetType.PRIVATE_WITH_EGRESS,
                cidr_mask=18,
            ),
            ec2.SubnetConfiguration(
                name='eks-vpc-public-sub',
                subnet_type=ec2.SubnetType.PUBLIC,
                cidr_mask=20,
            ),
        ],
        # https://docs.aws.amazon.com/vpc/latest/privatelink/vpce-gateway.html
        gateway_endpoints={
            'S3': ec2.GatewayVpcEndpointOptions(
                service=ec2.GatewayVpcEndpointAwsService.S3),
        },
        flow_logs={
            'VpcFlowlogs': ec2.FlowLogOptions(
                destination=ec2.FlowLogDestination.to_cloud_watch_logs(),
                traffic_type=ec2.FlowLogTrafficType.ALL,
            ),
        },
        nat_gateways=2,
    )


class NetworkSource(enum.Enum):
    BY_ID = 'by-id'
    DEFAULT = 'default'
    CREATE = 'create'


def select_network_source(scope: Construct) -> NetworkSource:
    # explicit vpc id > default vpc flag > new vpc
    if context_str(scope, 'use_vpc_id') is not None:
        return NetworkSource.BY_ID
    if context_bool(scope, 'use_default_vpc'):
        return NetworkSource.DEFAULT
    return NetworkSource.CREATE


def add_endpoints(stack: Stack, vpc: ec2.IVpc) -> None:
    # Additional VPC Endpoints for EKS
    # https://docs.aws.amazon.com/eks/latest/userguide/private-clusters.html#vpc-endpoints-private-clusters
    ec2.InterfaceVpcEndpoint(stack, 'ecrVpcEndpoint',
                             vpc=vpc,
                             service=ec2.InterfaceVpcEndpointAwsService.ECR,
                             open=True,
                             private_dns_enabled=True,
                             )
    ec2.InterfaceVpcEndpoint(stack, 'dkrVpcEndpoint',
                             vpc=vpc,
                             service=ec2.InterfaceVpcEndpointAwsService.ECR_DOCKER,
                             open=True,
                             private_dns_enabled=True,
                             )


def resolve_network(scope: Construct) -> ec2.IVpc:
    """Look up or create the VPC the cluster is placed in.

    ``use_vpc_id`` in context looks up that VPC, ``use_default_vpc`` looks up
    the account's default VPC, otherwise a new VPC is declared. The default VPC
    has no private subnets, so a private-only endpoint fails at deploy time.
    """
    stack = Stack.of(scope)
    source = select_network_source(stack)
    logger.info('Resolving network for %s from source %s', stack.node.path, source.value)

    if source is NetworkSource.BY_ID:
        vpc_id = context_str(stack, 'use_vpc_id')
        if not VPC_ID_PATTERN.match(vpc_id):
            raise NetworkNotFoundError(f'use_vpc_id={vpc_id!r} is not a valid VPC id')
        return ec2.Vpc.from_lookup(stack, 'EKSNetworking', vpc_id=vpc_id)

    if source is NetworkSource.DEFAULT:
        return ec2.Vpc.from_lookup(stack, 'EKSNetworking', is_default=True)

    vpc = ec2.Vpc(stack, stack.stack_name + '-EKSNetworking', **eks_vpc_props())
    add_endpoints(stack, vpc)
    return vpc
