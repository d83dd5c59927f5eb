"""Typed access to the CDK context values the stacks are configured with.

Every value can be set in ``cdk.json`` or on the command line with
``cdk synth -c key=value``. Command line values always arrive as strings,
so the helpers below coerce them.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from aws_cdk import Stack, aws_eks as eks
from constructs import Construct

from emr_eks.errors import ConfigurationError, NodeGroupSizeError

logger = logging.getLogger(__name__)

DEFAULT_CLUSTER_NAME = 'myekscluster'
DEFAULT_K8S_VERSION = '1.31'
DEFAULT_NAMESPACE = 'default'

ENDPOINT_ACCESS = {
    'public': eks.EndpointAccess.PUBLIC,
    'private': eks.EndpointAccess.PRIVATE,
    'both': eks.EndpointAccess.PUBLIC_AND_PRIVATE,
}

LOGGING_MODES = ('custom', 'native', 'off')


def context_str(scope: Construct, key: str, default: Optional[str] = None) -> Optional[str]:
    value = scope.node.try_get_context(key)
    if value is None:
        return default
    return str(value).strip()


def context_bool(scope: Construct, key: str, default: bool = False) -> bool:
    value = scope.node.try_get_context(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes')


def context_int(scope: Construct, key: str, default: int) -> int:
    value = scope.node.try_get_context(key)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f'Context value {key}={value!r} is not an integer')


def context_choice(scope: Construct, key: str, choices, default: str) -> str:
    value = (context_str(scope, key) or default).lower()
    if value not in choices:
        raise ConfigurationError(
            f'Context value {key}={value!r} must be one of {", ".join(choices)}')
    return value


@dataclass(frozen=True)
class ClusterSpec:
    name: str
    kubernetes_version: str
    endpoint_access: str
    control_plane_logging: str

    @property
    def eks_endpoint_access(self) -> eks.EndpointAccess:
        return ENDPOINT_ACCESS[self.endpoint_access]

    @classmethod
    def from_context(cls, scope: Construct) -> 'ClusterSpec':
        return cls(
            name=resolve_cluster_name(scope),
            kubernetes_version=context_str(scope, 'k8s_version', DEFAULT_K8S_VERSION),
            endpoint_access=context_choice(scope, 'endpoint_access', ENDPOINT_ACCESS, 'both'),
            control_plane_logging=context_choice(
                scope, 'control_plane_logging', LOGGING_MODES, 'custom'),
        )


@dataclass(frozen=True)
class NodeGroupSpec:
    instance_type: str = 'r5d.24xlarge'
    ami_release_version: str = '1.31.0-20241011'
    min_size: int = 1
    desired_size: int = 2
    max_size: int = 450

    def validate(self) -> 'NodeGroupSpec':
        if not 0 <= self.min_size <= self.desired_size <= self.max_size:
            raise NodeGroupSizeError(self.min_size, self.desired_size, self.max_size)
        return self

    @classmethod
    def from_context(cls, scope: Construct) -> 'NodeGroupSpec':
        spec = cls(
            instance_type=context_str(scope, 'nodegroup_instance_type', cls.instance_type),
            ami_release_version=context_str(scope, 'node_ami_version', cls.ami_release_version),
            min_size=context_int(scope, 'nodegroup_min', cls.min_size),
            desired_size=context_int(scope, 'nodegroup_count', cls.desired_size),
            max_size=context_int(scope, 'nodegroup_max', cls.max_size),
        )
        return spec.validate()


@dataclass(frozen=True)
class NamespaceSpec:
    name: str
    create: bool

    @classmethod
    def from_context(cls, scope: Construct) -> 'NamespaceSpec':
        return cls(
            name=context_str(scope, 'eksNamespace') or DEFAULT_NAMESPACE,
            create=context_bool(scope, 'createNameSpace'),
        )


def resolve_cluster_name(scope: Construct) -> str:
    """Cluster name for the stack owning ``scope``, resolved once per stack."""
    stack = Stack.of(scope)
    name = getattr(stack, '_resolved_cluster_name', None)
    if name is None:
        name = context_str(stack, 'cluster_name') or DEFAULT_CLUSTER_NAME
        logger.info('Using EKS cluster name %s for stack %s', name, stack.node.path)
        stack._resolved_cluster_name = name
    return name
