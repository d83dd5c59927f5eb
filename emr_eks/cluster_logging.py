from aws_cdk import (
    Stack,
    aws_eks as eks,
    custom_resources as cr,
)
from constructs import Construct

CLUSTER_LOG_TYPES = ['api', 'audit', 'authenticator', 'controllerManager', 'scheduler']


def _logging_call(cluster: eks.Cluster, enabled: bool, ignore_unchanged: bool = False) -> cr.AwsSdkCall:
    return cr.AwsSdkCall(
        service='EKS',
        action='updateClusterConfig',
        parameters={
            'name': cluster.cluster_name,
            'logging': {
                'clusterLogging': [{
                    'enabled': enabled,
                    'types': CLUSTER_LOG_TYPES,
                }],
            },
        },
        physical_resource_id=cr.PhysicalResourceId.of(cluster.cluster_name + '-logging'),
        # EKS rejects an update that does not change the current logging config
        ignore_error_codes_matching='InvalidParameterException' if ignore_unchanged else None,
    )


def setup_cluster_logging(scope: Construct, cluster: eks.Cluster) -> cr.AwsCustomResource:
    """Enable control plane logging through an SDK call custom resource."""
    stack = Stack.of(scope)
    logging_resource = cr.AwsCustomResource(
        stack, 'EksClusterLogging',
        on_create=_logging_call(cluster, True),
        on_update=_logging_call(cluster, True, ignore_unchanged=True),
        on_delete=_logging_call(cluster, False),
        policy=cr.AwsCustomResourcePolicy.from_sdk_calls(
            resources=[cluster.cluster_arn],
        ),
        install_latest_aws_sdk=False,
    )
    logging_resource.node.add_dependency(cluster)
    return logging_resource
