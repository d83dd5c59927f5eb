import logging

from aws_cdk import (
    CfnOutput,
    Stack,
    aws_emrcontainers as emrc,
    aws_eks as eks,
)
from constructs import Construct, IDependable

logger = logging.getLogger(__name__)


class EmrVirtualClusterStack(Stack):

    def __init__(self, scope: Construct, construct_id: str,
                 eks_cluster: eks.Cluster, name: str, eks_namespace: str,
                 admin_mapping: IDependable, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        logger.info('Registering EMR virtual cluster %s on namespace %s', name, eks_namespace)
        self.virtual_cluster = emrc.CfnVirtualCluster(
            self, 'EMRVirtualCluster',
            name=name,
            container_provider=emrc.CfnVirtualCluster.ContainerProviderProperty(
                id=eks_cluster.cluster_name,
                type='EKS',
                info=emrc.CfnVirtualCluster.ContainerInfoProperty(
                    eks_info=emrc.CfnVirtualCluster.EksInfoProperty(namespace=eks_namespace),
                ),
            ),
        )
        # EMR can only reach the cluster once its service linked role is in aws-auth
        self.virtual_cluster.node.add_dependency(admin_mapping)

        CfnOutput(self, 'VirtualClusterId', value=self.virtual_cluster.attr_id)
