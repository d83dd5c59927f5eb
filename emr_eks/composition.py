"""Wires the EMR on EKS stacks together in deployment order."""
import logging
from typing import List, NamedTuple, Optional, Tuple

from aws_cdk import App, Environment, Stack
from constructs import Construct

from emr_eks.baseline_stack import K8sBaselineStack
from emr_eks.cluster_stack import EmrEksClusterStack
from emr_eks.nodegroup_stack import EksNodeGroupsStack
from emr_eks.virtual_cluster_stack import EmrVirtualClusterStack

logger = logging.getLogger(__name__)


class EmrEksApp(NamedTuple):
    eks: EmrEksClusterStack
    nodegroups: EksNodeGroupsStack
    baseline: K8sBaselineStack
    virtual_cluster: EmrVirtualClusterStack
    # (dependent, dependency)
    edges: List[Tuple[Stack, Stack]]


def stack_prefix(scope: Construct) -> str:
    prefix = scope.node.try_get_context('stack_prefix')
    if prefix is not None:
        return str(prefix).strip()
    return ''


def compose(app: App, env: Optional[Environment] = None) -> EmrEksApp:
    prefix = stack_prefix(app)
    logger.info('Composing stacks with prefix %r', prefix)

    eks_stack = EmrEksClusterStack(app, 'EmrEksCdkStack',
                                   env=env,
                                   stack_name=f'{prefix}EKSStack',
                                   )

    nodegroups = EksNodeGroupsStack(app, 'EKSNodeGroups',
                                    env=env,
                                    stack_name=f'{prefix}EKSNodeGroups',
                                    eks_cluster=eks_stack.cluster,
                                    node_group_role=eks_stack.create_nodegroup_role('emr-eks-workernode-role'),
                                    )

    baseline = K8sBaselineStack(app, 'EKSK8sBaseline',
                                env=env,
                                stack_name=f'{prefix}EKSK8sBaseline',
                                eks_cluster=eks_stack.cluster,
                                )

    virtual_cluster = EmrVirtualClusterStack(app, 'EmrEKSVirtualCluster',
                                             env=env,
                                             stack_name=f'{prefix}EMRVirtualCluster',
                                             eks_cluster=eks_stack.cluster,
                                             name=eks_stack.cluster_name,
                                             eks_namespace=eks_stack.create_eks_namespace(),
                                             admin_mapping=eks_stack.emr_admin_mapping,
                                             )

    edges = [
        (nodegroups, eks_stack),
        (baseline, nodegroups),
        (virtual_cluster, eks_stack),
    ]
    for dependent, dependency in edges:
        dependent.add_stack_dependency(dependency)

    return EmrEksApp(eks_stack, nodegroups, baseline, virtual_cluster, edges)
