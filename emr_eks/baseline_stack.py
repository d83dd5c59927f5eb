import logging

from aws_cdk import (
    CfnJson,
    Stack,
    aws_eks as eks,
    aws_iam as iam,
)
from constructs import Construct

from emr_eks.config import context_str

logger = logging.getLogger(__name__)

AUTOSCALER_NAMESPACE = 'kube-system'

# https://github.com/kubernetes/autoscaler/blob/master/cluster-autoscaler/FAQ.md#what-are-the-parameters-to-ca
AUTOSCALER_EXTRA_ARGS = {
    'skip-nodes-with-system-pods': False,
    'skip-nodes-with-local-storage': False,
    'balance-similar-node-groups': True,
    # how long a node should be unneeded before it is eligible for scale down
    'scale-down-unneeded-time': '30s',
    # how long after scale up that scale down evaluation resumes
    'scale-down-delay-after-add': '30s',
}

VPC_CNI_ENV = {
    'MINIMUM_IP_TARGET': '20',
    'WARM_ENI_TARGET': '1',
}


def autoscaler_tag_conditions(scope: Construct, construct_id: str, cluster_name: str) -> CfnJson:
    """Ownership tags the autoscaler may mutate, as StringEquals keys.

    The cluster name is only known at deploy time and can't be used in a
    dict key directly, so the map is rendered through CfnJson.
    """
    return CfnJson(scope, construct_id, value={
        'autoscaling:ResourceTag/k8s.io/cluster-autoscaler/enabled': 'true',
        f'autoscaling:ResourceTag/kubernetes.io/cluster/{cluster_name}': 'owned',
    })


class K8sBaselineStack(Stack):

    def __init__(self, scope: Construct, construct_id: str,
                 eks_cluster: eks.Cluster, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        autoscaler_sa = eks.ServiceAccount(self, 'clusterAutoscalerSA',
                                           name='cluster-autoscaler-sa',
                                           cluster=eks_cluster,
                                           namespace=AUTOSCALER_NAMESPACE,
                                           )

        chart_version = context_str(self, 'cluster-autoscaler-helm-version')
        logger.info('Installing cluster-autoscaler chart version %s', chart_version or 'latest')
        self.autoscaler_chart = eks.HelmChart(self, 'clusterautoscaler-deploy',
                                              repository='https://kubernetes.github.io/autoscaler',
                                              release='cluster-autoscaler',
                                              cluster=eks_cluster,
                                              chart='cluster-autoscaler',
                                              namespace=AUTOSCALER_NAMESPACE,
                                              wait=True,
                                              # https://github.com/kubernetes/autoscaler/blob/gh-pages/index.yaml
                                              version=chart_version,
                                              # https://github.com/kubernetes/autoscaler/tree/master/charts/cluster-autoscaler#values
                                              values={
                                                  'cloudProvider': 'aws',
                                                  'awsRegion': self.region,
                                                  'autoDiscovery': {
                                                      'clusterName': eks_cluster.cluster_name,
                                                  },
                                                  'rbac': {
                                                      'serviceAccount': {
                                                          'create': False,
                                                          'name': autoscaler_sa.service_account_name,
                                                      },
                                                  },
                                                  'extraArgs': dict(AUTOSCALER_EXTRA_ARGS),
                                              },
                                              )
        self.autoscaler_chart.node.add_dependency(autoscaler_sa)

        self.autoscaler_policy = self.create_cluster_autoscaler_policy(
            eks_cluster.cluster_name, autoscaler_sa.role)

        self.vpc_cni_patch = eks.KubernetesPatch(self, 'aws-vpc-cni',
                                                 cluster=eks_cluster,
                                                 resource_name='daemonset.apps/aws-node',
                                                 resource_namespace='kube-system',
                                                 apply_patch={'spec': {'template': {'spec': {'containers': [{
                                                     'name': 'aws-node',
                                                     'env': [{'name': k, 'value': v}
                                                             for k, v in VPC_CNI_ENV.items()],
                                                 }]}}}},
                                                 restore_patch={},
                                                 )

    # Scope the autoscaler's writes to groups tagged as owned by this cluster
    def create_cluster_autoscaler_policy(self, cluster_name: str, role: iam.IRole) -> iam.Policy:
        # https://docs.aws.amazon.com/eks/latest/userguide/cluster-autoscaler.html
        describe = iam.PolicyStatement(
            resources=['*'],
            actions=[
                'autoscaling:DescribeAutoScalingGroups',
                'autoscaling:DescribeAutoScalingInstances',
                'autoscaling:DescribeLaunchConfigurations',
                'autoscaling:DescribeTags',
                'ec2:DescribeLaunchTemplateVersions',
            ],
        )
        # both tags in one StringEquals block, so they must all match
        write_conditions = autoscaler_tag_conditions(
            self, 'clusterAutoscalerPolicyStatementWriteJson', cluster_name)
        write = iam.PolicyStatement(
            resources=['*'],
            actions=[
                'autoscaling:SetDesiredCapacity',
                'autoscaling:TerminateInstanceInAutoScalingGroup',
                'autoscaling:UpdateAutoScalingGroup',
            ],
            conditions={'StringEquals': write_conditions},
        )
        return iam.Policy(self, 'clusterAutoscalerPolicy',
                          statements=[write, describe],
                          roles=[role],
                          )
