import copy
import json
import logging
import os

from aws_cdk import (
    CfnOutput,
    CfnParameter,
    Stack,
    aws_ec2 as ec2,
    aws_eks as eks,
    aws_iam as iam,
)
from aws_cdk.lambda_layer_kubectl_v31 import KubectlV31Layer
from constructs import Construct

from emr_eks.cluster_logging import setup_cluster_logging
from emr_eks.config import ClusterSpec, NamespaceSpec
from emr_eks.network import NetworkSource, resolve_network, select_network_source

logger = logging.getLogger(__name__)

RBAC_DIR = os.path.join(os.path.dirname(__file__), 'rbac')


def _read_template(name: str) -> dict:
    with open(os.path.join(RBAC_DIR, name)) as f:
        return json.load(f)


RBAC_ROLE = _read_template('emr-containers-role.json')
RBAC_ROLE_BINDING = _read_template('emr-containers-role-binding.json')


def namespaced(template: dict, namespace: str) -> dict:
    """Copy of ``template`` with metadata.namespace set, the template is left untouched."""
    manifest = copy.deepcopy(template)
    manifest['metadata']['namespace'] = namespace
    return manifest


class EmrEksClusterStack(Stack):

    def __init__(self, scope: Construct, construct_id: str, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        spec = ClusterSpec.from_context(self)
        self.cluster_name = spec.name
        self._eks_namespace = None

        k8s_version = CfnParameter(self, 'k8sVersion',
                                   type='String',
                                   description='K8s Version',
                                   default=spec.kubernetes_version,
                                   )

        if (spec.endpoint_access == 'private'
                and select_network_source(self) is NetworkSource.DEFAULT):
            logger.warning('Private endpoint access needs private subnets, '
                           'which the default VPC does not have')
        vpc = resolve_network(self)

        # Locked down bastion security group, outbound 443 only
        bastion_sg = ec2.SecurityGroup(self, 'bastionHostSecurityGroup',
                                       allow_all_outbound=False,
                                       security_group_name=self.cluster_name + '-bastionSecurityGroup',
                                       vpc=vpc,
                                       )
        bastion_sg.connections.allow_to(ec2.Peer.any_ipv4(), ec2.Port.tcp(443), 'Outbound to 443 only')

        # https://docs.aws.amazon.com/eks/latest/userguide/security_iam_id-based-policy-examples.html
        bastion_policy = iam.ManagedPolicy(self, 'bastionHostManagedPolicy')
        bastion_policy.add_statements(iam.PolicyStatement(
            resources=['*'],
            actions=[
                'eks:DescribeNodegroup',
                'eks:ListNodegroups',
                'eks:DescribeCluster',
                'eks:ListClusters',
                'eks:AccessKubernetesApi',
                'eks:ListUpdates',
                'eks:ListFargateProfiles',
            ],
            effect=iam.Effect.ALLOW,
            sid='EKSReadonly',
        ))

        bastion_role = iam.Role(self, 'bastionHostRole',
                                role_name=self.cluster_name + '-bastion-host',
                                assumed_by=iam.ServicePrincipal('ec2.amazonaws.com'),
                                managed_policies=[
                                    iam.ManagedPolicy.from_aws_managed_policy_name(
                                        'AmazonSSMManagedInstanceCore'),
                                    bastion_policy,
                                ],
                                )

        # Latest Amazon Linux 2 keeps the host patched, connect with Session Manager
        self.bastion = ec2.Instance(self, 'BastionEKSHost',
                                    vpc=vpc,
                                    instance_name=self.cluster_name + '-EKSBastionHost',
                                    instance_type=ec2.InstanceType('t3.small'),
                                    machine_image=ec2.MachineImage.latest_amazon_linux2(),
                                    security_group=bastion_sg,
                                    role=bastion_role,
                                    block_devices=[ec2.BlockDevice(
                                        device_name='/dev/xvda',
                                        volume=ec2.BlockDeviceVolume.ebs(
                                            30,
                                            volume_type=ec2.EbsDeviceVolumeType.GP3,
                                            encrypted=True,
                                        ),
                                    )],
                                    )

        logger.info('Declaring EKS cluster %s with %s endpoint access',
                    self.cluster_name, spec.endpoint_access)
        self.cluster = eks.Cluster(self, 'EKSCluster',
                                   version=eks.KubernetesVersion.of(k8s_version.value_as_string),
                                   default_capacity=0,
                                   endpoint_access=spec.eks_endpoint_access,
                                   vpc=vpc,
                                   masters_role=self.bastion.role,
                                   cluster_name=self.cluster_name,
                                   kubectl_layer=KubectlV31Layer(self, 'KubectlLayer'),
                                   cluster_logging=self._native_log_types(spec),
                                   )

        self.bastion.connections.allow_to(self.cluster, ec2.Port.tcp(443),
                                          'Allow between BastionHost and EKS')
        # kubectl matching the cluster version
        self.bastion.user_data.add_commands(
            f"VERSION=$(aws --region {self.region} eks describe-cluster --name {self.cluster.cluster_name} "
            "--query 'cluster.version' --output text)",
            "echo \"K8s version is $VERSION\"",
            'curl -LO https://dl.k8s.io/release/v$VERSION.0/bin/linux/amd64/kubectl',
            'install -o root -g root -m 0755 kubectl /bin/kubectl',
            f'aws eks update-kubeconfig --name {self.cluster.cluster_name} --region {self.region}',
        )

        self.cluster.aws_auth.add_masters_role(self.bastion.role,
                                               f'{self.bastion.role.role_arn}/{{{{SessionName}}}}')

        # Service linked role for EMR on EKS, mapped in aws-auth before the
        # virtual cluster can be registered
        self.emr_service_role = iam.CfnServiceLinkedRole(self, 'EmrServiceIAMRole',
                                                         aws_service_name='emr-containers.amazonaws.com',
                                                         )
        emr_role = iam.Role.from_role_arn(
            self, 'ServiceRoleForAmazonEMRContainers',
            f'arn:aws:iam::{self.account}:role/AWSServiceRoleForAmazonEMRContainers',
        )
        self.cluster.aws_auth.add_masters_role(emr_role, 'emr-containers')
        self.cluster.aws_auth.node.add_dependency(self.emr_service_role)
        self.emr_admin_mapping = self.cluster.aws_auth

        if spec.control_plane_logging == 'custom':
            setup_cluster_logging(self, self.cluster)
        logger.info('Control plane logging mode: %s', spec.control_plane_logging)

        CfnOutput(self, 'ClusterName', value=self.cluster.cluster_name)
        CfnOutput(self, 'BastionRoleArn', value=bastion_role.role_arn)

    @staticmethod
    def _native_log_types(spec: ClusterSpec):
        if spec.control_plane_logging != 'native':
            return None
        return [
            eks.ClusterLoggingTypes.API,
            eks.ClusterLoggingTypes.AUDIT,
            eks.ClusterLoggingTypes.AUTHENTICATOR,
            eks.ClusterLoggingTypes.CONTROLLER_MANAGER,
            eks.ClusterLoggingTypes.SCHEDULER,
        ]

    # Worker role lives in this stack to avoid a circular dependency with the node group stack
    def create_nodegroup_role(self, construct_id: str) -> iam.Role:
        role = iam.Role(self, construct_id,
                        assumed_by=iam.ServicePrincipal('ec2.amazonaws.com'),
                        )
        for policy in ('AmazonEKSWorkerNodePolicy',
                       'AmazonEC2ContainerRegistryReadOnly',
                       'AmazonSSMManagedInstanceCore',
                       'AmazonEKS_CNI_Policy'):
            role.add_managed_policy(iam.ManagedPolicy.from_aws_managed_policy_name(policy))
        return role

    def create_eks_namespace(self) -> str:
        """Declare the namespace EMR jobs run in and its emr-containers RBAC.

        The Namespace object itself is only declared when ``createNameSpace``
        is set; the Role and RoleBinding are always declared.
        """
        if self._eks_namespace is not None:
            return self._eks_namespace

        ns_spec = NamespaceSpec.from_context(self)
        logger.info('Binding emr-containers RBAC to namespace %s (create=%s)',
                    ns_spec.name, ns_spec.create)

        namespace = None
        if ns_spec.create:
            namespace = self.cluster.add_manifest('eksNamespace', {
                'apiVersion': 'v1',
                'kind': 'Namespace',
                'metadata': {'name': ns_spec.name},
            })

        self.namespace_role = self.cluster.add_manifest(
            'eksNamespaceRole', namespaced(RBAC_ROLE, ns_spec.name))
        self.namespace_role_binding = self.cluster.add_manifest(
            'eksNamespaceRoleBinding', namespaced(RBAC_ROLE_BINDING, ns_spec.name))

        if namespace is not None:
            self.namespace_role.node.add_dependency(namespace)
            self.namespace_role_binding.node.add_dependency(namespace)
        self.namespace_role_binding.node.add_dependency(self.namespace_role)

        self._eks_namespace = ns_spec.name
        return self._eks_namespace
