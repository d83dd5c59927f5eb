import logging

from aws_cdk import (
    CfnParameter,
    CfnTag,
    Fn,
    Stack,
    aws_ec2 as ec2,
    aws_eks as eks,
    aws_iam as iam,
)
from constructs import Construct

from emr_eks.config import NodeGroupSpec

logger = logging.getLogger(__name__)

RAID_MOUNT_POINT = '/raid0'


def raid0_user_data() -> ec2.UserData:
    """Stripe every local NVMe instance store volume into one xfs RAID-0 array."""
    user_data = ec2.UserData.for_linux()
    user_data.add_commands(
        '/usr/bin/yum install -y mdadm',
        'nvmes=$(sudo lsblk | grep -v nvme0n1 | awk \'/^nvme/ {printf "/dev/%s ", $1}\')',
        '/usr/sbin/mdadm --create --verbose /dev/md0 --level=0 --name=MY_RAID '
        '--raid-devices=$(echo $nvmes | wc -w) $nvmes',
        '/usr/sbin/mkfs.xfs -L MY_RAID /dev/md0',
        f'/usr/bin/mkdir -p {RAID_MOUNT_POINT}',
        f'/usr/bin/mount LABEL=MY_RAID {RAID_MOUNT_POINT}',
        f'/usr/bin/chmod 777 {RAID_MOUNT_POINT}',
    )
    return user_data


class EksNodeGroupsStack(Stack):

    def __init__(self, scope: Construct, construct_id: str,
                 eks_cluster: eks.Cluster, node_group_role: iam.IRole, **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # bounds are checked here, before anything is declared
        spec = NodeGroupSpec.from_context(self)
        logger.info('Node group ng-1 sized min=%d desired=%d max=%d',
                    spec.min_size, spec.desired_size, spec.max_size)

        node_type = CfnParameter(self, 'nodegroupInstanceType',
                                 type='String',
                                 description='Instance Type to be used with nodegroup ng-1',
                                 default=spec.instance_type,
                                 )
        node_ami_version = CfnParameter(self, 'nodeAMIVersion',
                                        type='String',
                                        default=spec.ami_release_version,
                                        description='AMI version used for EKS Worker nodes '
                                                    'https://docs.aws.amazon.com/eks/latest/userguide/eks-linux-ami-versions.html',
                                        )

        multipart = ec2.MultipartUserData()
        multipart.add_part(ec2.MultipartBody.from_user_data(raid0_user_data()))

        worker_name = Fn.join('-', [eks_cluster.cluster_name, 'WorkerNodes'])
        launch_template = ec2.CfnLaunchTemplate(self, 'LaunchTemplate',
                                                launch_template_data=ec2.CfnLaunchTemplate.LaunchTemplateDataProperty(
                                                    instance_type=node_type.value_as_string,
                                                    user_data=Fn.base64(multipart.render()),
                                                    block_device_mappings=[
                                                        ec2.CfnLaunchTemplate.BlockDeviceMappingProperty(
                                                            device_name='/dev/xvda',
                                                            ebs=ec2.CfnLaunchTemplate.EbsProperty(
                                                                volume_type='gp3',
                                                            ),
                                                        ),
                                                    ],
                                                    tag_specifications=[
                                                        ec2.CfnLaunchTemplate.TagSpecificationProperty(
                                                            resource_type='instance',
                                                            tags=[CfnTag(key='Name', value=worker_name)],
                                                        ),
                                                    ],
                                                ),
                                                launch_template_name=Fn.join('-', ['ng-1', eks_cluster.cluster_name]),
                                                )

        self.nodegroup = eks.Nodegroup(self, 'ng-1',
                                       cluster=eks_cluster,
                                       # https://docs.aws.amazon.com/eks/latest/userguide/eks-linux-ami-versions.html
                                       release_version=node_ami_version.value_as_string,
                                       nodegroup_name='ng-1',
                                       node_role=node_group_role,
                                       min_size=spec.min_size,
                                       desired_size=spec.desired_size,
                                       max_size=spec.max_size,
                                       launch_template_spec=eks.LaunchTemplateSpec(
                                           id=launch_template.ref,
                                           version=launch_template.attr_latest_version_number,
                                       ),
                                       tags={'Name': worker_name},
                                       )
