import json

import pytest
from aws_cdk import App, Stack, assertions

from emr_eks.baseline_stack import AUTOSCALER_EXTRA_ARGS, autoscaler_tag_conditions


@pytest.fixture(scope='module')
def template(emr_app):
    return assertions.Template.from_stack(emr_app.baseline)


def test_autoscaler_service_account(template):
    manifests = json.dumps(template.find_resources('Custom::AWSCDK-EKS-KubernetesResource'))
    assert 'cluster-autoscaler-sa' in manifests
    assert 'kube-system' in manifests


def test_autoscaler_chart(template):
    template.has_resource_properties('Custom::AWSCDK-EKS-HelmChart', {
        'Release': 'cluster-autoscaler',
        'Chart': 'cluster-autoscaler',
        'Namespace': 'kube-system',
        'Repository': 'https://kubernetes.github.io/autoscaler',
        'Wait': True,
    })
    chart = next(iter(template.find_resources('Custom::AWSCDK-EKS-HelmChart').values()))
    values = json.dumps(chart['Properties']['Values'])
    for arg in AUTOSCALER_EXTRA_ARGS:
        assert arg in values


def test_autoscaler_tuning():
    assert AUTOSCALER_EXTRA_ARGS['scale-down-unneeded-time'] == '30s'
    assert AUTOSCALER_EXTRA_ARGS['scale-down-delay-after-add'] == '30s'
    assert AUTOSCALER_EXTRA_ARGS['balance-similar-node-groups'] is True
    assert AUTOSCALER_EXTRA_ARGS['skip-nodes-with-system-pods'] is False
    assert AUTOSCALER_EXTRA_ARGS['skip-nodes-with-local-storage'] is False


def test_autoscaler_writes_require_both_tags(template):
    tag_conditions = {
        logical_id: json.dumps(resource['Properties']['Value'])
        for logical_id, resource in template.find_resources('Custom::AWSCDKCfnJson').items()
        if 'cluster-autoscaler/enabled' in json.dumps(resource['Properties']['Value'])
    }
    assert len(tag_conditions) == 1
    cfn_json_id, value = next(iter(tag_conditions.items()))
    assert 'autoscaling:ResourceTag/k8s.io/cluster-autoscaler/enabled' in value
    assert 'autoscaling:ResourceTag/kubernetes.io/cluster/' in value

    policy = next(iter(template.find_resources('AWS::IAM::Policy', {
        'Properties': {'PolicyName': assertions.Match.string_like_regexp('clusterAutoscalerPolicy')},
    }).values()))
    statements = policy['Properties']['PolicyDocument']['Statement']
    writes = [s for s in statements if 'autoscaling:SetDesiredCapacity' in s['Action']]
    assert len(writes) == 1
    assert writes[0]['Condition'] == {'StringEquals': {'Fn::GetAtt': [cfn_json_id, 'Value']}}


def test_tag_conditions_for_concrete_name():
    stack = Stack(App(), 'Conditions')
    autoscaler_tag_conditions(stack, 'Tags', 'analytics')
    template = assertions.Template.from_stack(stack)
    resource = next(iter(template.find_resources('Custom::AWSCDKCfnJson').values()))
    assert json.loads(resource['Properties']['Value']) == {
        'autoscaling:ResourceTag/k8s.io/cluster-autoscaler/enabled': 'true',
        'autoscaling:ResourceTag/kubernetes.io/cluster/analytics': 'owned',
    }


def test_vpc_cni_patch(template):
    template.has_resource_properties('Custom::AWSCDK-EKS-KubernetesPatch', {
        'ResourceName': 'daemonset.apps/aws-node',
        'ResourceNamespace': 'kube-system',
        'RestorePatchJson': '{}',
    })
    patch = next(iter(template.find_resources('Custom::AWSCDK-EKS-KubernetesPatch').values()))
    applied = json.loads(patch['Properties']['ApplyPatchJson'])
    env = applied['spec']['template']['spec']['containers'][0]['env']
    assert {'name': 'MINIMUM_IP_TARGET', 'value': '20'} in env
    assert {'name': 'WARM_ENI_TARGET', 'value': '1'} in env
