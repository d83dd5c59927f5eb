import pytest
from aws_cdk import App, Stack

from emr_eks.config import (
    ClusterSpec,
    NamespaceSpec,
    NodeGroupSpec,
    context_bool,
    context_int,
    resolve_cluster_name,
)
from emr_eks.errors import ConfigurationError, NodeGroupSizeError


def make_stack(**context):
    return Stack(App(context=context), 'ConfigStack')


def test_context_bool_accepts_cli_strings():
    stack = make_stack(a='1', b='true', c='0', d=True)
    assert context_bool(stack, 'a')
    assert context_bool(stack, 'b')
    assert not context_bool(stack, 'c')
    assert context_bool(stack, 'd')
    assert not context_bool(stack, 'missing')


def test_context_int_rejects_garbage():
    stack = make_stack(size='ten')
    with pytest.raises(ConfigurationError):
        context_int(stack, 'size', 1)


def test_node_group_defaults_are_ordered():
    spec = NodeGroupSpec.from_context(make_stack())
    assert (spec.min_size, spec.desired_size, spec.max_size) == (1, 2, 450)
    assert spec.instance_type == 'r5d.24xlarge'


def test_node_group_sizes_from_cli_strings():
    spec = NodeGroupSpec.from_context(
        make_stack(nodegroup_min='3', nodegroup_count='3', nodegroup_max='10'))
    assert (spec.min_size, spec.desired_size, spec.max_size) == (3, 3, 10)


@pytest.mark.parametrize('bounds', [(10, 2, 5), (1, 6, 5), (-1, 0, 1)])
def test_node_group_rejects_invalid_bounds(bounds):
    with pytest.raises(NodeGroupSizeError) as exc:
        NodeGroupSpec(min_size=bounds[0], desired_size=bounds[1], max_size=bounds[2]).validate()
    assert exc.value.min_size == bounds[0]


def test_cluster_spec_defaults():
    spec = ClusterSpec.from_context(make_stack())
    assert spec.name == 'myekscluster'
    assert spec.endpoint_access == 'both'
    assert spec.control_plane_logging == 'custom'


def test_cluster_spec_rejects_unknown_endpoint_access():
    with pytest.raises(ConfigurationError):
        ClusterSpec.from_context(make_stack(endpoint_access='internal'))


def test_cluster_name_resolved_once_per_stack():
    stack = make_stack(cluster_name='analytics')
    assert resolve_cluster_name(stack) == 'analytics'
    assert resolve_cluster_name(stack) == 'analytics'
    assert resolve_cluster_name(make_stack()) == 'myekscluster'


def test_cluster_name_kept_on_its_stack():
    first = make_stack(cluster_name='analytics')
    second = make_stack(cluster_name='reporting')
    assert resolve_cluster_name(first) == 'analytics'
    assert resolve_cluster_name(second) == 'reporting'
    assert first._resolved_cluster_name == 'analytics'
    assert not hasattr(make_stack(), '_resolved_cluster_name')


def test_namespace_spec_defaults():
    spec = NamespaceSpec.from_context(make_stack())
    assert spec == NamespaceSpec(name='default', create=False)
    assert NamespaceSpec.from_context(make_stack(eksNamespace='emr', createNameSpace='true')) == \
        NamespaceSpec(name='emr', create=True)
