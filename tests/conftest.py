import json

import pytest
from aws_cdk import App, Environment

from emr_eks.composition import compose

ENV = Environment(account='123456789012', region='us-east-1')


def build_app(**context):
    app = App(context=context)
    return compose(app, env=ENV)


def kubernetes_manifests(template):
    """Parsed manifests of every kubectl resource whose manifest has no tokens."""
    found = []
    for logical_id, resource in template.find_resources('Custom::AWSCDK-EKS-KubernetesResource').items():
        manifest = resource['Properties']['Manifest']
        if isinstance(manifest, str):
            for item in json.loads(manifest):
                found.append((logical_id, resource, item))
    return found


@pytest.fixture(scope='session')
def emr_app():
    return build_app()
