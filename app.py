#!/usr/bin/env python3
import logging
import os

from aws_cdk import App, Environment

from emr_eks.composition import compose

logging.basicConfig(
    level=os.environ.get('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

app = App()

ACCOUNT = app.node.try_get_context('account') or os.environ.get('CDK_DEFAULT_ACCOUNT')
REGION = app.node.try_get_context('region') or os.environ.get('CDK_DEFAULT_REGION')

env = Environment(region=REGION, account=ACCOUNT)

compose(app, env=env)

app.synth()
