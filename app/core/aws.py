from __future__ import annotations

import boto3

from .settings import S

_session = boto3.session.Session(region_name=S.aws_region or "us-east-1")

ddb = _session.resource("dynamodb")


def ses_client():
    return _session.client("ses")


def cognito_client(region: str = ""):
    return _session.client("cognito-idp", region_name=region or S.aws_region or "us-east-1")
