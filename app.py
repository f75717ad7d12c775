#!/usr/bin/env python3

import aws_cdk as cdk
from aws_cdk import Aspects
from cdk_nag import AwsSolutionsChecks, NagSuppressions


from infrastructure.config import DeploymentConfig
from infrastructure.streaming_analytics import (
    StreamingAnalyticsStack,
)

app = cdk.App()

config = DeploymentConfig.from_context(app.node)

stack = StreamingAnalyticsStack(app, "streaming-analytics", config=config)

cdk.Tags.of(stack).add("project", "streaming-analytics")

NagSuppressions.add_stack_suppressions(
    stack,
    [
        {
            "id": "AwsSolutions-IAM4",
            "reason": "The custom resource provider framework uses the AWS managed AWSLambdaBasicExecutionRole policy.",
        },
        {
            "id": "AwsSolutions-IAM5",
            "reason": "Grants generated by CDK (stream, bucket, provider framework, X-Ray) use wildcards scoped to the owning resource.",
        },
        {
            "id": "AwsSolutions-L1",
            "reason": "The runtime of the custom resource provider framework function is managed by CDK.",
        },
        {
            "id": "AwsSolutions-S1",
            "reason": "The output bucket only receives application results; access logging is left to the account baseline.",
        },
        {
            "id": "AwsSolutions-KDS3",
            "reason": "The input stream uses the AWS managed key for Kinesis.",
        },
    ],
)

Aspects.of(app).add(AwsSolutionsChecks())

app.synth()
