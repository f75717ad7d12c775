from constructs import Construct
from aws_cdk import (
    Aws,
    aws_iam as iam,
)
from cdk_nag import NagSuppressions


class ExecutionRole(Construct):
    """Lambda execution role that can write its own logs plus one inline policy."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        inline_policy_name: str,
        inline_policy_document: iam.PolicyDocument,
    ) -> None:
        super().__init__(scope, construct_id)

        # Lambda creates /aws/lambda/<function name> on first invocation
        logs_document = iam.PolicyDocument(
            statements=[
                iam.PolicyStatement(
                    actions=[
                        "logs:CreateLogGroup",
                        "logs:CreateLogStream",
                        "logs:PutLogEvents",
                    ],
                    resources=[
                        f"arn:{Aws.PARTITION}:logs:{Aws.REGION}:{Aws.ACCOUNT_ID}:log-group:/aws/lambda/*"
                    ],
                )
            ]
        )

        self.role = iam.Role(
            self,
            "Role",
            assumed_by=iam.ServicePrincipal("lambda.amazonaws.com"),
            inline_policies={
                "CloudWatchLogsPolicy": logs_document,
                inline_policy_name: inline_policy_document,
            },
        )

        NagSuppressions.add_resource_suppressions(
            self.role,
            [
                {
                    "id": "AwsSolutions-IAM5",
                    "reason": "The function name is generated by CloudFormation, so its log group is only known by prefix.",
                }
            ],
            apply_to_children=True,
        )
