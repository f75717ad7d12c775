import os
from typing import List, Optional

from constructs import Construct
from aws_cdk import (
    Aws,
    CfnCondition,
    CustomResource,
    Duration,
    Fn,
    RemovalPolicy,
    Stack,
    Token,
    aws_iam as iam,
    aws_kinesis as kinesis,
    aws_kinesisanalyticsv2 as analytics,
    aws_lambda as _lambda,
    aws_logs as logs,
    aws_s3 as s3,
    custom_resources as cr,
)
from cdk_nag import NagSuppressions

from infrastructure.execution_role import ExecutionRole


CALLBACK_CODE_PATH = os.path.join(os.path.dirname(__file__), "..", "src")

# Must stay compatible with the PYTHON_3_11 runtime of the callback
POWERTOOLS_LAYER = "AWSLambdaPowertoolsPythonV2:46"


class FlinkApplication(Construct):
    """Managed Apache Flink application reading a Kinesis stream and writing to S3.

    Auto scaling and snapshots are toggled by string values ("true" enables
    them) that are compared by CloudFormation at deploy time, so they can be
    bound to stack parameters. Log and metrics levels are checked against the
    allowed values here unless they are unresolved tokens.

    VPC placement cannot be set when the application is created, so it is
    applied afterwards by a custom resource backed by the function in ``src``.
    """

    RUNTIME_ENVIRONMENT = "FLINK-1_8"
    PROPERTY_GROUP_ID = "FlinkApplicationProperties"

    ALLOWED_LOG_LEVELS = ["DEBUG", "ERROR", "INFO", "WARN"]
    ALLOWED_METRICS_LEVELS = ["APPLICATION", "OPERATOR", "PARALLELISM", "TASK"]

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        input_stream: kinesis.IStream,
        output_bucket: s3.IBucket,
        logs_retention: logs.RetentionDays,
        log_level: str,
        metrics_level: str,
        code_bucket_arn: str,
        code_file_key: str,
        enable_snapshots: str,
        enable_auto_scaling: str,
        subnet_ids: Optional[List[str]] = None,
        security_group_ids: Optional[List[str]] = None,
    ) -> None:
        validate_level("log level", log_level, FlinkApplication.ALLOWED_LOG_LEVELS)
        validate_level(
            "metrics level", metrics_level, FlinkApplication.ALLOWED_METRICS_LEVELS
        )

        super().__init__(scope, construct_id)

        # Kept on deletion so logs outlive the application
        self.log_group = logs.LogGroup(
            self,
            "LogGroup",
            retention=logs_retention,
            removal_policy=RemovalPolicy.RETAIN,
        )

        log_stream = logs.LogStream(
            self,
            "LogStream",
            log_group=self.log_group,
            removal_policy=RemovalPolicy.RETAIN,
        )

        self.role = self._create_role(code_bucket_arn, code_file_key)
        input_stream.grant_read(self.role)
        output_bucket.grant_read_write(self.role)

        auto_scaling_condition = CfnCondition(
            self,
            "EnableAutoScaling",
            expression=Fn.condition_equals(enable_auto_scaling, "true"),
        )

        snapshot_condition = CfnCondition(
            self,
            "EnableSnapshots",
            expression=Fn.condition_equals(enable_snapshots, "true"),
        )

        self.application = analytics.CfnApplication(
            self,
            "Application",
            runtime_environment=self.RUNTIME_ENVIRONMENT,
            service_execution_role=self.role.role_arn,
            application_configuration=analytics.CfnApplication.ApplicationConfigurationProperty(
                application_code_configuration=analytics.CfnApplication.ApplicationCodeConfigurationProperty(
                    code_content=analytics.CfnApplication.CodeContentProperty(
                        s3_content_location=analytics.CfnApplication.S3ContentLocationProperty(
                            bucket_arn=code_bucket_arn,
                            file_key=code_file_key,
                        )
                    ),
                    code_content_type="ZIPFILE",
                ),
                environment_properties=analytics.CfnApplication.EnvironmentPropertiesProperty(
                    property_groups=[
                        analytics.CfnApplication.PropertyGroupProperty(
                            property_group_id=self.PROPERTY_GROUP_ID,
                            property_map={
                                "InputStreamName": input_stream.stream_name,
                                "OutputBucketName": output_bucket.bucket_name,
                                "Region": Aws.REGION,
                            },
                        )
                    ]
                ),
                flink_application_configuration=analytics.CfnApplication.FlinkApplicationConfigurationProperty(
                    monitoring_configuration=analytics.CfnApplication.MonitoringConfigurationProperty(
                        configuration_type="CUSTOM",
                        log_level=log_level,
                        metrics_level=metrics_level,
                    ),
                    parallelism_configuration=analytics.CfnApplication.ParallelismConfigurationProperty(
                        configuration_type="CUSTOM",
                        auto_scaling_enabled=Fn.condition_if(
                            auto_scaling_condition.logical_id, True, False
                        ),
                    ),
                    checkpoint_configuration=analytics.CfnApplication.CheckpointConfigurationProperty(
                        configuration_type="DEFAULT",
                    ),
                ),
                application_snapshot_configuration=analytics.CfnApplication.ApplicationSnapshotConfigurationProperty(
                    snapshots_enabled=Fn.condition_if(
                        snapshot_condition.logical_id, True, False
                    ),
                ),
            ),
        )

        self.logging = self._configure_logging(log_stream.log_stream_name)

        self.vpc_configuration = self._create_custom_resource(
            subnet_ids, security_group_ids
        )
        # Both change the application version, so they must not run concurrently
        self.vpc_configuration.node.add_dependency(self.logging)

    @property
    def application_name(self) -> str:
        return self.application.ref

    @property
    def log_group_name(self) -> str:
        return self.log_group.log_group_name

    def _create_role(self, bucket_arn: str, file_key: str) -> iam.Role:
        role = iam.Role(
            self,
            "AppRole",
            assumed_by=iam.ServicePrincipal("kinesisanalytics.amazonaws.com"),
        )

        code_policy = iam.Policy(
            self,
            "CodePolicy",
            statements=[
                iam.PolicyStatement(
                    resources=[f"{bucket_arn}/{file_key}"],
                    actions=["s3:GetObjectVersion", "s3:GetObject"],
                )
            ],
        )
        code_policy.attach_to_role(role)

        logs_policy = iam.Policy(
            self,
            "LogsPolicy",
            statements=[
                iam.PolicyStatement(
                    resources=[
                        f"arn:{Aws.PARTITION}:logs:{Aws.REGION}:{Aws.ACCOUNT_ID}:log-group:*"
                    ],
                    actions=["logs:DescribeLogGroups"],
                ),
                iam.PolicyStatement(
                    resources=[self.log_group.log_group_arn],
                    actions=["logs:DescribeLogStreams", "logs:PutLogEvents"],
                ),
            ],
        )
        logs_policy.attach_to_role(role)

        vpc_policy = iam.Policy(
            self,
            "VpcPolicy",
            statements=[
                # CreateNetworkInterface does not return an ARN the policy could be scoped to
                iam.PolicyStatement(
                    resources=["*"],
                    actions=[
                        "ec2:CreateNetworkInterface",
                        "ec2:DescribeNetworkInterfaces",
                        "ec2:DescribeVpcs",
                        "ec2:DeleteNetworkInterface",
                        "ec2:DescribeDhcpOptions",
                        "ec2:DescribeSubnets",
                        "ec2:DescribeSecurityGroups",
                    ],
                ),
                iam.PolicyStatement(
                    resources=[
                        f"arn:{Aws.PARTITION}:ec2:{Aws.REGION}:{Aws.ACCOUNT_ID}:network-interface/*"
                    ],
                    actions=["ec2:CreateNetworkInterfacePermission"],
                ),
            ],
        )
        vpc_policy.attach_to_role(role)

        cfn_policy: iam.CfnPolicy = vpc_policy.node.default_child
        cfn_policy.add_metadata(
            "cfn_nag",
            {
                "rules_to_suppress": [
                    {
                        "id": "W12",
                        "reason": "Actions do not support resource level permissions",
                    }
                ]
            },
        )

        for policy in (logs_policy, vpc_policy):
            NagSuppressions.add_resource_suppressions(
                policy,
                [
                    {
                        "id": "AwsSolutions-IAM5",
                        "reason": "Actions do not support resource level permissions",
                    }
                ],
            )

        return role

    def _configure_logging(
        self, log_stream_name: str
    ) -> analytics.CfnApplicationCloudWatchLoggingOption:
        log_stream_arn = (
            f"arn:{Aws.PARTITION}:logs:{Aws.REGION}:{Aws.ACCOUNT_ID}"
            f":log-group:{self.log_group_name}:log-stream:{log_stream_name}"
        )

        return analytics.CfnApplicationCloudWatchLoggingOption(
            self,
            "Logging",
            application_name=self.application_name,
            cloud_watch_logging_option=analytics.CfnApplicationCloudWatchLoggingOption.CloudWatchLoggingOptionProperty(
                log_stream_arn=log_stream_arn
            ),
        )

    def _create_custom_resource(
        self,
        subnet_ids: Optional[List[str]],
        security_group_ids: Optional[List[str]],
    ) -> CustomResource:
        vpc_config_document = iam.PolicyDocument(
            statements=[
                iam.PolicyStatement(
                    resources=[
                        f"arn:{Aws.PARTITION}:kinesisanalytics:{Aws.REGION}:{Aws.ACCOUNT_ID}:application/{self.application_name}"
                    ],
                    actions=[
                        "kinesisanalytics:AddApplicationVpcConfiguration",
                        "kinesisanalytics:DeleteApplicationVpcConfiguration",
                        "kinesisanalytics:DescribeApplication",
                    ],
                )
            ]
        )

        custom_resource_role = ExecutionRole(
            self,
            "CustomResourceRole",
            inline_policy_name="VpcConfigPolicy",
            inline_policy_document=vpc_config_document,
        )

        # Lambda layer for Powertools for AWS Lambda (Python)
        powertools_layer = _lambda.LayerVersion.from_layer_version_arn(
            self,
            "lambda-powertools",
            layer_version_arn=f"arn:{Aws.PARTITION}:lambda:{Stack.of(self).region}:017000801446:layer:{POWERTOOLS_LAYER}",
        )

        custom_resource_function = _lambda.Function(
            self,
            "CustomResource",
            runtime=_lambda.Runtime.PYTHON_3_11,
            handler="main.lambda_handler",
            role=custom_resource_role.role,
            code=_lambda.Code.from_asset(
                CALLBACK_CODE_PATH, exclude=["__pycache__", "*.pyc"]
            ),
            layers=[powertools_layer],
            timeout=Duration.seconds(30),
            environment={
                "LOG_LEVEL": "INFO",
                "POWERTOOLS_SERVICE_NAME": "flink_vpc_configuration",
            },
            tracing=_lambda.Tracing.ACTIVE,
        )

        provider = cr.Provider(
            self,
            "VpcConfigurationProvider",
            on_event_handler=custom_resource_function,
        )

        return CustomResource(
            self,
            "VpcConfiguration",
            service_token=provider.service_token,
            resource_type="Custom::VpcConfiguration",
            properties={
                "ApplicationName": self.application_name,
                "SubnetIds": list(subnet_ids or []),
                "SecurityGroupIds": list(security_group_ids or []),
            },
        )


def validate_level(name: str, value: str, allowed: List[str]) -> None:
    """Reject a known level that is not in ``allowed``; tokens pass through."""
    if Token.is_unresolved(value):
        return

    if value not in allowed:
        raise ValueError(
            f"Unknown {name}: {value!r}, expected one of {', '.join(allowed)}"
        )
