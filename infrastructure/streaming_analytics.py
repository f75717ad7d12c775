from constructs import Construct
from aws_cdk import (
    Stack,
    CfnParameter,
    CfnOutput,
    RemovalPolicy,
    aws_kinesis as kinesis,
    aws_s3 as s3,
)

from infrastructure.config import DeploymentConfig
from infrastructure.flink_application import FlinkApplication


class StreamingAnalyticsStack(Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        config: DeploymentConfig,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Verbosity levels are checked by CloudFormation since they are unresolved here
        self.log_level = CfnParameter(
            self,
            "LogLevel",
            type="String",
            default="INFO",
            allowed_values=FlinkApplication.ALLOWED_LOG_LEVELS,
            description="Verbosity of the CloudWatch logs emitted by the application.",
        )

        self.metrics_level = CfnParameter(
            self,
            "MetricsLevel",
            type="String",
            default="APPLICATION",
            allowed_values=FlinkApplication.ALLOWED_METRICS_LEVELS,
            description="Granularity of the CloudWatch metrics emitted by the application.",
        )

        self.enable_auto_scaling = CfnParameter(
            self,
            "EnableAutoScaling",
            type="String",
            default="true",
            allowed_values=["true", "false"],
            description="Whether the application scales its parallelism automatically.",
        )

        self.enable_snapshots = CfnParameter(
            self,
            "EnableSnapshots",
            type="String",
            default="true",
            allowed_values=["true", "false"],
            description="Whether the application takes snapshots when stopped or updated.",
        )

        self.code_bucket_arn = CfnParameter(
            self,
            "CodeBucketArn",
            type="String",
            allowed_pattern="arn:\\S+:s3:::\\S+",
            description="ARN of the S3 bucket holding the application package.",
        )

        self.code_file_key = CfnParameter(
            self,
            "CodeFileKey",
            type="String",
            description="Key of the application package (zip) in the code bucket.",
        )

        # Source of records for the application
        input_stream = kinesis.Stream(
            self,
            "InputStream",
            shard_count=config.shard_count,
            encryption=kinesis.StreamEncryption.MANAGED,
        )

        # Destination of the processed records
        output_bucket = s3.Bucket(
            self,
            "OutputBucket",
            encryption=s3.BucketEncryption.S3_MANAGED,
            block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
            enforce_ssl=True,
            removal_policy=RemovalPolicy.RETAIN,
        )

        self.application = FlinkApplication(
            self,
            "FlinkApplication",
            input_stream=input_stream,
            output_bucket=output_bucket,
            logs_retention=config.retention_days,
            log_level=self.log_level.value_as_string,
            metrics_level=self.metrics_level.value_as_string,
            code_bucket_arn=self.code_bucket_arn.value_as_string,
            code_file_key=self.code_file_key.value_as_string,
            enable_snapshots=self.enable_snapshots.value_as_string,
            enable_auto_scaling=self.enable_auto_scaling.value_as_string,
            subnet_ids=config.subnet_ids,
            security_group_ids=config.security_group_ids,
        )

        # Add CloudFormation outputs
        CfnOutput(self, "ApplicationName", value=self.application.application_name)
        CfnOutput(self, "LogGroupName", value=self.application.log_group_name)
        CfnOutput(self, "InputStreamName", value=input_stream.stream_name)
        CfnOutput(self, "OutputBucketName", value=output_bucket.bucket_name)
