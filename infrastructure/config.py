from typing import Any, List

from aws_cdk.aws_logs import RetentionDays
from constructs import Node
from pydantic import BaseModel, Field, field_validator, model_validator


class DeploymentConfig(BaseModel):
    """Synth-time settings read from CDK context.

    Network placement lives here rather than in stack parameters because a
    CloudFormation list parameter cannot be empty.
    """

    log_retention: str = "ONE_YEAR"
    shard_count: int = Field(default=1, ge=1)
    subnet_ids: List[str] = Field(default_factory=list)
    security_group_ids: List[str] = Field(default_factory=list)

    @field_validator("subnet_ids", "security_group_ids", mode="before")
    @classmethod
    def split_comma_separated(cls, value: Any) -> Any:
        # `cdk synth -c subnet_ids=a,b` passes a single string
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("log_retention")
    @classmethod
    def known_retention(cls, value: str) -> str:
        if value not in RetentionDays.__members__:
            raise ValueError(f"Unknown log retention: {value!r}")
        return value

    @model_validator(mode="after")
    def security_groups_need_subnets(self) -> "DeploymentConfig":
        if self.security_group_ids and not self.subnet_ids:
            raise ValueError(
                "security_group_ids require subnet_ids: "
                f"{', '.join(self.security_group_ids)}"
            )
        return self

    @property
    def retention_days(self) -> RetentionDays:
        return RetentionDays[self.log_retention]

    @classmethod
    def from_context(cls, node: Node) -> "DeploymentConfig":
        values = {}
        for name in cls.model_fields:
            value = node.try_get_context(name)
            if value is not None:
                values[name] = value
        return cls(**values)
