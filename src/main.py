import boto3
from typing import Any, Dict, List, Literal, Optional, Tuple
from botocore.exceptions import ClientError
from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.utilities.typing import LambdaContext
from aws_lambda_powertools.utilities.parser import BaseModel, event_parser


logger = Logger()
tracer = Tracer()

services = None

PHYSICAL_ID_SUFFIX = "vpc-configuration"


class Services:
    def __init__(self):
        try:
            self.kinesis_analytics = boto3.client("kinesisanalyticsv2")
        except Exception as e:
            logger.error({"Error creating Kinesis Analytics client": e})
            raise e


class VpcConfigurationProperties(BaseModel):
    ApplicationName: str
    SubnetIds: List[str] = []
    SecurityGroupIds: List[str] = []


class VpcConfigurationEvent(BaseModel):
    RequestType: Literal["Create", "Update", "Delete"]
    ResourceProperties: VpcConfigurationProperties
    OldResourceProperties: Optional[VpcConfigurationProperties] = None
    PhysicalResourceId: Optional[str] = None


def is_not_found(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == "ResourceNotFoundException"


@tracer.capture_method
def describe_vpc_configurations(application_name: str) -> Tuple[int, List[Dict[str, Any]]]:
    response = services.kinesis_analytics.describe_application(
        ApplicationName=application_name
    )
    detail = response["ApplicationDetail"]
    descriptions = detail.get("ApplicationConfigurationDescription", {}).get(
        "VpcConfigurationDescriptions", []
    )

    logger.debug(
        {
            "application_version_id": detail["ApplicationVersionId"],
            "vpc_configurations": descriptions,
        }
    )

    return detail["ApplicationVersionId"], descriptions


def is_desired_state(
    descriptions: List[Dict[str, Any]],
    subnet_ids: List[str],
    security_group_ids: List[str],
) -> bool:
    """Compare the attached VPC configuration with the requested one.

    An empty subnet list means the application should not be attached to a VPC
    at all, whatever security groups were requested. Ordering is ignored.
    """
    if not subnet_ids:
        return not descriptions

    if len(descriptions) != 1:
        return False

    current = descriptions[0]
    return set(current.get("SubnetIds", [])) == set(subnet_ids) and set(
        current.get("SecurityGroupIds", [])
    ) == set(security_group_ids)


@tracer.capture_method
def detach_all(
    application_name: str, version_id: int, descriptions: List[Dict[str, Any]]
) -> int:
    for description in descriptions:
        logger.info(
            {
                "Deleting VPC configuration": description["VpcConfigurationId"],
                "application_name": application_name,
            }
        )

        response = services.kinesis_analytics.delete_application_vpc_configuration(
            ApplicationName=application_name,
            CurrentApplicationVersionId=version_id,
            VpcConfigurationId=description["VpcConfigurationId"],
        )
        version_id = response["ApplicationVersionId"]

    return version_id


@tracer.capture_method
def attach(
    application_name: str,
    version_id: int,
    subnet_ids: List[str],
    security_group_ids: List[str],
) -> int:
    logger.info(
        {
            "Adding VPC configuration": application_name,
            "subnet_ids": subnet_ids,
            "security_group_ids": security_group_ids,
        }
    )

    response = services.kinesis_analytics.add_application_vpc_configuration(
        ApplicationName=application_name,
        CurrentApplicationVersionId=version_id,
        VpcConfiguration={
            "SubnetIds": subnet_ids,
            "SecurityGroupIds": security_group_ids,
        },
    )

    return response["ApplicationVersionId"]


@tracer.capture_method
def reconcile(
    application_name: str, subnet_ids: List[str], security_group_ids: List[str]
) -> bool:
    """Bring the application's VPC attachment to the requested state.

    Returns True when the application was modified.
    """
    if security_group_ids and not subnet_ids:
        logger.warning(
            {
                "Security groups ignored without subnets": security_group_ids,
                "application_name": application_name,
            }
        )

    version_id, descriptions = describe_vpc_configurations(application_name)

    if is_desired_state(descriptions, subnet_ids, security_group_ids):
        logger.info({"VPC configuration already up to date": application_name})
        return False

    version_id = detach_all(application_name, version_id, descriptions)

    if subnet_ids:
        attach(application_name, version_id, subnet_ids, security_group_ids)

    return True


@tracer.capture_method
def remove(application_name: str) -> bool:
    try:
        version_id, descriptions = describe_vpc_configurations(application_name)
    except ClientError as e:
        if is_not_found(e):
            logger.info({"Application no longer exists": application_name})
            return False
        raise e

    detach_all(application_name, version_id, descriptions)

    return len(descriptions) > 0


@tracer.capture_lambda_handler
@logger.inject_lambda_context()
@event_parser(model=VpcConfigurationEvent)
def lambda_handler(event: VpcConfigurationEvent, context: LambdaContext) -> Dict[str, Any]:
    global services

    if services is None:
        services = Services()

    logger.debug({"event": event})

    properties = event.ResourceProperties
    application_name = properties.ApplicationName

    logger.info(
        {
            "request_type": event.RequestType,
            "application_name": application_name,
            "subnet_ids": properties.SubnetIds,
            "security_group_ids": properties.SecurityGroupIds,
        }
    )

    try:
        if event.RequestType == "Delete":
            changed = remove(application_name)
        else:
            changed = reconcile(
                application_name, properties.SubnetIds, properties.SecurityGroupIds
            )
    except ClientError as e:
        logger.error({"Error updating VPC configuration": e})
        raise e

    return {
        "PhysicalResourceId": f"{application_name}-{PHYSICAL_ID_SUFFIX}",
        "Data": {"Changed": str(changed).lower()},
    }
