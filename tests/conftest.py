import pytest


def _resolve(template, value, parameters):
    """Evaluate the condition functions CloudFormation resolves at deploy time."""
    if not isinstance(value, dict) or len(value) != 1:
        return value

    ((function, argument),) = value.items()

    if function == "Ref":
        if argument in parameters:
            return parameters[argument]
        declared = template.get("Parameters", {}).get(argument)
        if declared is not None and "Default" in declared:
            return declared["Default"]
        return value

    if function == "Condition":
        return _resolve(template, template["Conditions"][argument], parameters)

    if function == "Fn::Equals":
        left, right = (_resolve(template, item, parameters) for item in argument)
        return left == right

    if function == "Fn::Not":
        return not _resolve(template, argument[0], parameters)

    if function == "Fn::And":
        return all(_resolve(template, item, parameters) for item in argument)

    if function == "Fn::Or":
        return any(_resolve(template, item, parameters) for item in argument)

    if function == "Fn::If":
        condition, when_true, when_false = argument
        chosen = (
            when_true
            if _resolve(template, template["Conditions"][condition], parameters)
            else when_false
        )
        return _resolve(template, chosen, parameters)

    return value


@pytest.fixture
def resolve():
    def resolve_value(template, value, parameters=None):
        return _resolve(template, value, parameters or {})

    return resolve_value


@pytest.fixture
def join_text():
    """Render an Fn::Join of literals and Refs as a ${...} string."""

    def render(value):
        if isinstance(value, str):
            return value
        if "Ref" in value:
            return "${" + value["Ref"] + "}"
        if "Fn::GetAtt" in value:
            return "${" + ".".join(value["Fn::GetAtt"]) + "}"
        if "Fn::Join" in value:
            separator, parts = value["Fn::Join"]
            return separator.join(render(part) for part in parts)
        raise ValueError(f"Cannot render {value!r}")

    return render
