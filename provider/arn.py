"""ARN parsing and construction."""

from dataclasses import dataclass

from provider.exceptions import ValidationError

ARN_PREFIX = "arn:"


@dataclass
class ARN:
    """Amazon Resource Name split into its components."""

    partition: str
    service: str
    region: str
    account_id: str
    resource: str

    def __str__(self) -> str:
        return ":".join(
            ["arn", self.partition, self.service, self.region, self.account_id, self.resource]
        )


def parse(value: str) -> ARN:
    """Parse an ARN string.

    Args:
        value: ARN such as ``arn:aws:codepipeline:us-west-2:123456789012:my-pipeline``

    Returns:
        ARN with the resource part kept intact (it may itself contain colons)

    Raises:
        ValidationError: If the value is not a well-formed ARN
    """
    if not isinstance(value, str) or not value.startswith(ARN_PREFIX):
        raise ValidationError("Invalid ARN", [f"{value!r} does not start with 'arn:'"])
    parts = value.split(":", 5)
    if len(parts) != 6:
        raise ValidationError("Invalid ARN", [f"{value!r} has too few sections"])
    _, partition, service, region, account_id, resource = parts
    if not partition or not service or not resource:
        raise ValidationError("Invalid ARN", [f"{value!r} has empty required sections"])
    return ARN(partition, service, region, account_id, resource)


def is_arn(value: str) -> bool:
    try:
        parse(value)
    except ValidationError:
        return False
    return True
