"""Shared base model for wire payloads"""
import math

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """snake_case in Python, camelCase on the wire; inputs accept either"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def clamp_unit(value: object) -> float:
    """Coerce a collaborator-supplied score into [0, 1]; non-numeric input becomes 0"""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    try:
        f = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(f):
        return 0.0
    return max(0.0, min(1.0, f))
