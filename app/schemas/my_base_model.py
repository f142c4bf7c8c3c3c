from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CustomBaseModel(BaseModel):
    """Custom base model for all schemas.
    - fields are snake_case in python, camelCase on the wire
    - both spellings are accepted as input
    - helper to build a schema from an ORM record or a dict
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    @classmethod
    def from_record(cls, record: Any):
        if isinstance(record, dict):
            return cls.model_validate(record)
        elif hasattr(record, "__table__"):
            return cls.model_validate(record, from_attributes=True)
        else:
            raise ValueError(f"Invalid record type: {type(record)}")


class ErrorResponse(CustomBaseModel):
    """Body of every failed request"""

    success: bool = False
    error: str
    details: Optional[Any] = None
