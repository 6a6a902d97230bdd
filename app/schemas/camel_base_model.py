from datetime import datetime, date
from enum import Enum
from pydantic import BaseModel, ConfigDict, field_serializer
from pydantic.alias_generators import to_camel


class CamelCaseBaseModel(BaseModel):
    """
    Base model with camelCase field aliases for API payloads.

    Fields stay snake_case in Python; call `model_dump(by_alias=True)` to get
    camelCase keys. Enums, datetimes and nested models are flattened to
    JSON-ready values on dump.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_serializer("*")
    def serialize_any(self, value):
        if isinstance(value, BaseModel):
            return value.model_dump(by_alias=True, exclude_none=True)

        if isinstance(value, Enum):
            return value.value

        # datetime before date, it is a subclass
        if isinstance(value, datetime):
            return value.isoformat()

        if isinstance(value, date):
            return value.isoformat()

        if isinstance(value, (list, tuple, set)):
            return [self.serialize_any(item) for item in value]

        if isinstance(value, dict):
            return {key: self.serialize_any(val) for key, val in value.items()}

        return value
