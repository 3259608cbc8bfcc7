from typing import ClassVar, Tuple
from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

class CamelModel(BaseModel):
    """Snake_case in Python, camelCase on the wire"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

class StrictInput(CamelModel):
    """Request body with an explicit field list; anything else is rejected"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

class FormInput(StrictInput):
    """Multipart form fields, where an empty string means the field was left blank.

    Blank values are dropped, except for the names in ``clearable_fields``:
    those come through as None so an update can erase the stored value.
    """
    clearable_fields: ClassVar[Tuple[str, ...]] = ()

    @model_validator(mode="before")
    @classmethod
    def drop_blank_fields(cls, data):
        if not isinstance(data, dict):
            return data
        cleaned = {}
        for key, value in data.items():
            if isinstance(value, str) and value.strip() == "":
                if key in cls.clearable_fields:
                    cleaned[key] = None
                continue
            cleaned[key] = value
        return cleaned

class MessageResponse(BaseModel):
    message: str
