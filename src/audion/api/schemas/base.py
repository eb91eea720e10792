"""Shared pydantic configuration for the JSON surface."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


# Hey future me - the web client speaks camelCase with Mongo-style "_id" keys. Field names stay
# snake_case in Python; alias_generator produces the camelCase wire names and id fields carry an
# explicit "_id" alias. populate_by_name lets tests (and internal code) build models either way.
class CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )
