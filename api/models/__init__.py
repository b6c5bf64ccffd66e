"""
Pydantic DTOs and response/request models shared across routers.

This package exists to keep router modules slim and focused on HTTP concerns,
while centralizing data contracts in one place. The wire format is camelCase,
matching what the web client sends; snake_case is accepted too.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
