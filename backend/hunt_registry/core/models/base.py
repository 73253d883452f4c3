"""Shared pydantic base for persisted registry documents."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class RegistryModel(BaseModel):
    """
    Base for every persisted structure.

    Documents are stored with camelCase keys and exposed with snake_case
    attributes. Unknown keys are kept so a read-modify-write cycle never
    drops fields written by a newer or older client.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_json_dict(self) -> dict:
        """Dump to the persisted (camelCase, JSON-safe) representation."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
