from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Property(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int | str
    name: str
    aliases: tuple[str, ...] = ()

    @field_validator("aliases", mode="before")
    @classmethod
    def _clean_aliases(cls, value):
        if value is None:
            return ()
        return tuple(str(a) for a in value if a is not None and str(a).strip())


class CatalogSnapshot(BaseModel):
    """Read-only view of the property catalog for one batch run."""

    model_config = ConfigDict(frozen=True)

    properties: tuple[Property, ...]
    loaded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def get(self, property_id: int | str | None) -> Property | None:
        if property_id is None:
            return None
        for prop in self.properties:
            if prop.id == property_id:
                return prop
        return None
