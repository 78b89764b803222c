from __future__ import annotations

import time
from collections.abc import Iterable
from typing import Protocol

from rental_intake.core.errors import CatalogUnavailable
from rental_intake.core.logging import get_logger, log_event, log_exception, monotonic_ms
from rental_intake.modules.catalog.schemas import CatalogSnapshot, Property

logger = get_logger(__name__)


class CatalogProvider(Protocol):
    def list_properties(self) -> Iterable[Property]: ...


class StaticCatalogProvider:
    def __init__(self, properties: Iterable[Property | dict]) -> None:
        self._properties = [
            p if isinstance(p, Property) else Property.model_validate(p) for p in properties
        ]

    def list_properties(self) -> list[Property]:
        return list(self._properties)


def load_catalog(provider: CatalogProvider) -> CatalogSnapshot:
    start = time.monotonic()
    try:
        properties = tuple(provider.list_properties())
    except Exception as e:
        log_exception(logger, "catalog.load.failure", duration_ms=monotonic_ms(start))
        raise CatalogUnavailable(f"Property catalog could not be loaded: {e}") from e

    if not properties:
        log_event(logger, "catalog.load.empty", duration_ms=monotonic_ms(start))
        raise CatalogUnavailable("Property catalog is empty")

    seen: set[str] = set()
    for prop in properties:
        if prop.name in seen:
            raise CatalogUnavailable(f"Duplicate property name in catalog: {prop.name}")
        seen.add(prop.name)

    snapshot = CatalogSnapshot(properties=properties)
    log_event(
        logger,
        "catalog.load.success",
        properties_count=len(properties),
        aliases_count=sum(len(p.aliases) for p in properties),
        duration_ms=monotonic_ms(start),
    )
    return snapshot
