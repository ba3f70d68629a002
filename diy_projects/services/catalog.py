"""Port between the project ledger and the materials catalog.

The ledger only ever talks to materials through ``MaterialsCatalog``. The
in-process adapter shares the caller's session so that a reservation and the
project change that triggered it commit or roll back together. Storage or
transport failures surface as ``CatalogUnavailable`` so callers never mistake
an outage for a missing material.
"""

from __future__ import annotations

import logging
from typing import Iterable, Protocol, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import CatalogUnavailable
from ..crud import materials as materials_crud
from ..crud.materials import MaterialPricing, StockReservation

logger = logging.getLogger(__name__)


class MaterialsCatalog(Protocol):
    def get_pricing(self, material_ids: Iterable[int]) -> dict[int, MaterialPricing]:
        ...

    def reserve(self, reservations: Sequence[StockReservation]) -> None:
        ...


class LocalMaterialsCatalog:
    """Catalog adapter that calls the materials CRUD layer in-process."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_pricing(self, material_ids: Iterable[int]) -> dict[int, MaterialPricing]:
        try:
            return materials_crud.get_pricing(self.db, material_ids)
        except SQLAlchemyError as exc:
            logger.exception("catalog.pricing_failed")
            raise CatalogUnavailable("Materials catalog is unavailable") from exc

    def reserve(self, reservations: Sequence[StockReservation]) -> None:
        # Joins the caller's transaction; the ledger commits.
        try:
            materials_crud.reserve_materials(self.db, reservations, commit=False)
        except SQLAlchemyError as exc:
            logger.exception("catalog.reserve_failed")
            raise CatalogUnavailable("Materials catalog is unavailable") from exc


def get_catalog(db: Session) -> MaterialsCatalog:
    return LocalMaterialsCatalog(db)


__all__ = [
    "LocalMaterialsCatalog",
    "MaterialPricing",
    "MaterialsCatalog",
    "StockReservation",
    "get_catalog",
]
