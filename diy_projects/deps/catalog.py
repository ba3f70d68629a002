from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from ..db.session import get_db
from ..services.catalog import MaterialsCatalog, get_catalog


def get_materials_catalog(db: Session = Depends(get_db)) -> MaterialsCatalog:
    """Catalog port bound to the request's session, so ledger and catalog share a transaction."""

    return get_catalog(db)
