"""Tests for the project ledger and its use of the materials catalog."""

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DB_URL", "sqlite://")

from diy_projects.core.errors import (
    CatalogUnavailable,
    InsufficientStock,
    MaterialNotFound,
    NoMaterials,
    NoOpUpdate,
    NotFound,
    ProjectNotStartable,
)
from diy_projects.crud.materials import adjust_stock, create_material, get_material, update_material
from diy_projects.crud.projects import (
    create_project,
    delete_project,
    get_project,
    list_projects,
    list_startable_projects,
    recalculate_cost,
    start_project,
    update_project,
)
from diy_projects.db.session import Base, enable_sqlite_foreign_keys
from diy_projects.models.project import ProjectMaterial
from diy_projects.services.catalog import LocalMaterialsCatalog

# Ensure models are registered so metadata tables are created
from diy_projects.models import material as material_model  # noqa: F401
from diy_projects.models import project as project_model  # noqa: F401


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    enable_sqlite_foreign_keys(engine)
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def catalog_items(db_session):
    pine = create_material(
        db_session,
        {"name": "Pine Board", "category": "wood", "unit": "piece", "price_per_unit": "8.99", "stock_quantity": 10},
    )
    arduino = create_material(
        db_session,
        {
            "name": "Arduino Uno",
            "category": "electronics",
            "unit": "piece",
            "price_per_unit": "24.99",
            "stock_quantity": 1,
        },
    )
    return pine, arduino


def _project(db, materials=(), **overrides):
    payload = {
        "title": "Birdhouse",
        "description": "Weekend build",
        "difficulty": "beginner",
        "category": "woodworking",
        "estimated_hours": 4,
        "materials": list(materials),
    }
    payload.update(overrides)
    return create_project(db, payload)


class BrokenCatalog:
    def get_pricing(self, material_ids):
        raise CatalogUnavailable("Materials catalog is unavailable")

    def reserve(self, reservations):
        raise CatalogUnavailable("Materials catalog is unavailable")


def test_create_project_prices_line_items(db_session, catalog_items):
    pine, arduino = catalog_items

    project = _project(
        db_session,
        [{"material_id": pine.id, "quantity": 2, "notes": "Sides"}, {"material_id": arduino.id, "quantity": 1}],
    )

    assert str(project.estimated_cost) == "42.97"
    assert project.status == "planning"
    assert [(line.material_id, str(line.unit_price), str(line.total_price)) for line in project.materials] == [
        (pine.id, "8.99", "17.98"),
        (arduino.id, "24.99", "24.99"),
    ]
    assert project.materials[0].notes == "Sides"
    # Creating a project prices materials but never reserves them.
    assert get_material(db_session, pine.id).stock_quantity == 10


def test_create_project_without_materials_costs_nothing(db_session):
    project = _project(db_session)

    assert str(project.estimated_cost) == "0.00"
    assert project.materials == []


def test_create_project_unknown_material_persists_nothing(db_session, catalog_items):
    pine, _ = catalog_items

    with pytest.raises(MaterialNotFound) as excinfo:
        _project(db_session, [{"material_id": pine.id, "quantity": 1}, {"material_id": 999, "quantity": 1}])

    assert excinfo.value.material_id == 999
    _, total = list_projects(db_session)
    assert total == 0


def test_create_project_with_inactive_material_fails(db_session, catalog_items):
    pine, _ = catalog_items
    update_material(db_session, pine.id, {"is_active": False})

    with pytest.raises(MaterialNotFound):
        _project(db_session, [{"material_id": pine.id, "quantity": 1}])


def test_catalog_outage_is_not_reported_as_missing_material(db_session):
    with pytest.raises(CatalogUnavailable):
        create_project(
            db_session,
            {
                "title": "Lamp",
                "difficulty": "beginner",
                "category": "electronics",
                "estimated_hours": 2,
                "materials": [{"material_id": 1, "quantity": 1}],
            },
            catalog=BrokenCatalog(),
        )


def test_local_catalog_maps_storage_errors(db_session, monkeypatch):
    from diy_projects.crud import materials as materials_crud

    def _explode(db, material_ids):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(materials_crud, "get_pricing", _explode)

    with pytest.raises(CatalogUnavailable):
        LocalMaterialsCatalog(db_session).get_pricing([1])


def test_delete_project_cascades_line_items_only(db_session, catalog_items):
    pine, _ = catalog_items
    project = _project(db_session, [{"material_id": pine.id, "quantity": 3}])
    project_id = project.id

    delete_project(db_session, project_id)

    with pytest.raises(NotFound):
        get_project(db_session, project_id)
    remaining = db_session.execute(
        select(func.count(ProjectMaterial.id)).where(ProjectMaterial.project_id == project_id)
    ).scalar_one()
    assert remaining == 0
    assert get_material(db_session, pine.id).stock_quantity == 10

    with pytest.raises(NotFound):
        delete_project(db_session, project_id)


def test_start_project_without_materials(db_session):
    project = _project(db_session)

    with pytest.raises(NoMaterials):
        start_project(db_session, project.id)

    assert get_project(db_session, project.id).status == "planning"


def test_start_project_reserves_stock(db_session, catalog_items):
    pine, arduino = catalog_items
    project = _project(
        db_session,
        [{"material_id": pine.id, "quantity": 4}, {"material_id": arduino.id, "quantity": 1}],
    )

    started = start_project(db_session, project.id)

    assert started.status == "in_progress"
    assert get_material(db_session, pine.id).stock_quantity == 6
    assert get_material(db_session, arduino.id).stock_quantity == 0


def test_start_project_failure_is_atomic(db_session, catalog_items):
    pine, arduino = catalog_items
    project = _project(
        db_session,
        [{"material_id": pine.id, "quantity": 4}, {"material_id": arduino.id, "quantity": 2}],
    )

    with pytest.raises(InsufficientStock):
        start_project(db_session, project.id)

    assert get_material(db_session, pine.id).stock_quantity == 10
    assert get_material(db_session, arduino.id).stock_quantity == 1
    assert get_project(db_session, project.id).status == "planning"


def test_start_unknown_project(db_session):
    with pytest.raises(NotFound):
        start_project(db_session, 42)


def test_start_project_twice_reserves_once(db_session, catalog_items):
    pine, _ = catalog_items
    project = _project(db_session, [{"material_id": pine.id, "quantity": 4}])
    start_project(db_session, project.id)

    with pytest.raises(ProjectNotStartable) as excinfo:
        start_project(db_session, project.id)

    assert excinfo.value.current_status == "in_progress"
    assert get_material(db_session, pine.id).stock_quantity == 6


def test_start_project_only_from_planning(db_session, catalog_items):
    pine, _ = catalog_items
    project = _project(db_session, [{"material_id": pine.id, "quantity": 1}])
    update_project(db_session, project.id, {"status": "paused"})

    with pytest.raises(ProjectNotStartable):
        start_project(db_session, project.id)

    assert get_project(db_session, project.id).status == "paused"
    assert get_material(db_session, pine.id).stock_quantity == 10


def test_recalculate_cost_only_touches_target_project(db_session, catalog_items):
    pine, _ = catalog_items
    target = _project(db_session, [{"material_id": pine.id, "quantity": 2}], title="Target")
    other = _project(db_session, [{"material_id": pine.id, "quantity": 2}], title="Other")

    update_material(db_session, pine.id, {"price_per_unit": "10.00"})
    refreshed = recalculate_cost(db_session, target.id)

    assert str(refreshed.estimated_cost) == "20.00"
    assert str(refreshed.materials[0].unit_price) == "10.00"
    untouched = get_project(db_session, other.id)
    assert str(untouched.estimated_cost) == "17.98"
    assert str(untouched.materials[0].unit_price) == "8.99"


def test_recalculate_cost_with_retired_material(db_session, catalog_items):
    pine, _ = catalog_items
    project = _project(db_session, [{"material_id": pine.id, "quantity": 2}])
    update_material(db_session, pine.id, {"is_active": False})

    with pytest.raises(MaterialNotFound):
        recalculate_cost(db_session, project.id)

    assert str(get_project(db_session, project.id).estimated_cost) == "17.98"


def test_update_project_replaces_materials(db_session, catalog_items):
    pine, arduino = catalog_items
    project = _project(db_session, [{"material_id": pine.id, "quantity": 2}])

    updated = update_project(
        db_session,
        project.id,
        {"title": "Smart Birdhouse", "materials": [{"material_id": arduino.id, "quantity": 1}]},
    )

    assert updated.title == "Smart Birdhouse"
    assert [line.material_id for line in updated.materials] == [arduino.id]
    assert str(updated.estimated_cost) == "24.99"
    count = db_session.execute(
        select(func.count(ProjectMaterial.id)).where(ProjectMaterial.project_id == project.id)
    ).scalar_one()
    assert count == 1


def test_update_project_bad_material_keeps_old_lines(db_session, catalog_items):
    pine, _ = catalog_items
    project = _project(db_session, [{"material_id": pine.id, "quantity": 2}])

    with pytest.raises(MaterialNotFound):
        update_project(db_session, project.id, {"materials": [{"material_id": 999, "quantity": 1}]})

    kept = get_project(db_session, project.id)
    assert [line.material_id for line in kept.materials] == [pine.id]
    assert str(kept.estimated_cost) == "17.98"


def test_update_project_status_and_noop(db_session):
    project = _project(db_session)

    with pytest.raises(NoOpUpdate):
        update_project(db_session, project.id, {})

    completed = update_project(db_session, project.id, {"status": "completed", "actual_cost": "19.50"})
    assert completed.status == "completed"
    assert completed.completed_at is not None
    assert str(completed.actual_cost) == "19.50"


def test_list_projects_filters(db_session):
    _project(db_session, title="Birdhouse", tags=["outdoor"])
    _project(db_session, title="LED Controller", difficulty="intermediate", category="electronics", estimated_hours=12)
    lamp = _project(db_session, title="Desk Lamp", category="electronics", estimated_hours=3)
    update_project(db_session, lamp.id, {"status": "paused"})

    items, total = list_projects(db_session)
    assert total == 3
    assert [item.title for item in items] == ["Desk Lamp", "LED Controller", "Birdhouse"]

    items, _ = list_projects(db_session, category="electronics", max_hours=5)
    assert [item.title for item in items] == ["Desk Lamp"]

    items, _ = list_projects(db_session, status="paused")
    assert [item.title for item in items] == ["Desk Lamp"]

    items, _ = list_projects(db_session, tags=["outdoor"])
    assert [item.title for item in items] == ["Birdhouse"]

    items, _ = list_projects(db_session, query="led")
    assert [item.title for item in items] == ["LED Controller"]


def test_list_startable_projects(db_session, catalog_items):
    pine, arduino = catalog_items
    ready = _project(db_session, [{"material_id": pine.id, "quantity": 5}], title="Ready")
    _project(db_session, [{"material_id": arduino.id, "quantity": 2}], title="Short")
    _project(db_session, title="Empty")
    # Two lines of the same material are summed before comparing to stock.
    _project(
        db_session,
        [{"material_id": pine.id, "quantity": 6}, {"material_id": pine.id, "quantity": 6}],
        title="Doubled",
    )
    started = _project(db_session, [{"material_id": pine.id, "quantity": 1}], title="Started")
    start_project(db_session, started.id)

    assert [project.id for project in list_startable_projects(db_session)] == [ready.id]

    adjust_stock(db_session, pine.id, -5, "Used elsewhere")
    assert list_startable_projects(db_session) == []
