"""Load a small sample catalog and a handful of projects into an empty database.

Runs automatically at startup when ``SEED_SAMPLE_DATA`` is enabled, or by hand::

    python -m diy_projects.db.seed --db-url sqlite:///./diy_projects.db
"""

from __future__ import annotations

import argparse
import logging
import sys

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker

from ..core.choices import STATUS_COMPLETED, STATUS_IN_PROGRESS
from ..core.logging import configure_logging
from ..crud.materials import create_material
from ..crud.projects import create_project, update_project
from ..models.material import Material
from ..models.project import Project
from .session import SessionLocal, enable_sqlite_foreign_keys, init_db

logger = logging.getLogger(__name__)

SAMPLE_MATERIALS = [
    {
        "name": "Pine Wood Board 2x4x8",
        "description": "Standard pine lumber, kiln-dried, perfect for construction and DIY projects",
        "category": "wood",
        "unit": "piece",
        "price_per_unit": "8.99",
        "stock_quantity": 50,
        "min_stock_level": 10,
        "supplier": "Home Depot",
        "supplier_part_number": "HD-PINE-2X4X8",
        "specifications": {"length_ft": 8, "width_in": 3.5, "thickness_in": 1.5, "grade": "construction"},
        "tags": ["lumber", "construction", "pine", "framing"],
    },
    {
        "name": "Oak Plywood 4x8x0.75",
        "description": "Premium oak plywood sheet for furniture and cabinetry",
        "category": "wood",
        "unit": "piece",
        "price_per_unit": "89.99",
        "stock_quantity": 15,
        "min_stock_level": 3,
        "supplier": "Lowes",
        "supplier_part_number": "LW-OAK-PLY-48-75",
        "specifications": {"length_ft": 8, "width_ft": 4, "thickness_in": 0.75, "grade": "furniture"},
        "tags": ["plywood", "oak", "furniture", "cabinetry"],
    },
    {
        "name": 'Wood Screws 3" Galvanized',
        "description": "Galvanized wood screws for outdoor projects, 100 count",
        "category": "hardware",
        "unit": "piece",
        "price_per_unit": "12.49",
        "stock_quantity": 25,
        "min_stock_level": 5,
        "supplier": "Lowes",
        "supplier_part_number": "LW-SCREW-3IN-GAL",
        "specifications": {"length_in": 3, "thread_type": "wood", "coating": "galvanized", "count": 100},
        "tags": ["screws", "galvanized", "outdoor", "fasteners"],
    },
    {
        "name": 'Hinges Heavy Duty 4"',
        "description": "Heavy duty door hinges, stainless steel, set of 2",
        "category": "hardware",
        "unit": "piece",
        "price_per_unit": "24.99",
        "stock_quantity": 30,
        "min_stock_level": 8,
        "supplier": "Home Depot",
        "supplier_part_number": "HD-HINGE-4IN-SS",
        "specifications": {"size_in": 4, "material": "stainless_steel", "weight_capacity_lbs": 150, "count": 2},
        "tags": ["hinges", "stainless-steel", "heavy-duty", "door"],
    },
    {
        "name": "Arduino Uno R3",
        "description": "Official Arduino Uno R3 microcontroller board with USB cable",
        "category": "electronics",
        "unit": "piece",
        "price_per_unit": "24.99",
        "stock_quantity": 20,
        "min_stock_level": 5,
        "supplier": "Arduino Store",
        "supplier_part_number": "ARD-UNO-R3",
        "specifications": {"microcontroller": "ATmega328P", "operating_voltage": "5V", "digital_pins": 14},
        "tags": ["arduino", "microcontroller", "development", "prototyping"],
    },
    {
        "name": "LED Strip RGB 5m",
        "description": "Color-changing LED strip with remote control, 300 LEDs",
        "category": "electronics",
        "unit": "meter",
        "price_per_unit": "29.99",
        "stock_quantity": 12,
        "min_stock_level": 3,
        "supplier": "Amazon",
        "supplier_part_number": "AMZ-LED-RGB-5M",
        "specifications": {"length_m": 5, "led_count": 300, "voltage": "12V", "waterproof": "IP65"},
        "tags": ["led", "rgb", "lighting", "smart-home"],
    },
    {
        "name": "Breadboard 830 Points",
        "description": "Solderless breadboard for prototyping electronic circuits",
        "category": "electronics",
        "unit": "piece",
        "price_per_unit": "8.99",
        "stock_quantity": 35,
        "min_stock_level": 10,
        "supplier": "Adafruit",
        "supplier_part_number": "ADA-BB-830",
        "specifications": {"tie_points": 830, "size": "full", "color": "white", "material": "ABS"},
        "tags": ["breadboard", "prototyping", "solderless", "circuits"],
    },
    {
        "name": "Aluminum Angle 1x1x8",
        "description": "Aluminum angle bar for structural projects",
        "category": "metal",
        "unit": "piece",
        "price_per_unit": "15.99",
        "stock_quantity": 40,
        "min_stock_level": 8,
        "supplier": "Metal Supermarket",
        "supplier_part_number": "MS-AL-ANGLE-1X1X8",
        "specifications": {"material": "aluminum", "dimensions": "1x1x8", "alloy": "6061-T6", "finish": "mill"},
        "tags": ["aluminum", "angle", "structural", "fabrication"],
    },
    {
        "name": "Drill Bit Set 10pc",
        "description": 'High-speed steel drill bit set, 1/16" to 1/2"',
        "category": "tools",
        "unit": "piece",
        "price_per_unit": "19.99",
        "stock_quantity": 18,
        "min_stock_level": 3,
        "supplier": "DeWalt",
        "supplier_part_number": "DW-DRILLBIT-10PC",
        "specifications": {"material": "HSS", "count": 10, "size_range": "1/16 to 1/2 inch"},
        "tags": ["drill-bits", "hss", "set", "precision"],
    },
    {
        "name": "Wood Stain Dark Oak",
        "description": "Premium penetrating wood stain for interior projects",
        "category": "chemicals",
        "unit": "liter",
        "price_per_unit": "18.99",
        "stock_quantity": 22,
        "min_stock_level": 4,
        "supplier": "Sherwin Williams",
        "supplier_part_number": "SW-STAIN-DARK-OAK",
        "specifications": {"color": "dark_oak", "type": "penetrating", "coverage_sqft": 150},
        "tags": ["stain", "wood-finish", "dark-oak", "interior"],
    },
    {
        "name": "Polyurethane Clear Satin",
        "description": "Clear protective finish for wood projects",
        "category": "chemicals",
        "unit": "liter",
        "price_per_unit": "22.99",
        "stock_quantity": 18,
        "min_stock_level": 3,
        "supplier": "Minwax",
        "supplier_part_number": "MW-POLY-CLEAR-SATIN",
        "specifications": {"finish": "satin", "type": "polyurethane", "coverage_sqft": 125},
        "tags": ["polyurethane", "clear", "protective", "satin"],
    },
]

# Line items name their material so the sample does not depend on generated ids.
SAMPLE_PROJECTS = [
    {
        "title": "Beginner Birdhouse",
        "description": "A simple birdhouse perfect for first-time woodworkers",
        "difficulty": "beginner",
        "category": "woodworking",
        "estimated_hours": 4,
        "status": STATUS_COMPLETED,
        "instructions": [
            "Cut wood pieces to size",
            "Sand all surfaces",
            "Assemble with wood glue and screws",
            "Add roof and entrance hole",
            "Apply wood stain",
        ],
        "tags": ["beginner-friendly", "outdoor", "wildlife", "weekend-project"],
        "materials": [
            ("Pine Wood Board 2x4x8", 2, "Pine boards for main structure"),
            ('Wood Screws 3" Galvanized', 1, "Wood screws for assembly"),
        ],
    },
    {
        "title": "Smart Home LED Controller",
        "description": "Arduino-based controller for RGB LED strips with mobile app",
        "difficulty": "intermediate",
        "category": "electronics",
        "estimated_hours": 12,
        "status": STATUS_IN_PROGRESS,
        "instructions": [
            "Set up Arduino development environment",
            "Connect RGB LED strip to Arduino",
            "Program color control logic",
            "Create mobile app interface",
            "Test and debug",
        ],
        "tags": ["smart-home", "arduino", "led", "mobile-app", "automation"],
        "materials": [
            ("Arduino Uno R3", 1, "Arduino Uno R3 - main controller"),
            ("LED Strip RGB 5m", 1, "RGB LED strip - 5 meters"),
            ("Breadboard 830 Points", 2, "Breadboards for prototyping"),
        ],
    },
    {
        "title": "Garden Raised Bed",
        "description": "Custom raised bed for vegetable gardening",
        "difficulty": "beginner",
        "category": "gardening",
        "estimated_hours": 6,
        "instructions": [
            "Measure garden space",
            "Cut lumber to size",
            "Assemble frame with corner brackets",
            "Add hardware cloth bottom",
            "Fill with soil mix",
        ],
        "tags": ["gardening", "vegetables", "outdoor", "sustainable"],
        "materials": [
            ("Pine Wood Board 2x4x8", 4, "Pine lumber for frame construction"),
            ('Wood Screws 3" Galvanized', 2, "Screws and hardware"),
        ],
    },
    {
        "title": "Wooden Coffee Table",
        "description": "Modern minimalist coffee table with storage",
        "difficulty": "intermediate",
        "category": "woodworking",
        "estimated_hours": 16,
        "instructions": [
            "Design table dimensions",
            "Cut wood pieces",
            "Create storage compartment",
            "Sand and finish",
            "Assemble with joinery",
        ],
        "tags": ["furniture", "modern", "storage", "living-room"],
        "materials": [
            ("Oak Plywood 4x8x0.75", 2, "Oak plywood for tabletop and storage"),
            ("Polyurethane Clear Satin", 1, "Polyurethane finish"),
        ],
    },
    {
        "title": "IoT Weather Station",
        "description": "WiFi-enabled weather monitoring station with web dashboard",
        "difficulty": "advanced",
        "category": "electronics",
        "estimated_hours": 20,
        "instructions": [
            "Design sensor layout",
            "Set up microcontroller",
            "Program sensor readings",
            "Create web dashboard",
            "Install weatherproof housing",
        ],
        "tags": ["iot", "weather", "sensors", "web-dashboard", "outdoor"],
        "materials": [
            ("Arduino Uno R3", 1, "Arduino for sensor control"),
            ("Breadboard 830 Points", 1, "Breadboard for connections"),
        ],
    },
]


def seed_sample_data(db: Session) -> bool:
    """Populate an empty database. Returns ``False`` when data already exists."""

    existing = db.scalar(select(func.count(Material.id))) + db.scalar(select(func.count(Project.id)))
    if existing:
        logger.info("seed.skipped", extra={"extra_data": {"existing_rows": existing}})
        return False

    material_ids: dict[str, int] = {}
    for payload in SAMPLE_MATERIALS:
        material = create_material(db, dict(payload))
        material_ids[material.name] = material.id

    for sample in SAMPLE_PROJECTS:
        payload = {key: value for key, value in sample.items() if key not in {"materials", "status"}}
        payload["materials"] = [
            {"material_id": material_ids[name], "quantity": quantity, "notes": notes}
            for name, quantity, notes in sample["materials"]
        ]
        project = create_project(db, payload)
        # Sample statuses are set directly; seeding never reserves stock.
        if sample.get("status"):
            update_project(db, project.id, {"status": sample["status"]})

    logger.info(
        "seed.completed",
        extra={"extra_data": {"materials": len(SAMPLE_MATERIALS), "projects": len(SAMPLE_PROJECTS)}},
    )
    return True


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Seed the DIY projects database with sample materials and projects.")
    p.add_argument("--db-url", default=None, help="Database URL (defaults to the configured DB_URL).")
    return p.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging()
    if args.db_url:
        connect_args = {"check_same_thread": False} if args.db_url.startswith("sqlite") else {}
        target = create_engine(args.db_url, connect_args=connect_args)
        enable_sqlite_foreign_keys(target)
        factory = sessionmaker(autocommit=False, autoflush=False, bind=target)
    else:
        target = None
        factory = SessionLocal
    init_db(target)
    db = factory()
    try:
        created = seed_sample_data(db)
    finally:
        db.close()
    print("seeded" if created else "database not empty, nothing to do")
    return 0


if __name__ == "__main__":
    sys.exit(main())
