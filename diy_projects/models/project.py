"""SQLAlchemy models owned by the project ledger."""

from __future__ import annotations

from sqlalchemy import JSON, CheckConstraint, Column, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from ..core.choices import (
    PROJECT_CATEGORY_CHOICES,
    PROJECT_DIFFICULTY_CHOICES,
    PROJECT_STATUS_CHOICES,
    STATUS_PLANNING,
    sql_in,
)
from ..db.session import Base


class Project(Base):
    """A DIY undertaking with its instructions and priced material line items."""

    __tablename__ = "projects"
    __table_args__ = (
        CheckConstraint(sql_in("difficulty", PROJECT_DIFFICULTY_CHOICES), name="ck_projects_difficulty"),
        CheckConstraint(sql_in("category", PROJECT_CATEGORY_CHOICES), name="ck_projects_category"),
        CheckConstraint(sql_in("status", PROJECT_STATUS_CHOICES), name="ck_projects_status"),
        CheckConstraint("estimated_hours > 0", name="ck_projects_hours_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    difficulty = Column(String(20), nullable=False, index=True)
    category = Column(String(30), nullable=False, index=True)
    estimated_hours = Column(Integer, nullable=False)
    estimated_cost = Column(Numeric(10, 2), nullable=False, default=0)
    actual_cost = Column(Numeric(10, 2), nullable=True)
    status = Column(String(20), nullable=False, default=STATUS_PLANNING, index=True)
    instructions = Column(JSON, nullable=False, default=list)
    image_urls = Column(JSON, nullable=False, default=list)
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(Text, nullable=False, index=True)
    updated_at = Column(Text, nullable=False)
    completed_at = Column(Text, nullable=True)

    materials = relationship(
        "ProjectMaterial",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ProjectMaterial.id",
    )


class ProjectMaterial(Base):
    """A line item snapshotting a material's price when it was added or re-priced.

    ``material_id`` points into the materials catalog, which this component does
    not own, so it carries no foreign key.
    """

    __tablename__ = "project_materials"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_project_materials_quantity_positive"),)

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    material_id = Column(Integer, nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)

    project = relationship("Project", back_populates="materials")


__all__ = ["Project", "ProjectMaterial"]
