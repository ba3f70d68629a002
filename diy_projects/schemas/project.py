"""Pydantic schemas that describe project payloads for the API."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..core.choices import (
    PROJECT_CATEGORY_CHOICES,
    PROJECT_DIFFICULTY_CHOICES,
    PROJECT_STATUS_CHOICES,
)
from .material import check_choice, clean_tags


class ProjectMaterialIn(BaseModel):
    material_id: int
    quantity: int = Field(gt=0)
    notes: Optional[str] = None


class ProjectBase(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    difficulty: str
    category: str
    estimated_hours: int = Field(gt=0)
    instructions: list[str] = Field(default_factory=list)
    image_urls: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    @field_validator("difficulty")
    @classmethod
    def validate_difficulty(cls, value: str) -> str:
        return check_choice(value, PROJECT_DIFFICULTY_CHOICES, "difficulty")

    @field_validator("category")
    @classmethod
    def validate_category(cls, value: str) -> str:
        return check_choice(value, PROJECT_CATEGORY_CHOICES, "category")

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, value: list[str]) -> list[str]:
        return clean_tags(value)


class ProjectCreate(ProjectBase):
    materials: list[ProjectMaterialIn] = Field(default_factory=list)


class ProjectUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    difficulty: Optional[str] = None
    category: Optional[str] = None
    estimated_hours: Optional[int] = Field(default=None, gt=0)
    status: Optional[str] = None
    actual_cost: Optional[Decimal] = Field(default=None, ge=0, max_digits=10)
    materials: Optional[list[ProjectMaterialIn]] = None
    instructions: Optional[list[str]] = None
    image_urls: Optional[list[str]] = None
    tags: Optional[list[str]] = None

    @field_validator("difficulty")
    @classmethod
    def validate_difficulty(cls, value: Optional[str]) -> Optional[str]:
        return check_choice(value, PROJECT_DIFFICULTY_CHOICES, "difficulty")

    @field_validator("category")
    @classmethod
    def validate_category(cls, value: Optional[str]) -> Optional[str]:
        return check_choice(value, PROJECT_CATEGORY_CHOICES, "category")

    @field_validator("status")
    @classmethod
    def validate_status(cls, value: Optional[str]) -> Optional[str]:
        return check_choice(value, PROJECT_STATUS_CHOICES, "status")

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        return clean_tags(value)


class ProjectMaterialOut(BaseModel):
    id: int
    material_id: int
    quantity: int
    unit_price: float
    total_price: float
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class ProjectOut(BaseModel):
    id: int
    title: str
    description: str
    difficulty: str
    category: str
    estimated_hours: int
    estimated_cost: float
    actual_cost: Optional[float] = None
    status: str
    materials: list[ProjectMaterialOut] = Field(default_factory=list)
    instructions: list[str] = Field(default_factory=list)
    image_urls: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    created_at: str
    updated_at: str
    completed_at: Optional[str] = None

    class Config:
        from_attributes = True


class ProjectListResponse(BaseModel):
    projects: list[ProjectOut]
    total: int
    limit: int
    offset: int


class ProjectDeleted(BaseModel):
    success: bool = True
    message: str


class ProjectStats(BaseModel):
    total_projects: int
    projects_by_difficulty: dict[str, int]
    projects_by_status: dict[str, int]
    projects_by_category: dict[str, int]
    average_completion_time: float
    total_estimated_cost: float
    total_actual_cost: float
