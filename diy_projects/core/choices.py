"""Enumerated values shared by the models, schemas and CRUD helpers."""

MATERIAL_CATEGORY_CHOICES = (
    "wood",
    "metal",
    "plastic",
    "electronics",
    "hardware",
    "tools",
    "fabric",
    "glass",
    "stone",
    "chemicals",
    "other",
)

MATERIAL_UNIT_CHOICES = (
    "piece",
    "meter",
    "liter",
    "kilogram",
    "gram",
    "square_meter",
    "cubic_meter",
    "foot",
    "inch",
    "gallon",
    "pound",
)

PROJECT_DIFFICULTY_CHOICES = ("beginner", "intermediate", "advanced", "expert")

PROJECT_CATEGORY_CHOICES = (
    "woodworking",
    "electronics",
    "gardening",
    "home_improvement",
    "crafts",
    "automotive",
    "other",
)

STATUS_PLANNING = "planning"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_PAUSED = "paused"
STATUS_CANCELLED = "cancelled"

PROJECT_STATUS_CHOICES = (
    STATUS_PLANNING,
    STATUS_IN_PROGRESS,
    STATUS_COMPLETED,
    STATUS_PAUSED,
    STATUS_CANCELLED,
)


def sql_in(column: str, choices: tuple[str, ...]) -> str:
    """Render a CHECK constraint body restricting ``column`` to ``choices``."""

    quoted = ", ".join(f"'{choice}'" for choice in choices)
    return f"{column} IN ({quoted})"


def normalize_choice(value: str | None) -> str:
    """Return a trimmed, lowercase value for comparison against the choice tuples."""

    return (value or "").strip().lower()


__all__ = [
    "MATERIAL_CATEGORY_CHOICES",
    "MATERIAL_UNIT_CHOICES",
    "PROJECT_CATEGORY_CHOICES",
    "PROJECT_DIFFICULTY_CHOICES",
    "PROJECT_STATUS_CHOICES",
    "STATUS_CANCELLED",
    "STATUS_COMPLETED",
    "STATUS_IN_PROGRESS",
    "STATUS_PAUSED",
    "STATUS_PLANNING",
    "normalize_choice",
    "sql_in",
]
