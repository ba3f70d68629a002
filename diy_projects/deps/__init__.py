from .auth import require_api_key
from .catalog import get_materials_catalog

__all__ = ["get_materials_catalog", "require_api_key"]
