import logging
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from models import Crop

logger = logging.getLogger(__name__)

_crops = TypeAdapter(list[Crop])


def load_crops(path: Path) -> list[Crop]:
    """Tracked crops from a JSON list; missing or unreadable files give an empty registry."""
    path = Path(path)
    if not path.exists():
        return []
    try:
        return _crops.validate_json(path.read_bytes())
    except (ValidationError, ValueError, OSError) as e:
        logger.warning(f"Could not read crop registry {path}: {e}")
        return []


def crop_stats(crops: list[Crop]) -> dict:
    by_type: dict[str, int] = {}
    for c in crops:
        by_type[c.type] = by_type.get(c.type, 0) + 1
    return {"total": len(crops), "by_type": by_type}
