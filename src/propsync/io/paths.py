"""Output directory and file path management."""

from datetime import datetime
from pathlib import Path
from typing import Optional

from ..config.settings import settings


def create_output_dir(subdir: Optional[str] = None) -> Path:
    dirpath = settings.output_dir / subdir if subdir else settings.output_dir
    dirpath.mkdir(parents=True, exist_ok=True)
    return dirpath


def default_export_path(workspace_id: str, timestamp: Optional[datetime] = None) -> Path:
    """``<output_dir>/listings_<workspace>_<YYYYmmdd_HHMMSS>.json``"""
    if timestamp is None:
        timestamp = datetime.now()
    filename = f"listings_{workspace_id}_{timestamp.strftime('%Y%m%d_%H%M%S')}.json"
    return create_output_dir() / filename
