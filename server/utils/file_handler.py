# utils/file_handler.py

"""
File handling utilities
"""

import json
import os
from pathlib import Path
from typing import Dict, Any, Optional


def safe_filename(name: str, limit: int = 64) -> str:
    """Reduce an identifier to characters that are safe in a file name"""
    cleaned = "".join(c for c in name if c.isalnum() or c in ('-', '_'))[:limit]
    return cleaned or "unnamed"


def write_json(filepath: Path, data: Dict[str, Any]) -> Path:
    """Write JSON through a temp file so readers never see a partial document"""
    filepath.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = filepath.with_suffix(filepath.suffix + ".tmp")

    with open(tmp_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)

    os.replace(tmp_path, filepath)
    return filepath


def read_json(filepath: Path) -> Optional[Dict[str, Any]]:
    """Read a JSON document, None if the file does not exist"""
    if not filepath.exists():
        return None

    with open(filepath, 'r', encoding='utf-8') as f:
        return json.load(f)


def remove_file(filepath: Path) -> bool:
    try:
        filepath.unlink()
        return True
    except FileNotFoundError:
        return False
