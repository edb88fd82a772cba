"""
Small helpers shared by the engine and the bundled plugins.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml


def strip_extension(filename: str) -> str:
    """Remove the file extension from *filename* (``a/b.md`` → ``a/b``)."""
    return re.sub(r"(.+)\.[^./]+$", r"\1", filename)


def slugify(text: str) -> str:
    """Lowercase, ASCII-only, dash-separated version of *text*."""
    normalized = unicodedata.normalize("NFKD", str(text)).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^\w\s-]", "", normalized).strip().lower()
    return re.sub(r"[-\s_]+", "-", slug)


def rfc822(date: datetime) -> str:
    """RFC 822 representation of *date* (naive dates are taken as local time)."""
    if date.tzinfo is None:
        date = date.astimezone()
    return date.strftime("%a, %d %b %Y %H:%M:%S %z")


def read_data_file(path: Path) -> Any:
    """Parse a JSON or YAML file.  JSON is valid YAML, so one parser covers both."""
    try:
        return yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValueError(f"parsing {path.name}: {e}") from e
