import re
from datetime import date
from pathlib import Path

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def ensure_dir(path: Path) -> Path:
    """Create ``path`` and its parents if missing, then return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def dated_directory(root: Path, day: date | None = None) -> Path:
    """Return the ``YYYYMMDD`` sub-directory of ``root`` for ``day`` (today by default)."""
    day = day or date.today()
    return root / day.strftime("%Y%m%d")


def safe_filename_component(value: str, fallback: str = "file") -> str:
    """
    Make a string usable inside a file name.

    Args:
        value (str): raw value, e.g. a job id or a remote file name
        fallback (str): returned when nothing usable is left
    """
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", value).strip("._")
    return cleaned or fallback
