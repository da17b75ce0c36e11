"""
Environment loading and parsing helpers.

Values come from the process environment after loading ``.env`` and then
``.env.local`` from the working directory (``.env.local`` wins).
"""

import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional

from dotenv import load_dotenv

logger = logging.getLogger("settings.env")

TRUE_VALUES = ("true", "1", "yes")


class MissingEnvironmentError(ValueError):
    """Raised when required environment variables are missing or blank."""

    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__(
            f"Missing required environment variables: {', '.join(missing)}. "
            f"Create a .env file (you can copy from .env.example) and set these values."
        )


def load_env(base_dir: Optional[Path] = None) -> None:
    """Load .env, then .env.local on top of it."""
    base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
    load_dotenv(base_dir / ".env")
    load_dotenv(base_dir / ".env.local", override=True)


def require_env(keys: Iterable[str]) -> None:
    """
    Check that every key is set to a non-blank value.

    Raises:
        MissingEnvironmentError: Listing all missing keys
    """
    missing = [k for k in keys if not os.getenv(k, "").strip()]
    if missing:
        logger.error(f"[Config] Missing required environment variables: {', '.join(missing)}")
        raise MissingEnvironmentError(missing)


def _clean(key: str) -> Optional[str]:
    """Read a variable with trailing '# comment' and whitespace stripped."""
    value = os.environ.get(key)
    if value is None:
        return None
    if "#" in value:
        value = value.split("#")[0]
    value = value.strip()
    return value or None


def env_flag(key: str, default: bool = False) -> bool:
    value = _clean(key)
    if value is None:
        return default
    return value.lower() in TRUE_VALUES


def env_int(key: str, default: int) -> int:
    value = _clean(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"[Config] {key}={value!r} is not an integer, using {default}")
        return default


def env_float(key: str, default: float) -> float:
    value = _clean(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"[Config] {key}={value!r} is not a number, using {default}")
        return default
