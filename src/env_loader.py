from __future__ import annotations

from pathlib import Path
from typing import Dict

from dotenv import dotenv_values, load_dotenv


def read_env_file(path: str | Path) -> Dict[str, str]:
    """
    Parse a dotenv-style file into a dict without touching os.environ.

    Cloud credential files (for example the Azure one holding
    AZURE_STORAGE_ACCOUNT_ACCESS_KEY) are read this way so that each
    verification call sees its own values instead of mutating the process
    environment. Keys without a value are dropped and `${VAR}` references
    are kept literally.

    OSError propagates when the file cannot be opened; UnicodeDecodeError
    when it is not UTF-8.
    """
    with open(path, encoding="utf-8") as stream:
        parsed = dotenv_values(stream=stream, interpolate=False)
    return {key: value for key, value in parsed.items() if value is not None}


def load_dotenv_if_present(path: str | None = None) -> None:
    """
    Lightweight .env loader used for local development.

    - Reads KEY=VALUE pairs from the given file (default: ".env" in CWD).
    - Does *not* overwrite variables that are already present in os.environ.

    In CI the suite settings are usually exported directly, so the file does
    not need to exist and is simply ignored.
    """
    env_path = Path(path or ".env")
    if not env_path.exists():
        return

    load_dotenv(env_path, override=False, interpolate=False)


__all__ = ["read_env_file", "load_dotenv_if_present"]
