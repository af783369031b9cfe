"""Sample vendor payloads used by simulation-mode syncs."""

import asyncio
import json
from pathlib import Path
from typing import Any, List, Optional

from core.errors import ValidationFailure, VendorFetchFailure

FIXTURES_DIR = Path(__file__).resolve().parent


def list_fixtures(fixtures_dir: Optional[Path] = None) -> List[str]:
    base = Path(fixtures_dir) if fixtures_dir else FIXTURES_DIR
    return sorted(p.name for p in base.glob("*.sample.json"))


def _read_fixture(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


async def load_fixture(name: str, fixtures_dir: Optional[Path] = None) -> Any:
    """Load a fixture payload without blocking the event loop.

    Raises:
        VendorFetchFailure: Fixture file does not exist (not retryable)
        ValidationFailure: Fixture is not valid JSON
    """
    base = Path(fixtures_dir) if fixtures_dir else FIXTURES_DIR
    path = base / name
    if not path.exists():
        raise VendorFetchFailure(f"Mock data file not found: {name}", retryable=False)
    try:
        return await asyncio.to_thread(_read_fixture, path)
    except json.JSONDecodeError as e:
        raise ValidationFailure(f"Fixture {name} is not valid JSON: {e}") from e
