"""Seed demo client configurations.

Creates one simulation client per bundled POS adapter (c1 -> fudo,
c2 -> bistrosoft) so a fresh database can be synced right away.
"""

import argparse
import sys
from pathlib import Path
from typing import List

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.config import get_settings
from core.models.refs import ClientConfig
from core.storage.clients import ClientConfigStore
from core.storage.state_store import create_state_store


DEMO_CLIENTS = [
    ClientConfig(
        client_id="c1",
        name="Cafe Palermo",
        pos_type="fudo",
        simulation_mode=True,
        sync_frequency_minutes=60,
        pos_settings={"api_key": "demo-fudo-key", "store_id": "store-001"},
    ),
    ClientConfig(
        client_id="c2",
        name="Panaderia Belgrano",
        pos_type="bistrosoft",
        simulation_mode=True,
        sync_frequency_minutes=30,
        pos_settings={"usuario": "demo", "password": "demo", "empresa_id": "emp-001"},
    ),
]


def seed(db_path: Path, overwrite: bool = False) -> List[str]:
    """Write the demo clients. Returns the ids that were written."""
    clients = ClientConfigStore(create_state_store(db_path))
    written = []
    for config in DEMO_CLIENTS:
        if clients.get(config.client_id) is not None and not overwrite:
            continue
        clients.save(config)
        written.append(config.client_id)
    return written


def main():
    """Entry point."""
    parser = argparse.ArgumentParser(description="Seed demo POS sync clients")
    parser.add_argument("--db", type=Path, default=get_settings().db_path, help="SQLite state database")
    parser.add_argument("--overwrite", action="store_true", help="Replace existing client configs")
    args = parser.parse_args()

    written = seed(args.db, overwrite=args.overwrite)
    if written:
        print(f"Seeded clients: {', '.join(written)} -> {args.db}")
    else:
        print("Nothing to seed (clients already exist; use --overwrite)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
