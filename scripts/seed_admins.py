"""
Holly Transportation - Administrator Seed Script

Creates or promotes the administrators listed in SEED_ADMINS /
SEED_ADMINS_FILE for the configured trust mode. Safe to re-run.

Usage:
    python -m scripts.seed_admins
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from holly.config import settings
from holly.auth.bootstrap import load_seed_entries, seed_administrators
from holly.auth.database import get_engine, get_session_factory, init_db


async def main() -> int:
    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)

    entries = load_seed_entries(settings)
    if not entries:
        print("No administrators configured (set SEED_ADMINS or SEED_ADMINS_FILE).")
        return 0

    db = get_session_factory(engine)()
    try:
        changed = await seed_administrators(db, settings)
    finally:
        db.close()
        engine.dispose()

    print(f"Trust mode: {settings.AUTH_TRUST_MODE.value}")
    print(f"Seed entries: {len(entries)}")
    print(f"Created or promoted: {changed}")
    return changed


if __name__ == "__main__":
    print("=" * 50)
    print("Holly Transportation - Admin Seed Script")
    print("=" * 50)

    asyncio.run(main())

    print()
    print("Done!")
