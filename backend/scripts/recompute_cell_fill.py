import argparse
import asyncio
import sys
from pathlib import Path

"""
Recompute cells.current_fill from inventory_records and report drift.

Run:
- inside backend/: `python scripts/recompute_cell_fill.py [--dry-run]`
- from repo root: `python backend/scripts/recompute_cell_fill.py [--dry-run]`
"""

# Allow running from repo root by ensuring `backend/` is on sys.path
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from db.database import engine  # noqa: E402
from db.migrations import recompute_all_fills  # noqa: E402


async def main(dry_run: bool) -> None:
    drifted = await recompute_all_fills(engine, dry_run=dry_run)
    if not drifted:
        print("All cells consistent.")
    else:
        verb = "would fix" if dry_run else "fixed"
        print(f"{verb} {len(drifted)} cell(s):")
        for cell_id, stored, actual in drifted:
            print(f"  cell {cell_id}: {stored} -> {actual}")
    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("--dry-run", action="store_true", help="Report drift without writing")
    args = parser.parse_args()

    asyncio.run(main(dry_run=bool(args.dry_run)))
