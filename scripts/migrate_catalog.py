#!/usr/bin/env python3
"""
Migrate the local JSON catalog and user overlay into Supabase.

Imports data/wine-catalog.json as catalog wines, then the overlay file
(user-added wines, deletions, consumption history, notes and purchase
dates). Wines are upserted on id and consumption events keep their ids,
so the script can be re-run safely.

Usage:
    python scripts/migrate_catalog.py
    python scripts/migrate_catalog.py --init-db
    python scripts/migrate_catalog.py --catalog my-wines.json --overlay my-data.json
"""

import sys
import argparse
from pathlib import Path

from rich.console import Console

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cellarbook import wines_repo
from cellarbook.constants import FilePaths
from cellarbook.database import init_database
from cellarbook.error_handling import CellarError
from cellarbook.normalizer import load_catalog_file
from cellarbook.overlay import OverlayStore
from cellarbook.supabase_session import get_supabase_client

console = Console()


def migrate_overlay(sb, overlay_path: Path, batch_size: int) -> dict:
    """Push overlay sections to Supabase; returns counts per section."""
    store = OverlayStore(overlay_path, autosave=False)
    overlay = store.overlay
    counts = {'added': 0, 'deleted': 0, 'consumption': 0, 'notes': 0, 'purchase_dates': 0}

    if overlay.added_wines:
        counts['added'] = wines_repo.bulk_import_wines(
            sb, overlay.added_wines, is_user_added=True, batch_size=batch_size
        )

    for wine_id in overlay.deleted_wines:
        wines_repo.delete_wine(sb, wine_id)
        counts['deleted'] += 1

    for wine_id, events in overlay.consumption_history.items():
        for event in events:
            wines_repo.add_consumption(sb, wine_id, event.date, event.notes, event_id=event.id)
            counts['consumption'] += 1

    for wine_id, note in overlay.user_notes.items():
        wines_repo.save_user_note(sb, wine_id, note)
        counts['notes'] += 1

    for wine_id, purchase_date in overlay.purchase_dates.items():
        wines_repo.save_purchase_date(sb, wine_id, purchase_date)
        counts['purchase_dates'] += 1

    return counts


def migrate(catalog_path: Path, overlay_path: Path, init_db: bool, batch_size: int):
    console.print("\n[bold magenta]🍷 Cellarbook Migration[/bold magenta]\n")

    if init_db:
        console.print("[dim]📋 Initializing database schema...[/dim]")
        init_database()
        console.print("[green]✓ Database schema ready[/green]")

    sb = get_supabase_client()

    if catalog_path.exists():
        catalog = load_catalog_file(catalog_path)
        written = wines_repo.bulk_import_wines(sb, catalog, is_user_added=False, batch_size=batch_size)
        console.print(f"[green]✓ Imported {written} catalog wines from {catalog_path}[/green]")
    else:
        console.print(f"[yellow]⚠ No catalog at {catalog_path}, skipping[/yellow]")

    if overlay_path.exists():
        counts = migrate_overlay(sb, overlay_path, batch_size)
        console.print(f"[green]✓ Imported overlay from {overlay_path}[/green]")
        for section, count in counts.items():
            console.print(f"   {section}: {count}")
    else:
        console.print(f"[yellow]⚠ No overlay at {overlay_path}, skipping[/yellow]")

    console.print("\n🎉 Migration complete!")
    console.print("\n💡 Next: streamlit run app.py")


def main():
    parser = argparse.ArgumentParser(
        description="Import a JSON catalog and user overlay into Supabase"
    )
    parser.add_argument(
        '--catalog', '-c',
        type=Path,
        default=Path(FilePaths.CATALOG_JSON),
        help='Catalog JSON file (list of camelCase wines)'
    )
    parser.add_argument(
        '--overlay', '-o',
        type=Path,
        default=Path(FilePaths.OVERLAY_JSON),
        help='User overlay JSON file'
    )
    parser.add_argument(
        '--init-db',
        action='store_true',
        help='Create tables first (needs DATABASE_URL)'
    )
    parser.add_argument(
        '--batch-size',
        type=int,
        default=200,
        help='Wines per upsert request'
    )
    args = parser.parse_args()

    try:
        migrate(args.catalog, args.overlay, args.init_db, args.batch_size)
    except CellarError as e:
        console.print(f"[red]✗ Migration failed: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
