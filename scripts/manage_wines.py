#!/usr/bin/env python3
"""
Cellar Browsing Utility

Search, filter, sort and compare wines in a JSON catalog from the
terminal. Personal data (consumption, added and deleted wines) comes
from the overlay file when it exists.
"""

import sys
import argparse
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cellarbook.catalog_query import (
    CatalogQuery,
    collection_stats,
    extract_filter_facets,
    run_query,
)
from cellarbook.constants import FilePaths, SortOption
from cellarbook.error_handling import StorageError
from cellarbook.normalizer import load_catalog_file, wines_to_frame
from cellarbook.overlay import OverlayStore, merge_collection
from cellarbook.schema import Filters
from cellarbook.similarity import SimilarityEngine

console = Console()

FILTER_ARGS = [
    'country', 'region', 'wine_type', 'vintage', 'body',
    'tannin_level', 'acidity_level', 'drink_window_status', 'grape_variety',
]


def load_collection(catalog_path: Path, overlay_path: Path):
    """Catalog merged with the overlay, plus consumed counts."""
    catalog = load_catalog_file(catalog_path)
    if not overlay_path.exists():
        return catalog, {}
    store = OverlayStore(overlay_path, autosave=False)
    return merge_collection(catalog, store.overlay), store.consumed_counts()


def list_wines(wines, counts, query: CatalogQuery, limit: int):
    """Print the query result as a table."""
    results = run_query(wines, query, counts)
    frame = wines_to_frame(results[:limit], counts)

    console.print(f"\n[bold]🍷 {len(results)} of {len(wines)} wines[/bold] · sorted by {query.sort.label}\n")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim", width=12)
    table.add_column("Producer", style="cyan", width=24)
    table.add_column("Wine", width=28)
    table.add_column("Vintage", justify="center", width=8)
    table.add_column("Region", width=18)
    table.add_column("Status", width=14)
    table.add_column("Window", justify="center", width=10)
    table.add_column("Left", justify="right", width=5)

    for row in frame.itertuples(index=False):
        table.add_row(
            str(row.id)[:12],
            row.producer[:24],
            row.name[:28],
            row.vintage,
            row.region[:18],
            row.status,
            row.drink_window,
            str(row.remaining),
        )

    console.print(table)
    if len(results) > limit:
        console.print(f"[dim]... {len(results) - limit} more (use --limit)[/dim]")
    console.print()


def show_facets(wines):
    """Print every filter facet and its values."""
    facets = extract_filter_facets(wines).model_dump()
    for name, values in facets.items():
        title = name.replace('_', ' ').title()
        console.print(f"[bold cyan]{title}[/bold cyan] ({len(values)})")
        console.print(f"  {', '.join(values) if values else '-'}\n")


def show_stats(wines, counts):
    stats = collection_stats(wines, counts)
    lines = [f"Wines with bottles left: {stats.active_wines}", f"Bottles: {stats.total_bottles}", ""]
    for status, count in sorted(stats.status_counts.items(), key=lambda item: -item[1]):
        lines.append(f"  {status}: {count}")
    console.print(Panel("\n".join(lines), title="[bold]📊 Collection[/bold]", border_style="magenta"))


def show_similar(wines, wine_id: str, limit: int):
    engine = SimilarityEngine(wines)
    target = engine.find(wine_id)
    if target is None:
        console.print(f"[red]✗ No wine with id {wine_id}[/red]")
        return

    console.print(f"\n[bold]Wines like {target.display_name}[/bold]\n")
    matches = engine.rank(target, limit=limit)
    if not matches:
        console.print("[yellow]No similar wines found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Score", justify="right", width=6)
    table.add_column("Wine", style="cyan", width=40)
    table.add_column("Why", width=60)
    for match in matches:
        table.add_row(str(match.score), match.wine.display_name, ", ".join(match.match_reasons))
    console.print(table)
    console.print()


def main():
    parser = argparse.ArgumentParser(
        description="Browse a Cellarbook JSON catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --list                          List wines, drink-soon first
  %(prog)s --search barolo                 Search producer, name, grapes...
  %(prog)s --list --country Italy --sort vintage-oldest
  %(prog)s --list --drink-window-status "At Peak"
  %(prog)s --facets                        Show filter values
  %(prog)s --stats                         Bottles and drink-window summary
  %(prog)s --similar 178                   Wines similar to id 178
        """
    )

    parser.add_argument('--catalog', type=Path, default=Path(FilePaths.CATALOG_JSON), help='Catalog JSON file')
    parser.add_argument('--overlay', type=Path, default=Path(FilePaths.OVERLAY_JSON), help='User overlay JSON file')

    parser.add_argument('--list', '-l', action='store_true', help='List wines matching the filters')
    parser.add_argument('--search', '-s', type=str, default='', help='Free-text search (implies --list)')
    parser.add_argument(
        '--sort',
        type=SortOption,
        choices=list(SortOption),
        default=SortOption.DRINK_SOON,
        metavar='ORDER',
        help=f"Sort order: {', '.join(option.value for option in SortOption)}"
    )
    parser.add_argument('--show-finished', action='store_true', help='Include wines with no bottles left')
    parser.add_argument('--limit', type=int, default=50, help='Maximum rows to print')

    for name in FILTER_ARGS:
        parser.add_argument(f"--{name.replace('_', '-')}", type=str, default='', help=f'Filter on {name}')

    parser.add_argument('--facets', '-f', action='store_true', help='Show available filter values')
    parser.add_argument('--stats', action='store_true', help='Show collection summary')
    parser.add_argument('--similar', type=str, metavar='ID', help='Show wines similar to this id')
    parser.add_argument('--top', type=int, default=6, help='Number of similar wines to show')

    args = parser.parse_args()

    console.print("\n[bold magenta]🍷 Cellarbook[/bold magenta]\n")

    try:
        wines, counts = load_collection(args.catalog, args.overlay)
    except StorageError as e:
        console.print(f"[red]✗ {e}[/red]")
        sys.exit(1)

    if args.list or args.search:
        query = CatalogQuery(
            search=args.search,
            filters=Filters(**{name: getattr(args, name) for name in FILTER_ARGS}),
            sort=args.sort,
            show_finished=args.show_finished,
        )
        list_wines(wines, counts, query, args.limit)

    elif args.facets:
        show_facets(wines)

    elif args.stats:
        show_stats(wines, counts)

    elif args.similar:
        show_similar(wines, args.similar, args.top)

    else:
        parser.print_help()


if __name__ == "__main__":
    main()
