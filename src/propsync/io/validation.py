"""Quality checks for portable export documents.

This module provides a `PortableDocumentValidator` class that inspects a
parsed export before it is imported, along with a helper function
`validate_export_file` that loads a file and runs every check. Checks cover
empty or placeholder titles, implausible numeric fields, duplicate titles
and inconsistent inline tags. Results are presented via rich console
messages and aggregated into a summary report.
"""

from __future__ import annotations

from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Set

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..core.errors import ValidationFailure
from ..core.models import ListingPayload, PortableExportDocument
from ..core.normalization import normalize_tag_name, normalize_title
from ..utils.logging import get_logger
from .portable import MergeImportExportService

console = Console()
logger = get_logger(__name__)

PLACEHOLDER_TITLE = ListingPayload.model_fields["title"].default
PLACEHOLDER_LINK = ListingPayload.model_fields["link"].default


class PortableDocumentValidator:
    """
    Validate the content of a portable export document.

    Validators accumulate errors, warnings, and info messages and can
    summarise results after performing checks. If `strict` is enabled,
    warnings are treated as errors when determining overall success.
    """

    def __init__(self, strict: bool = False) -> None:
        self.strict = strict
        self.errors: List[str] = []
        self.warnings: List[str] = []
        self.info: List[str] = []

    def validate_titles(self, document: PortableExportDocument) -> bool:
        """Flag empty and placeholder titles."""
        console.print("\n[cyan]Validating titles...[/cyan]")
        empty = 0
        placeholder = 0
        for i, listing in enumerate(document.listings, start=1):
            if not listing.title.strip():
                empty += 1
                self.errors.append(f"Listing {i} has an empty title")
            elif listing.title == PLACEHOLDER_TITLE:
                placeholder += 1
                self.warnings.append(f"Listing {i} has the placeholder title")
        if empty:
            console.print(f"[red]✗ {empty} listings without title[/red]")
            return False
        if placeholder:
            console.print(f"[yellow]⚠ {placeholder} placeholder titles[/yellow]")
            return not self.strict
        console.print("[green]✓ All titles present[/green]")
        return True

    def validate_numbers(self, document: PortableExportDocument) -> bool:
        """Check price, size and room counts are not negative."""
        console.print("\n[cyan]Validating numeric fields...[/cyan]")
        invalid = 0
        for i, listing in enumerate(document.listings, start=1):
            for field in ("price", "size", "bedrooms", "bathrooms"):
                value = getattr(listing, field)
                if value < 0:
                    invalid += 1
                    self.errors.append(f"Listing {i} ('{listing.title}') has negative {field}: {value}")
        if invalid:
            console.print(f"[red]✗ {invalid} negative values[/red]")
            return False
        console.print("[green]✓ Numeric fields valid[/green]")
        return True

    def validate_completeness(self, document: PortableExportDocument) -> bool:
        """Count listings missing a link, a location or a price."""
        console.print("\n[cyan]Validating completeness...[/cyan]")
        stats = {
            "missing_link": 0,
            "missing_location": 0,
            "missing_price": 0,
            "missing_size": 0,
        }
        for listing in document.listings:
            if not listing.link or listing.link == PLACEHOLDER_LINK:
                stats["missing_link"] += 1
            if not listing.location.strip():
                stats["missing_location"] += 1
            if listing.price == 0:
                stats["missing_price"] += 1
            if listing.size == 0:
                stats["missing_size"] += 1
        table = Table(title="Completeness Statistics")
        table.add_column("Field", style="cyan")
        table.add_column("Missing", style="yellow", justify="right")
        table.add_column("Percentage", style="magenta", justify="right")
        total = len(document.listings) if document.listings else 1
        for field, count in stats.items():
            pct = (count / total) * 100
            table.add_row(field.replace("_", " ").title(), str(count), f"{pct:.1f}%")
        console.print(table)
        if stats["missing_price"] > 0:
            self.info.append(f"{stats['missing_price']} listings without price")
        return True

    def check_duplicates(self, document: PortableExportDocument) -> bool:
        """Identify listings whose normalized titles collide."""
        console.print("\n[cyan]Checking for duplicate titles...[/cyan]")
        counts: Dict[str, int] = defaultdict(int)
        for listing in document.listings:
            key = normalize_title(listing.title)
            if key:
                counts[key] += 1
        duplicates = {title: c for title, c in counts.items() if c > 1}
        if not duplicates:
            console.print("[green]✓ No duplicate titles found[/green]")
            return True
        console.print(f"[yellow]⚠ {len(duplicates)} duplicate titles found[/yellow]")
        for title, count in list(duplicates.items())[:5]:
            self.warnings.append(f"Duplicate title: {title} ({count} times)")
        return not self.strict

    def validate_tags(self, document: PortableExportDocument) -> bool:
        """Check inline tags have names and one rating per name."""
        console.print("\n[cyan]Validating tags...[/cyan]")
        ratings: Dict[str, Set[str]] = defaultdict(set)
        empty = 0
        for i, listing in enumerate(document.listings, start=1):
            for tag in listing.tags:
                name = normalize_tag_name(tag.name)
                if not name:
                    empty += 1
                    self.errors.append(f"Listing {i} ('{listing.title}') has a tag without name")
                    continue
                ratings[name].add(tag.rating.value)
        conflicting = {name: values for name, values in ratings.items() if len(values) > 1}
        for name, values in conflicting.items():
            self.warnings.append(f"Tag '{name}' appears with ratings {sorted(values)}")
        console.print(f"  Distinct tags: {len(ratings)}")
        if empty:
            console.print(f"[red]✗ {empty} tags without name[/red]")
            return False
        if conflicting:
            console.print(f"[yellow]⚠ {len(conflicting)} tags with conflicting ratings[/yellow]")
            return not self.strict
        console.print("[green]✓ Tags valid[/green]")
        return True

    def generate_report(self) -> bool:
        """Print a summary report and return True if validation passes."""
        console.print("\n" + "=" * 60)
        console.print("[bold]Validation Report[/bold]")
        console.print("=" * 60)
        if self.errors:
            console.print(f"\n[bold red]Errors ({len(self.errors)}):[/bold red]")
            for e in self.errors:
                console.print(f"  [red]✗ {escape(e)}[/red]")
        if self.warnings:
            console.print(f"\n[bold yellow]Warnings ({len(self.warnings)}):[/bold yellow]")
            for w in self.warnings[:20]:
                console.print(f"  [yellow]⚠ {escape(w)}[/yellow]")
            if len(self.warnings) > 20:
                console.print(f"  [dim]... and {len(self.warnings) - 20} more warnings[/dim]")
        if not self.errors and not self.warnings:
            console.print("\n[bold green]✓ All validations passed![/bold green]")
        console.print("\n[bold]Summary:[/bold]")
        console.print(f"  Errors: {len(self.errors)}")
        console.print(f"  Warnings: {len(self.warnings)}")
        return len(self.errors) == 0 and (not self.strict or len(self.warnings) == 0)


def validate_export_file(path: Path, strict: bool = False) -> bool:
    """Load an export file and run every check.

    Args:
        path: JSON file produced by ``export``.
        strict: Treat warnings as errors when determining pass/fail.

    Returns:
        True if the document parses and all checks pass; False otherwise.
    """
    console.print(Panel(f"Validating: {escape(str(path))}", title="Export Validation", border_style="cyan"))
    if not path.exists():
        console.print(f"[red]Error: {escape(str(path))} not found[/red]")
        return False
    try:
        document = MergeImportExportService.parse(path.read_bytes())
    except ValidationFailure as e:
        logger.warning(f"Export file {path} failed to parse: {e}")
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        return False
    console.print(f"[green]Loaded {len(document.listings)} listings (version {document.version})[/green]")

    validator = PortableDocumentValidator(strict=strict)
    results = [
        validator.validate_titles(document),
        validator.validate_numbers(document),
        validator.validate_completeness(document),
        validator.check_duplicates(document),
        validator.validate_tags(document),
    ]
    passed = validator.generate_report()
    return passed and all(results)
