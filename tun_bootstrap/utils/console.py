"""Rich console utilities for consistent output formatting."""

from typing import Mapping, Optional

from rich.console import Console
from rich.table import Table


class TunnelConsole:
    """Wrapper around Rich Console with consistent styling."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def print_success(self, message: str) -> None:
        """Print success message in green."""
        self.console.print(f"✓ {message}", style="green")

    def print_error(self, message: str) -> None:
        """Print error message in red."""
        self.console.print(f"✗ {message}", style="red bold")

    def print_warning(self, message: str) -> None:
        """Print warning message in yellow."""
        self.console.print(f"⚠ {message}", style="yellow")

    def print_info(self, message: str) -> None:
        """Print info message in cyan."""
        self.console.print(f"ℹ {message}", style="cyan")

    def print_step(self, message: str) -> None:
        """Print step message in blue."""
        self.console.print(f"→ {message}", style="blue")

    def print_header(self, title: str) -> None:
        """Print a formatted header."""
        self.console.print(f"\n=== {title} ===", style="bold cyan")

    def print_banner(self, title: str, rows: Mapping[str, object]) -> None:
        """Print a two-column key/value table, skipping empty values."""
        table = Table(title=title, show_header=False, title_style="bold cyan")
        table.add_column("Setting", style="bold")
        table.add_column("Value")

        for key, value in rows.items():
            if value is None:
                continue
            table.add_row(key, str(value))

        self.console.print(table)

    def print_document(self, text: str) -> None:
        """Print a rendered document verbatim."""
        self.console.print(text, markup=False, highlight=False)


console = TunnelConsole()
