import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import yaml
from rich.box import HEAVY, ROUNDED, SIMPLE
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from terminuscli.domain.interfaces.user_interface import UserInterface
from terminuscli.domain.models.common import OutputField

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("table", "json", "yaml")


def fields_to_dict(fields: Sequence[OutputField]) -> Dict[str, Any]:
    return {label: value for label, value in fields}


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(
        self,
        output_format: str = "table",
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        """Initializes the rich consoles.

        Args:
            output_format: One of "table", "json" or "yaml" for command results.
            quiet: Suppress info, success and progress lines.
            console: Console for results (stdout by default).
            err_console: Console for errors and warnings (stderr by default).
        """
        if output_format not in OUTPUT_FORMATS:
            raise ValueError(f"Unsupported output format '{output_format}'. Use one of: {', '.join(OUTPUT_FORMATS)}")
        self.output_format = output_format
        self.quiet = quiet
        self._console = console or Console()
        self._err_console = err_console or Console(stderr=True)

    @property
    def console(self) -> Console:
        """Get the Rich console instance for direct operations."""
        return self._console

    def _print_serialized(self, data: Any) -> None:
        if self.output_format == "json":
            text = json.dumps(data, indent=2, default=str)
        else:
            text = yaml.safe_dump(data, sort_keys=False, default_flow_style=False).rstrip()
        self.console.print(text, markup=False, highlight=False, soft_wrap=True)

    def display_record(self, fields: Sequence[OutputField], **kwargs: Any) -> None:
        """Displays one resource as a two-column label/value table (or JSON/YAML)."""
        if self.output_format != "table":
            self._print_serialized(fields_to_dict(fields))
            return

        table = Table(show_header=False, box=ROUNDED, border_style="cyan", padding=(0, 1),
                      title=kwargs.get("title"))
        table.add_column("Field", style="bold cyan")
        table.add_column("Value")
        for label, value in fields:
            table.add_row(label, Text(str(value)))
        self.console.print(table)

    def display_table(self, rows: List[Sequence[OutputField]], **kwargs: Any) -> None:
        """Displays resources of one type, one row each (or a JSON/YAML list)."""
        if self.output_format != "table":
            self._print_serialized([fields_to_dict(row) for row in rows])
            return

        if not rows:
            self.display_info(kwargs.get("empty_message", "No results."))
            return

        table = Table(show_header=True, box=ROUNDED, border_style="cyan", padding=(0, 1),
                      title=kwargs.get("title"))
        for label, _ in rows[0]:
            table.add_column(label, style="bold" if not table.columns else None)
        for row in rows:
            table.add_row(*(Text(str(value)) for _, value in row))
        self.console.print(table)
        logger.debug(f"Displayed table with {len(rows)} rows")

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message with enhanced styling on stderr."""
        logger.debug(f"Display error: {error_message}")
        panel = Panel(
            Text(error_message, style="white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1)
        )
        self._err_console.print(panel)

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        """Displays a warning message with enhanced styling on stderr."""
        logger.debug(f"Display warning: {warning_message}")
        panel = Panel(
            Text(warning_message, style="white"),
            title="[bold yellow]Warning[/bold yellow]",
            border_style="yellow",
            box=SIMPLE,
            padding=(0, 1)
        )
        self._err_console.print(panel)

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        if self.quiet:
            return
        self._err_console.print(Text(info_message, style="cyan"))

    def display_success(self, message: str, **kwargs: Any) -> None:
        if self.quiet:
            return
        self._err_console.print(Text(message, style="bold green"))

    def display_progress(self, message: str, **kwargs: Any) -> None:
        if self.quiet:
            return
        self._err_console.print(Text(message, style="dim"))
