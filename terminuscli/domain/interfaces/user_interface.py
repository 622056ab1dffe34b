"""Interface for presenting command results to the user.

Defines the contract for displaying records, tables, errors, warnings and
progress, allowing different UI implementations (e.g., rich console, tests).
"""

import abc
from typing import Any, List, Sequence

from terminuscli.domain.models.common import OutputField


class UserInterface(abc.ABC):
    """Abstract Base Class for user interaction."""

    @abc.abstractmethod
    def display_record(self, fields: Sequence[OutputField], **kwargs: Any) -> None:
        """Displays a single resource as label/value rows.

        Args:
            fields: Ordered (label, value) pairs from the model's output_fields().
            **kwargs: Additional arguments for formatting (e.g., title).
        """
        pass

    @abc.abstractmethod
    def display_table(self, rows: List[Sequence[OutputField]], **kwargs: Any) -> None:
        """Displays several resources of the same type as a table.

        Args:
            rows: One output_fields() list per resource; labels of the first row
                become the column headers.
            **kwargs: Additional arguments for formatting (e.g., title).
        """
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message to the user.

        Args:
            error_message: The error message string.
            **kwargs: Additional arguments for formatting.
        """
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        """Displays a warning message to the user."""
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message to the user."""
        pass

    def display_success(self, message: str, **kwargs: Any) -> None:
        """Displays a success message. Defaults to an info line."""
        self.display_info(message, **kwargs)

    def display_progress(self, message: str, **kwargs: Any) -> None:
        """Displays a transient progress line while a workflow runs.

        Args:
            message: Human-readable progress description.
            **kwargs: Additional display options.
        """
        pass
