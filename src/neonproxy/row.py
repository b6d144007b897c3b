"""Row factory implementations for dictionary-like cursor results."""
from typing import Any


class DictRowFactory:
    """Row factory for psycopg that returns dictionary-like rows.

    Values are kept exactly as the driver loaded them; the result encoder is
    the only place that looks at value shapes. Key order follows the cursor
    description, so the first row's keys give the column order of the result.
    Duplicate column names collapse onto the last value, as with any mapping.
    """

    def __init__(self, cursor: Any) -> None:
        """Initialize with cursor to extract column names.

        Args:
            cursor: Database cursor with description attribute
        """
        self.names = [c.name for c in (cursor.description or [])]

    def __call__(self, values: tuple) -> dict:
        """Convert a row tuple to a dictionary.

        Args:
            values: Tuple of column values from cursor

        Returns
            Dictionary mapping column names to values
        """
        return dict(zip(self.names, values))
