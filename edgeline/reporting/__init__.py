"""Report writers."""

from edgeline.reporting.csv_output import (
    recommendation_rows,
    write_recommendations_csv,
    write_rows_csv,
)

__all__ = ["recommendation_rows", "write_recommendations_csv", "write_rows_csv"]
