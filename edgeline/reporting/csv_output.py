"""CSV output helpers."""

from pathlib import Path
from typing import Dict, Iterable, List, Sequence
import csv
import logging

from edgeline.models.types import Recommendation

logger = logging.getLogger(__name__)

RECOMMENDATION_COLUMNS = [
    "event_id",
    "market",
    "side",
    "label",
    "point",
    "bookmaker",
    "decimal_odds",
    "american_odds",
    "implied_probability",
    "model_probability",
    "edge",
    "expected_value",
    "kelly_fraction",
    "confidence",
    "value_tier",
    "rationale",
    "discrepancy_warning",
    "bookmakers",
]


def recommendation_rows(recommendations: Iterable[Recommendation]) -> List[Dict]:
    """Flatten recommendations for tabular output; book lists become 'a|b|c'."""
    rows = []
    for rec in recommendations:
        row = rec.to_dict()
        row["bookmakers"] = "|".join(row["bookmakers"])
        row["edge"] = round(row["edge"], 4)
        row["implied_probability"] = round(row["implied_probability"], 4)
        row["model_probability"] = round(row["model_probability"], 4)
        row["expected_value"] = round(row["expected_value"], 2)
        rows.append(row)
    return rows


def write_rows_csv(rows: Sequence[Dict], output_path: str, fieldnames: Sequence[str] = ()) -> Path:
    """Write dict rows; columns not in fieldnames are appended in sorted order."""
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if not rows:
        path.write_text("", encoding="utf-8")
        return path

    columns = list(fieldnames) or list(rows[0].keys())
    extra_keys = set()
    for row in rows:
        extra_keys.update(key for key in row.keys() if key not in columns)
    if extra_keys:
        columns.extend(sorted(extra_keys))
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=columns)
        writer.writeheader()
        writer.writerows(rows)
    return path


def write_recommendations_csv(recommendations: Iterable[Recommendation], output_path: str) -> Path:
    rows = recommendation_rows(recommendations)
    path = write_rows_csv(rows, output_path, RECOMMENDATION_COLUMNS)
    logger.info(f"Wrote {len(rows)} recommendations to {path}")
    return path
