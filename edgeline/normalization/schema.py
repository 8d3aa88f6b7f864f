"""Schema validation for raw event and outcome payloads."""

from typing import Dict, List

from edgeline.exceptions import SchemaValidationError

SCHEMA_VERSION = "v1"


REQUIRED_FIELDS: Dict[str, List[str]] = {
    "events": ["id", "away_team", "home_team"],
    "bookmakers": ["markets"],
    "markets": ["key", "outcomes"],
    "predictions": ["event_id", "home_win_probability", "predicted_spread", "predicted_total"],
    "validations": ["home_win_probability", "actual_winner"],
}


def validate_table(name: str, rows: list) -> None:
    """Validate a list of raw payload rows."""
    required = REQUIRED_FIELDS.get(name)
    if not required:
        return
    for idx, row in enumerate(rows):
        if not isinstance(row, dict):
            raise SchemaValidationError(f"{name} row {idx} is not an object")
        missing = [field for field in required if row.get(field) in (None, "")]
        if missing:
            raise SchemaValidationError(
                f"{name} row {idx} missing fields: {', '.join(missing)}"
            )


def validate_event(event: Dict) -> None:
    """Validate the top level of an Odds API-style event payload."""
    validate_table("events", [event])
    bookmakers = event.get("bookmakers") or []
    if not isinstance(bookmakers, list):
        raise SchemaValidationError(f"event {event.get('id')} bookmakers must be a list")
