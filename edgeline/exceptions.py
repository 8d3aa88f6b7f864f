"""
Custom exceptions for the market-model disagreement engine.

Errors fall into three groups:
- data quality (malformed or missing odds), skipped per quote
- market data problems for a whole event, isolated per event in batch runs
- configuration and schema problems, raised at load time

Matching ambiguity and small calibration samples are never errors; they
resolve to low-confidence results or a passthrough fit.

Usage:
    from edgeline.exceptions import InvalidOddsError, MarketDataError

    try:
        american = decimal_to_american(quote.price)
    except InvalidOddsError as e:
        logger.warning(f"Skipping quote: {e}")
"""


class EdgeLineError(Exception):
    """
    Base exception for all engine errors.

    All custom exceptions inherit from this, allowing:
        except EdgeLineError:
            # Catch any engine error
    """
    pass


# =============================================================================
# DATA ERRORS
# =============================================================================

class InvalidOddsError(EdgeLineError, ValueError):
    """
    A price that cannot be converted into a probability.

    Raised when:
    - Decimal odds are missing, non-numeric, or not above 1.0
    - American odds fall inside the impossible (-100, 100) band
    """

    def __init__(self, value, reason: str = None):
        self.value = value
        msg = f"Invalid odds: {value!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)


class MarketDataError(EdgeLineError):
    """
    An event payload that cannot be analyzed at all.

    Raised when:
    - Canonical away/home team names are missing
    - The payload is not shaped like an event
    """

    def __init__(self, event_id: str, message: str = None):
        self.event_id = event_id
        msg = f"Bad market data for event {event_id}"
        if message:
            msg += f": {message}"
        super().__init__(msg)


class SchemaValidationError(EdgeLineError, ValueError):
    """Raised when a raw payload is missing required fields."""
    pass


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================

class ConfigurationError(EdgeLineError):
    """
    Invalid configuration value.

    Raised when:
    - A threshold is out of its valid range
    - A per-sport override names an unknown sport
    """

    def __init__(self, key: str, message: str = None):
        self.key = key
        msg = f"Configuration error for '{key}'"
        if message:
            msg += f": {message}"
        super().__init__(msg)
