"""Storage for odds history and run outputs."""

from edgeline.storage.json_storage import JsonStorage
from edgeline.storage.odds_history import LineValues, OddsHistoryStore, OddsSnapshot

__all__ = ["JsonStorage", "LineValues", "OddsHistoryStore", "OddsSnapshot"]
