"""JSON-based storage for run outputs (recommendations, reports, decisions)."""

from pathlib import Path
from typing import Dict, List, Union
import json


class JsonStorage:
    def __init__(self, base_dir: str) -> None:
        self._base_dir = Path(base_dir)
        self._base_dir.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> Path:
        return self._base_dir / f"{name}.json"

    def write_table(self, name: str, rows: Union[List[Dict], Dict]) -> str:
        path = self.path_for(name)
        # Enums and datetimes fall back to their string form
        path.write_text(json.dumps(rows, indent=2, sort_keys=True, default=str), encoding="utf-8")
        return str(path)

    def read_table(self, name: str) -> List[Dict]:
        path = self.path_for(name)
        if not path.exists():
            return []
        return json.loads(path.read_text(encoding="utf-8"))
