"""Run manifest recording what a CLI run read and produced."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
import hashlib
import json
import uuid


def config_hash(settings: Dict[str, Any]) -> str:
    """Stable short hash of a settings dict."""
    encoded = json.dumps(settings, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()[:12]


@dataclass
class RunManifest:
    command: str
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    config_hash: Optional[str] = None
    recalibration_version: Optional[int] = None
    inputs: Dict[str, str] = field(default_factory=dict)
    outputs: Dict[str, str] = field(default_factory=dict)
    counts: Dict[str, int] = field(default_factory=dict)

    def finish(self) -> "RunManifest":
        self.finished_at = datetime.utcnow()
        return self

    def to_dict(self) -> dict:
        return {
            "command": self.command,
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "config_hash": self.config_hash,
            "recalibration_version": self.recalibration_version,
            "inputs": dict(self.inputs),
            "outputs": dict(self.outputs),
            "counts": dict(self.counts),
        }
