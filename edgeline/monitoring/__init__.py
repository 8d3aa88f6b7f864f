"""Line movement monitoring."""

from edgeline.monitoring.line_monitor import (
    LineMovement,
    LineMovementMonitor,
    RepredictionDecision,
    RepredictionLedger,
    RepredictionPolicy,
    compute_movement,
    is_material_change,
)

__all__ = [
    "LineMovement",
    "LineMovementMonitor",
    "RepredictionDecision",
    "RepredictionLedger",
    "RepredictionPolicy",
    "compute_movement",
    "is_material_change",
]
