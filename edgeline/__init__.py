"""EdgeLine market-model disagreement engine."""

__all__ = [
    "cli",
    "config",
    "constants",
    "exceptions",
    "normalization",
    "models",
    "monitoring",
    "reporting",
    "review",
    "ops",
    "storage",
    "utils",
]

__version__ = "0.1.0"
