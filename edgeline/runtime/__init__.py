"""Run bookkeeping."""

from edgeline.runtime.manifest import RunManifest, config_hash

__all__ = ["RunManifest", "config_hash"]
