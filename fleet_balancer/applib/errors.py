"""
Error taxonomy for the fleet control loop.

- ConfigurationGap: nothing to analyze (zero capacity or zero eligible members). Cycle is skipped.
- CollaboratorUnavailable: a session store / registry / provisioner call failed or timed out.
  The rest of the cycle is abandoned and the next tick retries from scratch.
- InconsistentSnapshot: a member referenced by the snapshot is gone. Treated as a no-op.
"""

from __future__ import annotations

from typing import Optional


class FleetError(Exception):
    pass


class ConfigurationGap(FleetError):
    pass


class CollaboratorUnavailable(FleetError):
    def __init__(self, collaborator: str, message: str, *, cause: Optional[BaseException] = None):
        super().__init__(f"{collaborator}: {message}")
        self.collaborator = collaborator
        self.cause = cause


class InconsistentSnapshot(FleetError):
    def __init__(self, reference: str, message: Optional[str] = None):
        super().__init__(message or f"{reference} is no longer present")
        self.reference = reference
