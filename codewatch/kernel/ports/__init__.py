"""Ports: contracts for the external collaborators codewatch consumes."""

from codewatch.kernel.ports.engine import Engine, RawViolation
from codewatch.kernel.ports.storage import StoreResult, ViolationStatus, ViolationStorage

__all__ = ["Engine", "RawViolation", "StoreResult", "ViolationStatus", "ViolationStorage"]
