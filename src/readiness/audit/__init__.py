"""Readiness audit module - append-only score audit trail."""

from readiness.audit.trail import (
    AuditChainError,
    AuditTrail,
    AuditTrailError,
    InMemoryAuditTrail,
    JsonlFileAuditTrail,
    get_audit_trail,
)

__all__ = [
    "AuditChainError",
    "AuditTrail",
    "AuditTrailError",
    "InMemoryAuditTrail",
    "JsonlFileAuditTrail",
    "get_audit_trail",
]
