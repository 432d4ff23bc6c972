"""Durable per-run audit log of update outcomes."""

from defaulter.audit.writer import AuditWriter

__all__ = ["AuditWriter"]
