"""Infrastructure models package exports."""
from .base import AuditMixin, Base, TimestampAuditMixin, metadata

__all__ = [
    "Base",
    "metadata",
    "TimestampAuditMixin",
    "AuditMixin",
]
