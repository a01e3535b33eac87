"""Pydantic schemas for payloads exchanged with external sinks."""

from .release import CommentReceipt, CoverageSummary, ReleaseRecord, ReleaseRequest

__all__ = [
    "CommentReceipt",
    "CoverageSummary",
    "ReleaseRecord",
    "ReleaseRequest",
]
