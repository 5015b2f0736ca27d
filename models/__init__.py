"""
In-memory data model of the ingestion engine.

Models:
    record: Record, the ordered field map produced by readers and consumed by writers
"""

__all__ = [
    "record",
]
