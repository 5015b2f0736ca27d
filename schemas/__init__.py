"""
Pydantic schemas for source descriptors.

Schemas:
    source: SourceDescriptor and its protocol, writer and task sub-configs

Usage:
    from schemas.source import SourceDescriptor, parse_source_descriptor

    descriptor = parse_source_descriptor(yaml.safe_load(handle), "orders")
"""

__all__ = [
    "source",
]
