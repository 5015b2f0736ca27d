"""
Core utilities and configuration for the ingestion engine.

Modules:
    config: Application configuration and environment variable management
    database: Async engine and session factories
    exceptions: Exception hierarchy carrying source and phase context
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import build_engine, build_session_maker
    from core.exceptions import ConfigurationError, ProtocolFaultError
    from core.logging import setup_logging
"""

__all__ = [
    "config",
    "database",
    "exceptions",
    "logging",
]
