"""Configuration management for voicecode.

Loads and validates YAML-based configuration with Pydantic models.
Supports environment variable overrides.
"""

from voicecode.config.settings import Settings, SummaryEngineKind, load_settings

__all__ = ["Settings", "SummaryEngineKind", "load_settings"]
