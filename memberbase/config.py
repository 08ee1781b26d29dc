"""
Configuration for memberbase.

Values come from the environment (prefix MEMBERBASE_) or keyword arguments.
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Runtime configuration."""

    # Schema document; None uses the document bundled with the package
    schema_path: Optional[str] = Field(default=None)

    # SQLite
    database_path: str = Field(default=":memory:")
    busy_timeout_ms: int = Field(default=5000, ge=0)

    # Setting whose value names the active rate setting
    active_rate_pointer_key: str = Field(default="active_rate_key")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["text", "json"] = Field(default="text")

    model_config = {"env_prefix": "MEMBERBASE_"}
