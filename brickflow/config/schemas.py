"""
Configuration Schemas for brickflow.

Pydantic models for runtime settings.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class RuntimeSettings(BaseModel):
    """
    Engine runtime settings.

    Used for type-safe settings access. Values are read from
    BRICKFLOW_* environment variables by get_settings().
    """

    # Step execution
    validate_input: bool = Field(True, description="Validate rendered args against brick input schemas")
    autoescape: bool = Field(True, description="Autoescape template output")
    log_values: bool = Field(False, description="Log rendered inputs and outputs at debug level")

    # Templates
    default_template_engine: str = Field("nunjucks", description="Dialect for implicit templates")
    implicit_templates: bool = Field(
        False,
        description="Treat bare strings in brick config as templates (legacy data flow)",
    )

    # Tracing
    max_trace_records: int = Field(1000, ge=1, description="Cap for in-memory trace recorders")

    # Logging
    logger_name: str = "brickflow"

    class Config:
        env_prefix = "BRICKFLOW_"
        case_sensitive = False
