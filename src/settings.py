"""Settings schema for the work item import.

Defines the Pydantic settings model with validation and environment variable
handling (``WI_`` prefix).
"""

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ImportSettings(BaseSettings):
    """Import settings with validation and environment variable support."""

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="forbid",
        env_prefix="WI_",
    )

    # ========================================================================
    # DESTINATION CONNECTION (WI_ACCOUNT, WI_PAT, WI_PROJECT)
    # ========================================================================

    account: str = Field(
        default="https://dev.azure.com/your-organization",
        description="Destination organization / collection URL",
    )
    pat: str = Field(default="", description="Personal access token")
    project: str = Field(default="MigratedProject", description="Destination project name")
    process_template: str = Field(
        default="Agile", description="Process used when the project has to be created",
    )
    api_version: str = Field(default="7.0", description="REST API version")
    request_timeout: int = Field(default=60, ge=1, le=600, description="HTTP timeout in seconds")
    ssl_verify: bool = Field(default=True, description="Enable SSL certificate verification")

    # ========================================================================
    # IMPORT BEHAVIOR
    # ========================================================================

    base_area_path: str = Field(default="", description="Area path prefix for imported items")
    base_iteration_path: str = Field(default="", description="Iteration path prefix for imported items")
    ignore_failed_links: bool = Field(
        default=False, description="Log unresolved link targets as warnings instead of errors",
    )
    parallel_workers: int = Field(
        default=1, ge=1, le=64, description="Work items replayed in parallel (1 = chronological plan)",
    )
    no_confirm: bool = Field(default=False, description="Create a missing project without asking")

    # Project creation polling
    operation_poll_interval: float = Field(default=5.0, gt=0, description="Seconds between status checks")
    operation_max_wait: float = Field(default=30.0, gt=0, description="Give up waiting after this many seconds")

    # ========================================================================
    # FILES
    # ========================================================================

    items_dir: Path | None = Field(default=None, description="Directory with exported work item histories")
    attachments_dir: Path | None = Field(default=None, description="Directory relative attachment paths resolve against")
    journal_file: str = Field(default="itemsJournal.jsonl", description="Journal file name inside the data directory")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("base_area_path", "base_iteration_path")
    @classmethod
    def _normalize_base_path(cls, value: str) -> str:
        return value.replace("\\", "/").strip("/")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "NOTICE", "WARNING", "ERROR", "CRITICAL", "SUCCESS"}:
            msg = f"Unsupported log level: {value}"
            raise ValueError(msg)
        return level
