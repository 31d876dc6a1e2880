from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MCP_PORT = 39173
DEFAULT_CLI_TIMEOUT = 30.0
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
    )

    # --- Server identity ---
    server_name: str = Field(default="beans-mcp-server", validation_alias="BEANS_MCP_SERVER_NAME")
    server_version: str = Field(default="0.1.0", validation_alias="BEANS_MCP_SERVER_VERSION")

    # --- Beans CLI ---
    cli_path: str = Field(default="beans", validation_alias="BEANS_CLI_PATH")
    cli_timeout: float = Field(default=DEFAULT_CLI_TIMEOUT, validation_alias="BEANS_CLI_TIMEOUT")
    cli_max_output_bytes: int = Field(default=DEFAULT_MAX_OUTPUT_BYTES, validation_alias="BEANS_CLI_MAX_OUTPUT")

    # --- Transport ---
    # The VS Code extension variable wins over the generic one.
    mcp_port: int = Field(
        default=DEFAULT_MCP_PORT,
        validation_alias=AliasChoices("BEANS_VSCODE_MCP_PORT", "BEANS_MCP_PORT", "mcp_port"),
    )
    http_host: str = Field(default="127.0.0.1", validation_alias="BEANS_MCP_HOST")

    # --- Extension output log ---
    output_log_path: Optional[str] = Field(default=None, validation_alias="BEANS_VSCODE_OUTPUT_LOG")
    vscode_log_dir: Optional[str] = Field(default=None, validation_alias="BEANS_VSCODE_LOG_DIR")

    # --- Server logging ---
    log_level: str = Field(default="INFO", validation_alias="BEANS_MCP_LOG_LEVEL")
    log_file: Optional[str] = Field(default=None, validation_alias="BEANS_MCP_LOG_FILE")


@lru_cache
def get_settings() -> Settings:
    return Settings()
