"""Runner configuration, loaded from environment variables."""

from __future__ import annotations

from pydantic_settings import BaseSettings

# Prefix carried by every container and image fnrunner creates.
NAME_PREFIX = "fnrunner"

DEFAULT_REGISTRY = "https://index.docker.io/v1/"


class Settings(BaseSettings):
    """All settings can be overridden via env vars (case-insensitive)."""

    # Container engine. Empty docker_host means "use the local environment".
    docker_host: str = ""
    docker_cert_path: str = ""
    docker_tls_verify: bool = True

    # Registry used for auth-checks when credentials carry no server address
    registry_server: str = DEFAULT_REGISTRY

    # Execution
    default_runtime: str = ""
    exec_timeout: int = 300  # caller-side deadline, 0 disables it
    max_output_size: int = 50_000
    remove_after_run: bool = True

    # MCP server
    mcp_host: str = "0.0.0.0"
    mcp_port: int = 8000

    # Logging
    log_level: str = "INFO"
    log_file: str | None = None
    logfire_token: str = ""

    model_config = {"env_prefix": "FNRUNNER_", "env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
