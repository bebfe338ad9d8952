"""
Configuration management for the CouchDB bulk client.

Supports configuration via environment variables and .env files.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CouchConfig(BaseSettings):
    """
    Configuration settings for the CouchDB bulk client.

    All settings can be configured via environment variables with the COUCH_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="COUCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Server settings
    url: str = Field(
        default="http://localhost:5984",
        description="Base URL of the CouchDB server"
    )
    name: Optional[str] = Field(
        default=None,
        description="Username for basic authentication"
    )
    password: Optional[str] = Field(
        default=None,
        description="Password for basic authentication"
    )
    use_ssl: bool = Field(
        default=True,
        description="Use https when the URL carries no scheme"
    )

    # Timeouts
    open_timeout: float = Field(
        default=150.0,
        gt=0,
        description="Connect timeout in seconds"
    )
    read_timeout: float = Field(
        default=150.0,
        gt=0,
        description="Read timeout in seconds"
    )

    # Bulk read parameters
    page_size: int = Field(
        default=500,
        ge=1,
        description="Number of rows fetched per page during pagination"
    )

    # Bulk write parameters
    flush_size_mb: float = Field(
        default=10,
        gt=0,
        description="Batch cost (MB) at which post_bulk_if_big_enough flushes"
    )
    throttle_size_mb: float = Field(
        default=15,
        gt=0,
        description="Batch cost (MB) at which post_bulk_throttled splits"
    )
    max_array_length: int = Field(
        default=300,
        ge=1,
        description="Maximum number of documents in a single bulk request"
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format"
    )

    @property
    def base_url(self) -> str:
        """Get the server URL with a scheme, honouring use_ssl when none is given."""
        if "://" in self.url:
            return self.url.rstrip("/")
        scheme = "https" if self.use_ssl else "http"
        return f"{scheme}://{self.url.rstrip('/')}"

    @property
    def auth(self) -> Optional[tuple]:
        """Get basic-auth credentials, or None when no user is configured."""
        if self.name is None:
            return None
        return (self.name, self.password or "")


# Global config instance
_config: Optional[CouchConfig] = None


def get_config() -> CouchConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = CouchConfig()
    return _config


def set_config(config: CouchConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
