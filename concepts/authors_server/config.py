"""
Configuration management for the Authors Server.

All configuration is done via environment variables - no config files inside containers.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set TME credentials explicitly
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep environment variable names stable, deployments depend on them
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TmeConfig:
    """TME primary source configuration.

    Attributes:
        base_url: TME base URL
        username: Username for HTTP basic authentication
        password: Password for HTTP basic authentication
        token: Token sent in the X-Coco-Auth header
        max_records: Records per page, also the cursor stride of a reload
        batch_size: Concurrent sub-requests used to fetch one page
        taxonomy: TME taxonomy name
        request_timeout_s: Timeout of a single HTTP request
        max_retries: Retries for transient errors
        retry_delay_ms: Initial delay between retries (doubles each retry)
    """

    base_url: str = "https://tme.ft.com"
    username: str = ""
    password: str = ""
    token: str = ""
    max_records: int = 10000
    batch_size: int = 10
    taxonomy: str = "Authors"
    request_timeout_s: float = 30.0
    max_retries: int = 5
    retry_delay_ms: int = 100

    @classmethod
    def from_env(cls) -> TmeConfig:
        """Load configuration from environment variables."""
        return cls(
            base_url=os.getenv("TME_BASE_URL", "https://tme.ft.com"),
            username=os.getenv("TME_USERNAME", ""),
            password=os.getenv("TME_PASSWORD", ""),
            token=os.getenv("TOKEN", ""),
            max_records=int(os.getenv("MAX_RECORDS", "10000")),
            batch_size=int(os.getenv("BATCH_SIZE", "10")),
            taxonomy=os.getenv("TME_TAXONOMY", "Authors"),
            request_timeout_s=float(os.getenv("TME_REQUEST_TIMEOUT_S", "30")),
            max_retries=int(os.getenv("TME_MAX_RETRIES", "5")),
            retry_delay_ms=int(os.getenv("TME_RETRY_DELAY_MS", "100")),
        )


@dataclass(frozen=True)
class StorageConfig:
    """Cache store configuration.

    Attributes:
        cache_file_name: Path of the SQLite cache file
        open_timeout_ms: Maximum time to wait when opening the cache file
        bucket: Name of the cache bucket
    """

    cache_file_name: str = "cache.db"
    open_timeout_ms: int = 1000
    bucket: str = "author"

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            cache_file_name=os.getenv("CACHE_FILE_NAME", "cache.db"),
            open_timeout_ms=int(os.getenv("CACHE_OPEN_TIMEOUT_MS", "1000")),
            bucket=os.getenv("CACHE_BUCKET", "author"),
        )


@dataclass(frozen=True)
class CuratedConfig:
    """Curated authors (Bertha) configuration.

    Attributes:
        source_url: URL of the curated authors JSON; None disables the merge
    """

    source_url: str | None = None

    @classmethod
    def from_env(cls) -> CuratedConfig:
        """Load configuration from environment variables."""
        return cls(source_url=os.getenv("BERTHA_SOURCE_URL") or None)


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration.

    Attributes:
        host: Address to bind
        port: Port to listen on
        base_url: Base of the apiUrl links emitted by the links export
    """

    host: str = "0.0.0.0"
    port: int = 8080
    base_url: str = "http://localhost:8080/transformers/authors"

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8080")),
            base_url=os.getenv("BASE_URL", "http://localhost:8080/transformers/authors"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        tme: TME source configuration
        storage: Cache store configuration
        curated: Curated source configuration
        http: HTTP server configuration
        observability: Logging configuration
    """

    tme: TmeConfig = field(default_factory=TmeConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    curated: CuratedConfig = field(default_factory=CuratedConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        config = cls(
            tme=TmeConfig.from_env(),
            storage=StorageConfig.from_env(),
            curated=CuratedConfig.from_env(),
            http=HttpConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.tme.base_url:
            raise ValueError("TME_BASE_URL is required")
        if self.tme.max_records <= 0:
            raise ValueError("MAX_RECORDS must be positive")
        if self.tme.batch_size <= 0:
            raise ValueError("BATCH_SIZE must be positive")
        if self.tme.batch_size > self.tme.max_records:
            raise ValueError("BATCH_SIZE cannot exceed MAX_RECORDS")

        if not self.tme.username or not self.tme.password:
            logger.warning("TME credentials are not set, requests will be unauthenticated")
        if self.curated.source_url is None:
            logger.warning("BERTHA_SOURCE_URL is not set, curated authors will not be merged")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "tme_base_url": self.tme.base_url,
                "tme_taxonomy": self.tme.taxonomy,
                "max_records": self.tme.max_records,
                "batch_size": self.tme.batch_size,
                "cache_file_name": self.storage.cache_file_name,
                "curated_source_url": self.curated.source_url,
                "http_port": self.http.port,
                "base_url": self.http.base_url,
                "log_level": self.observability.log_level,
            },
        )
