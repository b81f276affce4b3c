"""
Configuration management for kvgraph.

All configuration is done via environment variables. This module provides
typed, immutable configuration values with validation; nothing here is
mutated after construction.

Invariants:
    - All settings have sensible defaults for local development
    - Lenient reference handling is off unless explicitly enabled

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Never change a default that alters what gets stored (type_hint_key)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class StoreBackend(Enum):
    """Supported key-value store backends."""

    MEMORY = "memory"
    SQLITE = "sqlite"


@dataclass(frozen=True)
class MapperConfig:
    """Object mapping configuration.

    Attributes:
        lenient_references: Resolve dangling nested references to None
            (logged) instead of raising DanglingReferenceError
        type_hint_key: Path segment holding stored type names
    """

    lenient_references: bool = False
    type_hint_key: str = "_class"

    @classmethod
    def from_env(cls) -> MapperConfig:
        """Load configuration from environment variables."""
        return cls(
            lenient_references=_env_bool("KVGRAPH_LENIENT_REFERENCES", "false"),
            type_hint_key=os.getenv("KVGRAPH_TYPE_HINT_KEY", "_class"),
        )


@dataclass(frozen=True)
class ScanConfig:
    """Keyspace scan configuration.

    Attributes:
        batch_size: Default number of ids requested per scan step
    """

    batch_size: int = 100

    @classmethod
    def from_env(cls) -> ScanConfig:
        """Load configuration from environment variables."""
        return cls(batch_size=int(os.getenv("KVGRAPH_SCAN_BATCH_SIZE", "100")))


@dataclass(frozen=True)
class StorageConfig:
    """Key-value store configuration.

    Attributes:
        backend: Which store implementation to use
        data_dir: Directory for the SQLite database
        db_name: SQLite database file name
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    backend: StoreBackend = StoreBackend.MEMORY
    data_dir: str = "./data"
    db_name: str = "kvgraph.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables.

        Raises:
            ValueError: If KVGRAPH_STORE names an unknown backend
        """
        backend_str = os.getenv("KVGRAPH_STORE", "memory").lower()
        try:
            backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid KVGRAPH_STORE '{backend_str}'. Must be one of: memory, sqlite"
            )
        return cls(
            backend=backend,
            data_dir=os.getenv("KVGRAPH_DATA_DIR", "./data"),
            db_name=os.getenv("KVGRAPH_DB_NAME", "kvgraph.db"),
            wal_mode=_env_bool("SQLITE_WAL_MODE", "true"),
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
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


@dataclass(frozen=True)
class Settings:
    """Complete kvgraph configuration.

    Attributes:
        mapper: Object mapping configuration
        scan: Scan configuration
        storage: Store configuration
        observability: Logging configuration
    """

    mapper: MapperConfig = field(default_factory=MapperConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> Settings:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        settings = cls(
            mapper=MapperConfig.from_env(),
            scan=ScanConfig.from_env(),
            storage=StorageConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.scan.batch_size <= 0:
            raise ValueError(
                f"KVGRAPH_SCAN_BATCH_SIZE must be positive, got {self.scan.batch_size}"
            )
        if not self.mapper.type_hint_key or "." in self.mapper.type_hint_key:
            raise ValueError("KVGRAPH_TYPE_HINT_KEY must be a single non-empty path segment")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"LOG_FORMAT must be 'json' or 'text', got '{self.observability.log_format}'"
            )

        if self.storage.backend == StoreBackend.SQLITE and not os.path.exists(
            self.storage.data_dir
        ):
            logger.warning(
                f"Data directory does not exist: {self.storage.data_dir}. "
                "It will be created on connect."
            )

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "kvgraph configuration loaded",
            extra={
                "store": self.storage.backend.value,
                "data_dir": self.storage.data_dir
                if self.storage.backend == StoreBackend.SQLITE
                else None,
                "lenient_references": self.mapper.lenient_references,
                "scan_batch_size": self.scan.batch_size,
                "log_level": self.observability.log_level,
            },
        )
