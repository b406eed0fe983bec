"""Configuration management for ado-sync with structured settings and validation."""

import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .errors import AdoConfigurationError

logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()

MODULE_NAME = "ado-sync"

CONFIG_SEARCH_PLACES = [
    f".{MODULE_NAME}.yaml",
    f".{MODULE_NAME}.yml",
    f".{MODULE_NAME}.json",
    f".{MODULE_NAME}rc",
    f".{MODULE_NAME}rc.json",
    f".{MODULE_NAME}rc.yaml",
    f".{MODULE_NAME}rc.yml",
]

MAX_BATCH_SIZE = 200


class ConflictStrategy(str, Enum):
    """How combined sync treats items changed on both sides."""

    PREFER_REMOTE = "ado-wins"
    PREFER_LOCAL = "yaml-wins"
    MANUAL = "manual"


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() == "true"


@dataclass
class RetryConfig:
    """Configuration for retrying transient network failures."""

    max_retries: int = 1
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: bool = True

    def __post_init__(self):
        """Validate retry configuration values."""
        if self.max_retries < 0:
            raise AdoConfigurationError(
                "max_retries must be non-negative", context={"max_retries": self.max_retries}
            )

        if self.initial_delay < 0:
            raise AdoConfigurationError(
                "initial_delay must be non-negative",
                context={"initial_delay": self.initial_delay},
            )

        if self.backoff_multiplier < 1.0:
            raise AdoConfigurationError(
                "backoff_multiplier must be at least 1.0",
                context={"backoff_multiplier": self.backoff_multiplier},
            )


@dataclass
class RateLimitConfig:
    """Client-side request throttling settings."""

    max_requests: int = 100
    window_seconds: float = 60.0
    threshold: float = 0.8
    default_retry_after: int = 60

    def __post_init__(self):
        """Validate rate limit configuration values."""
        if self.max_requests <= 0:
            raise AdoConfigurationError(
                "max_requests must be positive", context={"max_requests": self.max_requests}
            )

        if self.window_seconds <= 0:
            raise AdoConfigurationError(
                "window_seconds must be positive",
                context={"window_seconds": self.window_seconds},
            )

        if not 0.0 < self.threshold <= 1.0:
            raise AdoConfigurationError(
                "threshold must be between 0.0 (exclusive) and 1.0",
                context={"threshold": self.threshold},
            )


@dataclass
class DefaultsConfig:
    """Field values applied to newly created work items that leave them unset."""

    area_path: str | None = None
    iteration_path: str | None = None
    state: str | None = None
    priority: int | None = None

    def __post_init__(self):
        if self.priority is not None and not 1 <= self.priority <= 4:
            raise AdoConfigurationError(
                "default priority must be between 1 and 4", context={"priority": self.priority}
            )


@dataclass
class SyncConfig:
    """Options that parameterize push, pull and sync runs."""

    conflict_strategy: ConflictStrategy = ConflictStrategy.MANUAL
    batch_size: int = 50
    include_comments: bool = True
    include_prs: bool = True
    include_history: bool = False

    def __post_init__(self):
        try:
            self.conflict_strategy = ConflictStrategy(self.conflict_strategy)
        except ValueError as e:
            raise AdoConfigurationError(
                f"Unknown conflict strategy: {self.conflict_strategy}",
                context={"allowed": [s.value for s in ConflictStrategy]},
                original_exception=e,
            ) from e

        if not 1 <= self.batch_size <= MAX_BATCH_SIZE:
            raise AdoConfigurationError(
                f"batch_size must be between 1 and {MAX_BATCH_SIZE}",
                context={"batch_size": self.batch_size},
            )


@dataclass
class TelemetryConfig:
    """Configuration for telemetry and observability."""

    enabled: bool = False
    service_name: str = "ado-sync"
    service_version: str = "0.1.0"
    trace_sampling_rate: float = 1.0
    metrics_enabled: bool = True

    def __post_init__(self):
        """Validate telemetry configuration values."""
        if not 0.0 <= self.trace_sampling_rate <= 1.0:
            raise AdoConfigurationError(
                "trace_sampling_rate must be between 0.0 and 1.0",
                context={"trace_sampling_rate": self.trace_sampling_rate},
            )


@dataclass
class AdoSyncConfig:
    """
    Main configuration class for ado-sync.

    Explicit values win; anything left unset is filled from environment
    variables, then from built-in defaults.
    """

    organization: str | None = None
    project: str | None = None
    pat: str | None = None
    api_version: str = "7.1"
    request_timeout_seconds: int = 30

    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)

    def __post_init__(self):
        """Load configuration from environment variables and validate."""
        self.organization = self.organization or os.getenv("ADO_ORGANIZATION")
        self.project = self.project or os.getenv("ADO_PROJECT")
        self.pat = self.pat or os.getenv("ADO_PAT")

        self.request_timeout_seconds = int(
            os.getenv("ADO_SYNC_REQUEST_TIMEOUT", self.request_timeout_seconds)
        )

        self.rate_limit.max_requests = int(
            os.getenv("ADO_SYNC_RATE_LIMIT_MAX_REQUESTS", self.rate_limit.max_requests)
        )
        self.rate_limit.window_seconds = float(
            os.getenv("ADO_SYNC_RATE_LIMIT_WINDOW", self.rate_limit.window_seconds)
        )

        self.retry.max_retries = int(os.getenv("ADO_SYNC_RETRY_MAX_RETRIES", self.retry.max_retries))
        self.retry.initial_delay = float(
            os.getenv("ADO_SYNC_RETRY_INITIAL_DELAY", self.retry.initial_delay)
        )

        self.telemetry.enabled = _env_bool("ADO_SYNC_TELEMETRY_ENABLED", self.telemetry.enabled)
        self.telemetry.trace_sampling_rate = float(
            os.getenv("ADO_SYNC_TELEMETRY_SAMPLING_RATE", self.telemetry.trace_sampling_rate)
        )

        self._validate()

        logger.debug(
            f"Configuration loaded: organization={self.organization}, project={self.project}, "
            f"conflict_strategy={self.sync.conflict_strategy.value}, "
            f"batch_size={self.sync.batch_size}, "
            f"rate_limit={self.rate_limit.max_requests}/{self.rate_limit.window_seconds}s"
        )

    def _validate(self):
        """Validate the complete configuration."""
        if self.request_timeout_seconds <= 0:
            raise AdoConfigurationError(
                "request_timeout_seconds must be positive",
                context={"request_timeout_seconds": self.request_timeout_seconds},
            )

    def require_target(self) -> tuple[str, str]:
        """
        Return the (organization, project) pair, failing if either is missing.

        Raises:
            AdoConfigurationError: If organization or project is not configured
        """
        if not self.organization:
            raise AdoConfigurationError(
                "Azure DevOps organization not configured. "
                "Set ADO_ORGANIZATION or add 'organization' to the config file."
            )
        if not self.project:
            raise AdoConfigurationError(
                "Azure DevOps project not configured. "
                "Set ADO_PROJECT or add 'project' to the config file."
            )
        return self.organization, self.project

    @classmethod
    def from_env(cls, **overrides) -> "AdoSyncConfig":
        """Create configuration from environment variables with optional overrides."""
        return cls(**overrides)

    @classmethod
    def from_mapping(cls, data: dict[str, Any], **overrides) -> "AdoSyncConfig":
        """
        Build a configuration from a parsed config file.

        The file uses the camelCase keys of the YAML work item format
        (``defaults.areaPath``, ``sync.conflictStrategy``, ...). Keyword
        overrides take precedence over the file.
        """
        defaults = data.get("defaults") or {}
        sync = data.get("sync") or {}

        values: dict[str, Any] = {
            "organization": data.get("organization"),
            "project": data.get("project"),
            "defaults": DefaultsConfig(
                area_path=defaults.get("areaPath"),
                iteration_path=defaults.get("iterationPath"),
                state=defaults.get("state"),
                priority=defaults.get("priority"),
            ),
            "sync": SyncConfig(
                conflict_strategy=sync.get("conflictStrategy", ConflictStrategy.MANUAL),
                batch_size=sync.get("batchSize", 50),
                include_comments=sync.get("includeComments", True),
                include_prs=sync.get("includePRs", True),
                include_history=sync.get("includeHistory", False),
            ),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    @classmethod
    def from_file(cls, path: str | Path, **overrides) -> "AdoSyncConfig":
        """
        Load configuration from a YAML or JSON file.

        Raises:
            AdoConfigurationError: If the file cannot be read or parsed
        """
        config_path = Path(path)
        try:
            text = config_path.read_text(encoding="utf-8")
            if config_path.suffix == ".json" or config_path.name.endswith("rc.json"):
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise AdoConfigurationError(
                f"Invalid configuration in {config_path}: {e}",
                context={"path": str(config_path)},
                original_exception=e,
            ) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise AdoConfigurationError(
                f"Invalid configuration in {config_path}: expected a mapping",
                context={"path": str(config_path)},
            )

        logger.info(f"Loaded configuration from {config_path}")
        return cls.from_mapping(data, **overrides)

    @classmethod
    def discover(cls, start: str | Path | None = None, **overrides) -> "AdoSyncConfig":
        """Load the nearest config file above ``start``, or fall back to the environment."""
        config_path = find_config_file(start)
        if config_path is None:
            logger.debug("No ado-sync config file found, using environment only")
            return cls.from_env(**overrides)
        return cls.from_file(config_path, **overrides)


def find_config_file(start: str | Path | None = None) -> Path | None:
    """
    Search ``start`` and its parents for the first known config file name.

    Returns:
        Path of the config file, or None if no directory up to the root has one
    """
    directory = Path(start or Path.cwd()).resolve()
    for candidate_dir in [directory, *directory.parents]:
        for name in CONFIG_SEARCH_PLACES:
            candidate = candidate_dir / name
            if candidate.is_file():
                return candidate
    return None
