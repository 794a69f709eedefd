"""
Configuration module using Pydantic Settings.

Project-level settings read from the environment or a ``.env`` file: logging,
where parameter files and results live, and how replicas are seeded. The
physical parameters of a single simulation live in
:mod:`oscsim.data.osc_parameters`.
"""

import logging
import sys
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..data.osc_parameters import SimulationParameters, get_parameters_for_architecture

# Logger that emits one DEBUG line per executed event
EVENT_TRACE_LOGGER = "oscsim.kmc.simulator"


class LogConfig(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Logging level")
    file: str | None = Field(default="logs/oscsim.log", description="Log file path")
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string",
    )
    trace_events: bool = Field(
        default=False, description="Log every executed event at DEBUG level"
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate logging level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of {valid_levels}")
        return v.upper()


class PathConfig(BaseSettings):
    """Locations of parameter files, results and logs."""

    configs_dir: Path = Field(
        default=Path("experiments/configs"), description="Parameter file directory"
    )
    results_dir: Path = Field(default=Path("results"), description="Results directory")

    def ensure_dirs(self) -> None:
        self.results_dir.mkdir(parents=True, exist_ok=True)

    def resolve_config(self, name: str | Path) -> Path:
        """
        Find a parameter file.

        An existing path is returned as is; otherwise the name is looked up in
        ``configs_dir``, with or without its ``.yaml`` suffix.

        Raises:
            FileNotFoundError: If no matching file exists.
        """
        path = Path(name)
        if path.is_file():
            return path
        for candidate in (self.configs_dir / path, self.configs_dir / f"{path}.yaml"):
            if candidate.is_file():
                return candidate
        raise FileNotFoundError(f"No parameter file '{name}' (searched {self.configs_dir})")


class RuntimeConfig(BaseSettings):
    """Replica and random number configuration."""

    seed: int | None = Field(default=None, description="Base random seed for reproducibility")
    n_replicas: int = Field(default=1, description="Number of independent replicas", gt=0)
    status_interval: int = Field(
        default=100000, description="Events between status log lines", gt=0
    )

    def replica_seed(self, replica_id: int) -> int | None:
        """Seed for one replica; each replica gets its own stream."""
        if self.seed is None:
            return None
        return self.seed + replica_id


class Settings(BaseSettings):
    """Main settings class combining all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    project_name: str = Field(default="oscsim", description="Project name")
    default_architecture: Literal["neat", "bilayer", "random_blend"] = Field(
        default="neat", description="Parameter preset used when no parameter file is given"
    )

    log: LogConfig = Field(default_factory=LogConfig)
    paths: PathConfig = Field(default_factory=PathConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)

    def setup_logging(self) -> logging.Logger:
        """
        Configure the root handlers and return the project logger.

        Per-event traces stay at INFO unless ``log.trace_events`` is set, so a
        global DEBUG level does not flood the output with one line per event.

        Returns:
            Configured logger instance.
        """
        handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
        if self.log.file:
            log_path = Path(self.log.file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_path))

        logging.basicConfig(
            level=getattr(logging, self.log.level),
            format=self.log.format,
            handlers=handlers,
            force=True,
        )
        trace_logger = logging.getLogger(EVENT_TRACE_LOGGER)
        if self.log.trace_events:
            trace_logger.setLevel(logging.DEBUG)
        else:
            trace_logger.setLevel(max(logging.INFO, logging.root.level))

        logger = logging.getLogger(self.project_name)
        logger.info(f"Logging initialized at level {self.log.level}")
        return logger

    def default_parameters(self) -> SimulationParameters:
        """Parameter preset for ``default_architecture``."""
        return get_parameters_for_architecture(self.default_architecture)

    def run_metadata(self) -> dict[str, dict]:
        """
        Settings that affect a run, for storing next to its results.

        Returns:
            Dictionary containing the runtime and path settings.
        """
        return {
            "runtime": self.runtime.model_dump(),
            "paths": {k: str(v) for k, v in self.paths.model_dump().items()},
        }


# Global settings instance
settings = Settings()
