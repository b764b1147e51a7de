"""
Engine settings, loaded from the environment or passed explicitly.
"""

import os
import typing as t
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from genbatch.exceptions import ConfigurationError

ENV_PREFIX = "GENBATCH_"


class EngineSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    concurrency: int = Field(
        default=5, ge=1, description="max concurrent submissions, also the batch size"
    )
    max_attempts: int = Field(default=3, ge=1, description="submission attempts per job")
    batch_delay_seconds: float = Field(
        default=0.0, ge=0.0, description="pause between two submission batches"
    )
    rate_limit_cooldown_seconds: float = Field(
        default=30.0, ge=0.0, description="minimum wait after a rate-limited submission"
    )
    backoff_base_seconds: float = Field(default=0.2, ge=0.0, description="first retry delay")
    backoff_factor: float = Field(default=1.6, ge=1.0, description="retry delay multiplier")
    backoff_max_seconds: float = Field(default=5.0, ge=0.0, description="retry delay cap")
    backoff_jitter: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="optional random fraction added to retry delays, 0 keeps them deterministic",
    )
    poll_interval_seconds: float = Field(default=5.0, ge=0.0, description="pause between sweeps")
    poll_timeout_seconds: float = Field(
        default=30 * 60, gt=0.0, description="deadline of one polling pass"
    )
    storage_dir: Path = Field(
        default=Path("artifacts"), description="root directory for downloaded artifacts"
    )
    artifact_suffix: str = Field(
        default=".mp4", description="suffix appended to remote names that have none"
    )
    api_key: str | None = Field(
        default=None, repr=False, description="credential configured in the user settings"
    )
    api_key_env_var: str = Field(
        default=f"{ENV_PREFIX}API_KEY", description="environment variable holding a credential"
    )
    platforms: tuple[str, ...] = Field(
        default=(), description="credential library platforms to use, empty means all"
    )

    @model_validator(mode="after")
    def validate_rate_limit_cooldown(self) -> "EngineSettings":
        """A rate-limit wait must outlast any ordinary backoff delay."""
        if self.rate_limit_cooldown_seconds <= self.backoff_max_seconds:
            raise ValueError(
                "rate_limit_cooldown_seconds must be greater than backoff_max_seconds"
            )
        return self

    @classmethod
    def from_env(cls, **overrides: t.Any) -> "EngineSettings":
        """
        Build settings from ``GENBATCH_*`` environment variables.

        ``api_key`` is never read from the environment: ``GENBATCH_API_KEY`` is
        the environment credential picked up by the credential pool.

        Parameters
        ----------
        **overrides : typing.Any
            Explicit values taking precedence over the environment. ``None``
            values are ignored.

        Returns
        -------
        EngineSettings
            Validated settings.

        Raises
        ------
        ConfigurationError
            If a value cannot be validated.
        """
        load_dotenv(override=False)
        values: dict[str, t.Any] = {}
        for field_name in cls.model_fields:
            # the settings credential comes from the settings store, the env one is read by the pool
            if field_name == "api_key":
                continue
            raw = os.getenv(f"{ENV_PREFIX}{field_name.upper()}")
            if raw is None or raw == "":
                continue
            if field_name == "platforms":
                values[field_name] = tuple(
                    item.strip().lower() for item in raw.split(",") if item.strip()
                )
            else:
                values[field_name] = raw
        values.update({key: value for key, value in overrides.items() if value is not None})
        try:
            return cls.model_validate(values)
        except ValidationError as error:
            raise ConfigurationError(f"Invalid engine settings: {error}") from error
