"""
Runtime configuration for the structural audit core.

This module centralizes environment-driven configuration for evidence
gating, attention thresholds and sequence allocation behaviour.

Configuration is read-only at runtime. The 0.7 / 0.3 structural
weighting is deliberately NOT configurable.
"""

from __future__ import annotations

import logging
import os

from pydantic import BaseModel, Field, field_validator


class SurveyorConfig(BaseModel):
    """
    Runtime configuration for the structural audit core.

    Configuration is environment-driven and immutable once loaded.
    """

    # ------------------------------------------------------------------
    # Evidence policy
    # ------------------------------------------------------------------

    EVIDENCE_MIN_TEXT_LENGTH: int = Field(
        10,
        description=(
            "Minimum length of condition comments and repair methodology "
            "for ratings of 3 or below"
        ),
    )

    ENFORCE_PHOTO_URL_FORMAT: bool = Field(
        False,
        description="Require photos to be http(s) URLs of image files",
    )

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    ATTENTION_THRESHOLD: float = Field(
        3.0,
        description="Units with a combined score below this need attention",
    )

    # ------------------------------------------------------------------
    # Identity assignment
    # ------------------------------------------------------------------

    ALLOW_TIMESTAMP_SEQUENCE_FALLBACK: bool = Field(
        True,
        description=(
            "Permit the timestamp-derived sequence when existing codes "
            "cannot be looked up. Not collision-free."
        ),
    )

    REQUIRE_ZIP_CODE: bool = Field(
        False,
        description="Require a 6-digit zip code when assigning identity",
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    LOG_LEVEL: str = Field(
        "INFO",
        description="Root log level applied by configure_logging()",
    )

    # ------------------------------------------------------------------
    # Validators (Pydantic v2)
    # ------------------------------------------------------------------

    @field_validator("EVIDENCE_MIN_TEXT_LENGTH")
    @classmethod
    def validate_min_text_length(cls, v: int) -> int:
        if v < 1:
            raise ValueError("EVIDENCE_MIN_TEXT_LENGTH must be at least 1.")
        return v

    @field_validator("ATTENTION_THRESHOLD")
    @classmethod
    def validate_attention_threshold(cls, v: float) -> float:
        if not 1.0 <= v <= 5.0:
            raise ValueError(
                f"ATTENTION_THRESHOLD must lie on the rating scale 1-5, got {v}."
            )
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level = v.upper()
        if level not in allowed:
            raise ValueError(
                f"Unsupported LOG_LEVEL '{v}'. "
                f"Allowed values: {sorted(allowed)}"
            )
        return level

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls) -> "SurveyorConfig":
        """
        Load configuration from environment variables.

        All values are parsed once at startup and must remain immutable.
        """

        def env_bool(name: str, default: bool) -> bool:
            raw = os.getenv(name)
            if raw is None:
                return default
            return raw.lower() in {"1", "true", "yes", "on"}

        return cls(
            EVIDENCE_MIN_TEXT_LENGTH=int(
                os.getenv("SURVEYOR_EVIDENCE_MIN_TEXT_LENGTH", "10")
            ),
            ENFORCE_PHOTO_URL_FORMAT=env_bool(
                "SURVEYOR_ENFORCE_PHOTO_URL_FORMAT", False
            ),
            ATTENTION_THRESHOLD=float(
                os.getenv("SURVEYOR_ATTENTION_THRESHOLD", "3.0")
            ),
            ALLOW_TIMESTAMP_SEQUENCE_FALLBACK=env_bool(
                "SURVEYOR_ALLOW_TIMESTAMP_SEQUENCE_FALLBACK", True
            ),
            REQUIRE_ZIP_CODE=env_bool(
                "SURVEYOR_REQUIRE_ZIP_CODE", False
            ),
            LOG_LEVEL=os.getenv("SURVEYOR_LOG_LEVEL", "INFO"),
        )

    model_config = {
        "frozen": True,
    }


def configure_logging(config: SurveyorConfig) -> None:
    """
    Configure process-wide logging.

    Call once from the composition root. Library modules only obtain
    loggers and never configure handlers themselves.
    """
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
