"""Configuration utilities for age window detection."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CLASSIFIER_URL = "https://askai.aiclub.world/018cb7b9-ad1c-4c60-84a1-267fac249865"


class DetectionSettings(BaseSettings):
    """Pipeline configuration sourced from environment variables, a YAML profile, or defaults."""

    model_config = SettingsConfigDict(env_prefix="AGEDET_", case_sensitive=False, extra="ignore")

    classifier_url: str = Field(default=DEFAULT_CLASSIFIER_URL, description="Remote classifier endpoint")
    request_timeout_seconds: float = Field(default=10.0, gt=0.0)
    max_concurrent_requests: int = Field(default=16, ge=1)
    jpeg_quality: int = Field(default=10, ge=1, le=100)
    pyramid_scale: float = Field(default=1.25, gt=1.0)
    min_size: Tuple[int, int] = Field(default=(150, 150))
    window_size: Optional[Tuple[int, int]] = Field(
        default=None,
        description="Sliding window (width, height); derived from window_fraction when unset.",
    )
    window_fraction: float = Field(default=0.2, gt=0.0, le=1.0)
    window_step: int = Field(default=30, ge=1)
    initial_threshold: float = Field(default=0.93, ge=0.0, le=1.0)
    threshold_decay: float = Field(default=0.02, ge=1e-6)
    max_attempts: int = Field(default=10, ge=0)
    overlap_threshold: float = Field(default=0.3, ge=0.0, le=1.0)
    detect_objects: bool = Field(default=True, description="Run sliding-window detection after classification.")
    log_format: str = Field(default="text")
    output_dir: Path = Field(default=Path("results"), description="Directory for annotated images and reports.")
    box_color_bgr: List[int] = Field(default_factory=lambda: [0, 255, 0])
    box_thickness: int = Field(default=2, ge=1)

    @field_validator("min_size", "window_size")
    @classmethod
    def _positive_dimensions(cls, value: Optional[Tuple[int, int]]) -> Optional[Tuple[int, int]]:
        if value is None:
            return value
        if value[0] <= 0 or value[1] <= 0:
            raise ValueError(f"dimensions must be positive, got {value}")
        return value

    @field_validator("log_format")
    @classmethod
    def _known_log_format(cls, value: str) -> str:
        if value not in {"text", "json"}:
            raise ValueError(f"Unsupported log format: {value}")
        return value

    @field_validator("output_dir", mode="before")
    @classmethod
    def _expand_dir(cls, value: str | Path) -> Path:
        return Path(value).expanduser()

    def resolve_window_size(self, image_width: int) -> Tuple[int, int]:
        """Return the configured window, or a square one fifth of the image width by default."""

        if self.window_size is not None:
            return self.window_size
        edge = max(1, int(image_width * self.window_fraction))
        return edge, edge


def load_profile(path: Path) -> Dict[str, Any]:
    """Read a YAML settings profile; an empty file yields no values."""

    with path.open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
    if not isinstance(payload, dict):
        raise ValueError(f"Settings profile must be a mapping: {path}")
    return payload


def load_settings(profile_path: Optional[Path] = None, **overrides: object) -> DetectionSettings:
    """Return settings, layering explicit overrides over an optional YAML profile."""

    values: Dict[str, Any] = {}
    if profile_path is not None:
        values.update(load_profile(Path(profile_path).expanduser()))
    values.update(overrides)
    return DetectionSettings(**values)
