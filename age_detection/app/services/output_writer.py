"""Persist annotated images and detection reports."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from ..config.settings import DetectionSettings
from ..models import DetectionReport
from ..utils.image import save_image_bgr

LOGGER = logging.getLogger(__name__)

SCHEMA_VERSION = 1


@dataclass
class SavedArtifacts:
    image_path: Path
    report_path: Path


class OutputManager:
    """Write one annotated image and one JSON report per processed source image."""

    def __init__(self, settings: DetectionSettings, metadata: Optional[Dict[str, Any]] = None) -> None:
        self.settings = settings
        self.output_dir = settings.output_dir
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.metadata: Dict[str, Any] = metadata or {}

    def save_report(self, report: DetectionReport, stem: str) -> SavedArtifacts:
        safe_stem = stem.lower().replace(" ", "_") or "image"
        image_path = self.output_dir / f"{safe_stem}_annotated.jpg"
        report_path = self.output_dir / f"{safe_stem}_report.json"

        save_image_bgr(image_path, report.annotated)
        payload = {
            "schema_version": SCHEMA_VERSION,
            "generated_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
            "metadata": self.metadata,
            "annotated_image": image_path.name,
            **report.to_dict(),
        }
        self._write_json(report_path, payload)
        LOGGER.info("Saved %s and %s", image_path, report_path)
        return SavedArtifacts(image_path=image_path, report_path=report_path)

    @staticmethod
    def _write_json(target: Path, payload: Dict[str, Any]) -> None:
        temp_path = target.with_suffix(".tmp.json")
        with temp_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
        temp_path.replace(target)
