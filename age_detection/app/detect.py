"""Entry point for age-group classification and sliding-window detection on one image."""
from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from .config.settings import DetectionSettings, load_settings
from .models import Exhausted, Success
from .services.classifier_client import ClassifierClient
from .services.output_writer import OutputManager
from .services.pipeline import DetectionPipeline, DetectionSession
from .utils.image import load_image_bgr

LOGGER = logging.getLogger(__name__)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Age group prediction with sliding-window detection")
    parser.add_argument("--image", type=str, required=True, help="Path to an input image")
    parser.add_argument("--profile", type=str, default=None, help="YAML settings profile")
    parser.add_argument("--url", type=str, default=None, help="Classifier endpoint URL")
    parser.add_argument("--threshold", type=float, default=None, help="Initial acceptance threshold")
    parser.add_argument("--max-attempts", type=int, default=None, help="Threshold relaxation attempts")
    parser.add_argument("--step", type=int, default=None, help="Sliding window stride in pixels")
    parser.add_argument("--window", type=int, nargs=2, metavar=("W", "H"), default=None, help="Sliding window size")
    parser.add_argument("--overlap", type=float, default=None, help="Suppression overlap threshold")
    parser.add_argument("--workers", type=int, default=None, help="Concurrent classifier requests")
    parser.add_argument("--no-detect", action="store_true", help="Only classify the whole image")
    parser.add_argument("--outdir", type=str, default=None, help="Output directory")
    parser.add_argument("--log-format", choices=["text", "json"], default=None, help="Logging format")
    return parser


def setup_logging(settings: DetectionSettings) -> None:
    log_level = logging.INFO
    if settings.log_format == "json":
        formatter = logging.Formatter('{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}')
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    logging.basicConfig(level=log_level, handlers=[handler])


def resolve_settings(args: argparse.Namespace) -> DetectionSettings:
    overrides = {}
    if args.url:
        overrides["classifier_url"] = args.url
    if args.threshold is not None:
        overrides["initial_threshold"] = args.threshold
    if args.max_attempts is not None:
        overrides["max_attempts"] = args.max_attempts
    if args.step:
        overrides["window_step"] = args.step
    if args.window:
        overrides["window_size"] = tuple(args.window)
    if args.overlap is not None:
        overrides["overlap_threshold"] = args.overlap
    if args.workers:
        overrides["max_concurrent_requests"] = args.workers
    if args.no_detect:
        overrides["detect_objects"] = False
    if args.outdir:
        overrides["output_dir"] = Path(args.outdir)
    if args.log_format:
        overrides["log_format"] = args.log_format

    profile = Path(args.profile) if args.profile else None
    return load_settings(profile, **overrides)


def _log_loading(loading: bool) -> None:
    LOGGER.info("Detection %s", "running" if loading else "finished")


def run_detection(args: argparse.Namespace) -> int:
    settings = resolve_settings(args)
    setup_logging(settings)

    image_path = Path(args.image)
    try:
        image = load_image_bgr(image_path)
    except ValueError as exc:
        LOGGER.error("%s", exc)
        return 1

    LOGGER.info("Processing %s (%dx%d)", image_path, image.shape[1], image.shape[0])
    client = ClassifierClient.from_settings(settings)
    pipeline = DetectionPipeline(settings, client)
    try:
        report = DetectionSession(pipeline, on_loading=_log_loading).submit(image)
    finally:
        pipeline.close()
        client.close()

    LOGGER.info("Predicted age group: %s", report.age_group or "unknown")
    if isinstance(report.outcome, Success):
        LOGGER.info(
            "Kept %d detections at threshold %.2f",
            len(report.outcome.detections),
            report.outcome.threshold,
        )
    elif isinstance(report.outcome, Exhausted):
        LOGGER.info("No detections after %d attempts", report.outcome.attempts)

    output_manager = OutputManager(settings, metadata={"source": str(image_path)})
    output_manager.save_report(report, image_path.stem)
    return 0


def main() -> None:
    parser = build_arg_parser()
    args = parser.parse_args()

    def handle_interrupt(signum: int, frame: Optional[object]) -> None:  # pragma: no cover - signal handling
        LOGGER.warning("Received interrupt signal (%d), shutting down", signum)
        sys.exit(0)

    signal.signal(signal.SIGINT, handle_interrupt)
    sys.exit(run_detection(args))


if __name__ == "__main__":  # pragma: no cover
    main()
