"""Command-line interface for spatialrf."""

from __future__ import annotations

import argparse
import json
import sys
from argparse import ArgumentParser
from pathlib import Path
from typing import Any, Dict, Optional

from spatialrf import __version__
from spatialrf.application.use_cases.spatial_regression import WorkflowConfig, run_spatial_regression
from spatialrf.domain.exceptions import ConfigurationError, SpatialRFException
from spatialrf.logging import build_error_report, clear_recent_log_output, create_logger, show_error


class _CLIProgress:
    """Simple stdout progress helper for CLI users."""

    def __init__(self) -> None:
        self._last_text: str = ""
        self._last_percent: int = -1

    def setProgress(self, value: float | int) -> None:
        percent = max(0, min(100, int(float(value))))
        if percent != self._last_percent:
            self._last_percent = percent
            print(f"[spatialrf] progress {percent}%", flush=True)

    def setProgressText(self, text: str) -> None:
        message = text.strip()
        if message and message != self._last_text:
            self._last_text = message
            print(f"[spatialrf] {message}", flush=True)


def _parse_json_arg(value: Optional[str], option: str) -> Dict[str, Any]:
    """Parse an inline JSON object or ``@path`` to a JSON file."""
    if value is None:
        return {}
    trimmed = value.strip()
    if not trimmed:
        return {}
    try:
        if trimmed.startswith("@"):
            file_path = Path(trimmed[1:])
            if not file_path.exists():
                raise ConfigurationError(f"{option} file not found: {file_path}", config_key=option)
            parsed = json.loads(file_path.read_text(encoding="utf-8"))
        else:
            parsed = json.loads(trimmed)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"{option} is not valid JSON: {exc}", config_key=option) from exc
    except OSError as exc:
        raise ConfigurationError(f"Cannot read {option} file: {exc}", config_key=option) from exc
    if not isinstance(parsed, dict):
        raise ConfigurationError(f"{option} must be a JSON object", config_key=option)
    return parsed


_ARG_TO_CONFIG = {
    "raster": "raster_path",
    "points": "points_path",
    "target": "target",
    "output_dir": "output_dir",
    "layer": "layer",
    "learner": "learner",
    "measure": "measure",
    "holdout_ratio": "holdout_ratio",
    "spatial_resampling": "spatial_resampling",
    "folds": "folds",
    "block_size": "block_size",
    "domain": "domain_path",
    "resolution": "resolution",
    "n_evals": "n_evals",
    "n_jobs": "n_jobs",
    "seed": "seed",
}


def build_config(args: argparse.Namespace) -> WorkflowConfig:
    """Merge ``--config`` with explicit options; explicit options win."""
    values = _parse_json_arg(args.config, "--config")
    for arg_name, config_key in _ARG_TO_CONFIG.items():
        value = getattr(args, arg_name)
        if value is not None:
            values[config_key] = value
    if args.learner_params is not None:
        values["learner_params"] = _parse_json_arg(args.learner_params, "--learner-params")
    if args.tuning is not None:
        values["tuning"] = _parse_json_arg(args.tuning, "--tuning")
    if args.features:
        values["features"] = [name.strip() for name in args.features.split(",") if name.strip()]
    if args.coords_as_features:
        values["coords_as_features"] = True
    if args.reproject:
        values["reproject"] = True

    missing = [key for key in ("raster_path", "points_path", "target") if not values.get(key)]
    if missing:
        raise ConfigurationError(f"Missing required settings: {', '.join(missing)}", config_key=missing[0])
    return WorkflowConfig.from_dict(values)


def _failure_context(args: argparse.Namespace, exc: SpatialRFException) -> str:
    """Error report shown for failed --verbose runs."""
    create_logger("spatialrf.cli").exception(f"{type(exc).__name__} during spatialrf run", exc)
    options = {
        name: value for name, value in vars(args).items() if name != "func" and value is not None and value is not False
    }
    return build_error_report("spatialrf CLI Error", str(exc), context=f"Command line options: {options}")


def _run(args: argparse.Namespace) -> int:
    progress = _CLIProgress()
    clear_recent_log_output()
    try:
        config = build_config(args)
        result = run_spatial_regression(config, feedback=progress)
    except SpatialRFException as exc:
        context = _failure_context(args, exc) if args.verbose else None
        show_error("spatialrf CLI Error", str(exc), context)
        return 1

    print(f"Holdout {config.measure}: {result.holdout_score:.4f}")
    if result.tuning is not None:
        print(f"Tuned {dict(result.tuning.best_params)}: {config.measure} = {result.tuning.best_score:.4f}")
    elif result.spatial_resample is not None:
        print(f"Spatial {config.measure}: {result.spatial_resample.aggregate:.4f}")
    for name, path in result.outputs.items():
        print(f"{name}: {path}")
    return 0


def _configure_cli() -> ArgumentParser:
    parser = argparse.ArgumentParser(prog="spatialrf", description="Spatial random-forest regression workflow")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run load, evaluate, tune and predict")
    run_parser.add_argument("--config", help="JSON string or @path to JSON file with workflow settings")
    run_parser.add_argument("--raster", help="Path to covariate raster")
    run_parser.add_argument("--points", help="Path to response point layer")
    run_parser.add_argument("--target", help="Response attribute name")
    run_parser.add_argument("--layer", help="Layer name in the point file")
    run_parser.add_argument("--output-dir", help="Directory for the prediction, model and tuning archive")
    run_parser.add_argument("--features", help="Comma separated feature columns (default: all covariates)")
    run_parser.add_argument("--coords-as-features", action="store_true", help="Use x/y as features")
    run_parser.add_argument("--reproject", action="store_true", help="Reproject points to the raster CRS")
    run_parser.add_argument("--learner", help="Learner key, e.g. regr.ranger")
    run_parser.add_argument("--learner-params", help="JSON string or @path with fixed learner parameters")
    run_parser.add_argument("--tuning", help='JSON string or @path, e.g. {"mtry": [2, 4], "min.node.size": [5, 10]}')
    run_parser.add_argument("--measure", help="Measure key, e.g. regr.rmse")
    run_parser.add_argument("--holdout-ratio", type=float, help="Train share of the holdout split")
    run_parser.add_argument(
        "--spatial-resampling",
        choices=["spcv_block", "spcv_knndm", "cv"],
        help="Resampling used for tuning",
    )
    run_parser.add_argument("--folds", type=int, help="Number of folds")
    run_parser.add_argument("--block-size", type=float, help="Block side length for spcv_block, in CRS units")
    run_parser.add_argument("--domain", help="Polygon layer describing the prediction domain for spcv_knndm")
    run_parser.add_argument("--resolution", type=int, help="Grid points per tuning range")
    run_parser.add_argument("--n-evals", type=int, help="Maximum number of tuning combinations")
    run_parser.add_argument("--n-jobs", type=int, help="Parallel fits during tuning")
    run_parser.add_argument("--seed", type=int, help="Random seed")
    run_parser.add_argument(
        "--verbose", action="store_true", help="On failure, print a full error report"
    )
    run_parser.set_defaults(func=_run)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = _configure_cli()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
