"""Command-line interface for coursework.

Provides subcommands that render the CNN lecture report and the listings dashboard.
"""
from __future__ import annotations

import argparse
import logging
import pathlib
from typing import Optional

from .config import settings
from .logging_config import setup_logging

logger = logging.getLogger(__name__)


def _path_type(path_str: str) -> pathlib.Path:
    return pathlib.Path(path_str).expanduser().resolve()


def _run_lecture(args: argparse.Namespace) -> int:
    from .cnn import load_mnist
    from .experiments.cnn_lecture import build_lecture

    data = load_mnist(n_train=args.train_size, n_test=args.test_size, download=not args.no_download)
    path = build_lecture(
        data=data,
        epochs=1 if args.quick else args.epochs,
        quick=args.quick,
        include_transfer=not args.skip_transfer,
        pretrained=args.pretrained,
        save_results=not args.no_save,
        output_dir=args.output,
    )
    print(path)
    return 0


def _run_dashboard(args: argparse.Namespace) -> int:
    from .experiments.listings_dashboard import build_dashboard

    path = build_dashboard(
        listings_path=args.listings,
        max_map_points=args.max_map_points,
        table_rows=args.table_rows,
        output_dir=args.output,
        save_clean=args.save_clean,
    )
    print(path)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Render the CNN lecture and the listings dashboard")
    parser.add_argument("--log-level", default=None, help="Overrides LOG_LEVEL")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # lecture
    lecture = subparsers.add_parser("lecture", help="Train the lecture's models and write the HTML report")
    lecture.add_argument("--train-size", type=int, default=settings.mnist_train_size)
    lecture.add_argument("--test-size", type=int, default=settings.mnist_test_size)
    lecture.add_argument("--epochs", type=int, default=settings.epochs)
    lecture.add_argument("--quick", action="store_true", help="One epoch, two settings per comparison")
    lecture.add_argument("--skip-transfer", action="store_true", help="Leave out the transfer-learning section")
    lecture.add_argument("--pretrained", action="store_true", help="Download ImageNet weights for the transfer model")
    lecture.add_argument("--no-download", action="store_true", help="Fail instead of downloading MNIST")
    lecture.add_argument("--no-save", action="store_true", help="Don't keep per-experiment artifacts")
    lecture.add_argument("--output", type=_path_type, default=None, help="Report directory")
    lecture.set_defaults(func=_run_lecture)

    # dashboard
    dashboard = subparsers.add_parser("dashboard", help="Write the listings dashboard")
    dashboard.add_argument("--listings", type=_path_type, default=None, help="Listings CSV (default: data/raw)")
    dashboard.add_argument("--max-map-points", type=int, default=settings.map_max_points)
    dashboard.add_argument("--table-rows", type=int, default=100)
    dashboard.add_argument("--output", type=_path_type, default=None, help="Dashboard directory")
    dashboard.add_argument("--save-clean", action="store_true", help="Also write the cleaned listings to data/processed")
    dashboard.set_defaults(func=_run_dashboard)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
