"""Command line tool for inspecting and resetting a Kubernetes backed datastore."""

import argparse
import logging
import sys
import traceback

from kube_datastore.exceptions import DatastoreException
from . import clean, get

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Command line utility for inspecting a Kubernetes backed datastore.",
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    )
    parser.add_argument(
        "--config",
        "-c",
        default=None,
        help="Path to a CalicoAPIConfig file. Defaults to the environment.",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    get.GetAction.register(subparsers)
    get.ListAction.register(subparsers)
    clean.CleanAction.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> None:
    """Kube-datastore command line tool main entry point."""
    parser = _make_parser()
    args = parser.parse_args(argv)

    if args.log_level:
        logging.basicConfig(level=args.log_level)

    action = args.cls()
    try:
        action.run(**vars(args))
    except DatastoreException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("kube-datastore error: ", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
