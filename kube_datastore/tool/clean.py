"""Kube-datastore clean action."""

import logging
import sys
from argparse import (
    ArgumentParser,
    BooleanOptionalAction,
    _SubParsersAction as SubParsersAction,
)
from typing import cast

from . import common


_LOGGER = logging.getLogger(__name__)


class CleanAction:
    """Remove all Calico-creatable data from the datastore."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "clean",
                help="Remove all Calico data from the cluster",
                description=(
                    "Best-effort removal of all Calico-creatable data, intended "
                    "for resetting test clusters"
                ),
            ),
        )
        args.add_argument(
            "--yes",
            default=False,
            action=BooleanOptionalAction,
            help="Confirm the data should be removed",
        )
        args.set_defaults(cls=cls)
        return args

    def run(  # type: ignore[no-untyped-def]
        self,
        config: str | None,
        yes: bool,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Action implementation."""
        if not yes:
            print("Refusing to clean the datastore without --yes", file=sys.stderr)
            return
        backend = common.create_backend(config)
        try:
            report = backend.clean()
        finally:
            backend.close()
        print(
            f"Deleted {report.deleted} entries, updated {report.updated} nodes, "
            f"{len(report.failures)} failures"
        )
        for failure in report.failures:
            print(f"  {failure}")
