"""Flags and helpers shared by the kube-datastore actions."""

from argparse import ArgumentParser
import logging
import os
import pathlib

from kube_datastore.backend import KubeBackend, new_kube_backend
from kube_datastore.config import DatastoreConfig, read_config

from .format import FORMATTERS

_LOGGER = logging.getLogger(__name__)


def add_output_flags(args: ArgumentParser) -> None:
    """Add the output format flag to a subcommand."""
    args.add_argument(
        "--output",
        "-o",
        choices=sorted(FORMATTERS),
        default="table",
        help="Output format of the command",
    )


def add_selector_flags(args: ArgumentParser) -> None:
    """Add the kind and namespace flags to a subcommand."""
    args.add_argument(
        "kind",
        help="Kind of the resource e.g. IPPool, NetworkPolicy",
    )
    args.add_argument(
        "--namespace",
        "-n",
        default=None,
        help="Namespace of a namespaced resource",
    )


def load_config(config: str | None) -> DatastoreConfig:
    """Load the datastore config from a file, or from the environment."""
    if config:
        return read_config(pathlib.Path(config))
    _LOGGER.debug("No config file specified, reading config from the environment")
    return DatastoreConfig.from_env(os.environ)


def create_backend(config: str | None) -> KubeBackend:
    """Create a backend from the command line config."""
    return new_kube_backend(load_config(config))
