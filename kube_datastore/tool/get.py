"""Kube-datastore get and list actions."""

import logging
from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
)
from typing import cast

from kube_datastore.model import ResourceKey, ResourceListOptions

from . import common
from .format import FORMATTERS


_LOGGER = logging.getLogger(__name__)


class GetAction:
    """Get a single resource."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "get",
                help="Get a resource",
                description="Print a single resource from the datastore",
            ),
        )
        common.add_selector_flags(args)
        args.add_argument("name", help="Name of the resource")
        common.add_output_flags(args)
        args.set_defaults(cls=cls)
        return args

    def run(  # type: ignore[no-untyped-def]
        self,
        config: str | None,
        kind: str,
        name: str,
        namespace: str | None,
        output: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Action implementation."""
        backend = common.create_backend(config)
        try:
            kvp = backend.get(ResourceKey(kind=kind, name=name, namespace=namespace))
        finally:
            backend.close()
        FORMATTERS[output]().print([kvp])


class ListAction:
    """List resources of a kind."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "list",
                aliases=["ls"],
                help="List resources",
                description="Print all resources of a kind from the datastore",
            ),
        )
        common.add_selector_flags(args)
        common.add_output_flags(args)
        args.set_defaults(cls=cls)
        return args

    def run(  # type: ignore[no-untyped-def]
        self,
        config: str | None,
        kind: str,
        namespace: str | None,
        output: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Action implementation."""
        backend = common.create_backend(config)
        try:
            result = backend.list(ResourceListOptions(kind=kind, namespace=namespace))
        finally:
            backend.close()
        if not result.kvpairs:
            print(f"No {kind} resources found")
            return
        FORMATTERS[output]().print(result.kvpairs)
