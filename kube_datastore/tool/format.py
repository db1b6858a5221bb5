"""Library for formatting output."""

from abc import ABC, abstractmethod
from dataclasses import fields, is_dataclass
import json
import sys
from typing import Any, Generator, TextIO

import yaml
from mashumaro import DataClassDictMixin

from kube_datastore.model import KVPair


PADDING = 4


def kvp_dict(kvp: KVPair) -> dict[str, Any]:
    """Return a serializable representation of a KVPair."""
    key = kvp.key
    key_dict = {f.name: getattr(key, f.name) for f in fields(key)} if is_dataclass(key) else {}
    value = kvp.value
    if isinstance(value, DataClassDictMixin):
        value = value.to_dict()
    return {
        "key": {"type": str(key.model_type), **key_dict},
        "revision": kvp.revision,
        "value": value,
    }


def format_columns(
    headers: list[str], rows: list[list[str]]
) -> Generator[str, None, None]:
    """Print the specified output rows in a column format."""
    data = [headers] + rows
    widths = [0] * len(headers)
    for row in data:
        for i, value in enumerate(row):
            widths[i] = max(widths[i], len(str(value)))
    format_string = "".join([f"{{:{w+PADDING}}}" for w in widths])
    for row in data:
        yield format_string.format(*[str(x) for x in row]).rstrip()


class Formatter(ABC):
    """A formatter that prints KVPairs."""

    @abstractmethod
    def format(self, kvpairs: list[KVPair]) -> Generator[str, None, None]:
        """Format the KVPairs."""

    def print(self, kvpairs: list[KVPair], file: TextIO | None = None) -> None:
        """Output the KVPairs, to stdout unless a file is given."""
        output = file or sys.stdout
        for result in self.format(kvpairs):
            print(result, file=output)


class TableFormatter(Formatter):
    """A formatter that prints human readable console output."""

    def format(self, kvpairs: list[KVPair]) -> Generator[str, None, None]:
        if not kvpairs:
            return
        rows = []
        for kvp in kvpairs:
            key = kvp_dict(kvp)["key"]
            rows.append(
                [
                    str(key.get("namespace") or ""),
                    str(key.get("name") or kvp.key),
                    kvp.revision,
                ]
            )
        yield from format_columns(["NAMESPACE", "NAME", "REVISION"], rows)


class YamlFormatter(Formatter):
    """A formatter that prints yaml output."""

    def format(self, kvpairs: list[KVPair]) -> Generator[str, None, None]:
        content = yaml.dump_all(
            [kvp_dict(kvp) for kvp in kvpairs], sort_keys=False, explicit_start=True
        )
        yield from content.rstrip("\n").split("\n")


class JsonFormatter(Formatter):
    """A formatter that prints json output."""

    def format(self, kvpairs: list[KVPair]) -> Generator[str, None, None]:
        yield json.dumps([kvp_dict(kvp) for kvp in kvpairs], indent=2, default=str)


FORMATTERS: dict[str, type[Formatter]] = {
    "table": TableFormatter,
    "yaml": YamlFormatter,
    "json": JsonFormatter,
}
