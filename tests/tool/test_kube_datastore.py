"""Tests for the kube-datastore command line tool."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from kube_datastore.clean import CleanFailure, CleanReport
from kube_datastore.exceptions import ResourceDoesNotExistError
from kube_datastore.model import KVPair, KVPairList, ResourceKey, ResourceListOptions
from kube_datastore.tool import common
from kube_datastore.tool.kube_datastore import main

POOL_KEY = ResourceKey("IPPool", "pool-1")


@pytest.fixture(name="backend")
def mock_backend(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    """Fixture replacing the backend built from the command line config."""
    backend = MagicMock()
    configs: list[str | None] = []

    def create_backend(config: str | None) -> MagicMock:
        configs.append(config)
        return backend

    monkeypatch.setattr(common, "create_backend", create_backend)
    backend.configs = configs
    return backend


def test_get(backend: MagicMock, capsys: pytest.CaptureFixture[str]) -> None:
    """Test getting a resource as yaml."""
    backend.get.return_value = KVPair(POOL_KEY, {"spec": {"cidr": "10.0.0.0/16"}}, "5")

    main(["--config", "calico.yaml", "get", "IPPool", "pool-1", "-o", "yaml"])

    backend.get.assert_called_once_with(POOL_KEY)
    backend.close.assert_called_once()
    assert backend.configs == ["calico.yaml"]
    out = capsys.readouterr().out
    assert "name: pool-1" in out
    assert "cidr: 10.0.0.0/16" in out


def test_get_missing(backend: MagicMock, capsys: pytest.CaptureFixture[str]) -> None:
    """Test a datastore error is reported and exits non-zero."""
    backend.get.side_effect = ResourceDoesNotExistError(POOL_KEY)

    with pytest.raises(SystemExit) as exc_info:
        main(["get", "IPPool", "pool-1"])

    assert exc_info.value.code == 1
    assert "kube-datastore error" in capsys.readouterr().err
    backend.close.assert_called_once()


def test_list(backend: MagicMock, capsys: pytest.CaptureFixture[str]) -> None:
    """Test listing resources in a namespace as a table."""
    backend.list.return_value = KVPairList(
        [KVPair(ResourceKey("NetworkPolicy", "allow", "apps"), {}, "9")]
    )

    main(["list", "NetworkPolicy", "-n", "apps"])

    backend.list.assert_called_once_with(
        ResourceListOptions(kind="NetworkPolicy", namespace="apps")
    )
    out = capsys.readouterr().out
    assert "NAMESPACE" in out
    assert "allow" in out


def test_list_empty(backend: MagicMock, capsys: pytest.CaptureFixture[str]) -> None:
    """Test listing a kind with no resources."""
    backend.list.return_value = KVPairList()

    main(["ls", "Tier"])

    assert "No Tier resources found" in capsys.readouterr().out


def test_clean_requires_confirmation(
    backend: MagicMock, capsys: pytest.CaptureFixture[str]
) -> None:
    """Test clean does nothing without confirmation."""
    main(["clean"])

    assert backend.configs == []
    assert "--yes" in capsys.readouterr().err


def test_clean(backend: MagicMock, capsys: pytest.CaptureFixture[str]) -> None:
    """Test clean prints a summary of the report."""
    backend.clean.return_value = CleanReport(
        deleted=3,
        updated=1,
        failures=[CleanFailure(POOL_KEY, "Delete", RuntimeError("boom"))],
    )

    main(["clean", "--yes"])

    out = capsys.readouterr().out
    assert "Deleted 3 entries, updated 1 nodes, 1 failures" in out
    assert "Delete IPPool/pool-1: boom" in out


def test_invalid_config_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Test an invalid config file is reported."""
    config = tmp_path / "calico.yaml"
    config.write_text("kind: ConfigMap\n")

    with pytest.raises(SystemExit):
        main(["--config", str(config), "list", "IPPool"])

    assert "Invalid config kind" in capsys.readouterr().err
