from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from location_sync.cli.main import EXIT_FATAL, EXIT_PARTIAL_FAILURE, EXIT_SUCCESS_ALL
from location_sync.cli.main import main as cli_main
from location_sync.remote.client import CatalogClient

"""Exit code contract: 0 all success, 2 partial failure, 1 fatal."""

HEADER = "id,shop_name,shop_malls,shop_location.type,shop_location.coordinates\n"


@pytest.fixture()
def mock_remote(fake_catalog):
    def _factory(cfg):
        return CatalogClient(cfg, transport=httpx.MockTransport(fake_catalog))

    with patch("location_sync.services.pipeline.CatalogClient", side_effect=_factory):
        yield fake_catalog


def _csv(temp_workdir: Path, body: str) -> str:
    f = temp_workdir / "data" / "in.csv"
    f.write_text(HEADER + body, encoding="utf-8")
    return str(f)


def test_exit_code_values():
    assert (EXIT_SUCCESS_ALL, EXIT_FATAL, EXIT_PARTIAL_FAILURE) == (0, 1, 2)


def test_exit_code_fatal_startup(temp_workdir: Path, capsys):
    # config/sync.yml 無し → exit 1
    code = cli_main(["data/in.csv"])
    assert code == EXIT_FATAL
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_all_success(write_config, temp_workdir: Path, mock_remote):
    path = _csv(temp_workdir, 'A1,"One","[]",Point,"[57.5,-20.1]"\nA2,"Two","[]",Point,"[57.6,-20.2]"\n')
    assert cli_main([path]) == EXIT_SUCCESS_ALL


def test_warning_rows_do_not_fail_the_run(write_config, temp_workdir: Path, mock_remote):
    path = _csv(temp_workdir, 'A1,"One","[]",Point,"[1,2,3]"\n')
    assert cli_main([path]) == EXIT_SUCCESS_ALL
    assert mock_remote.patched_ids() == ["A1"]


def test_exit_code_partial_on_error_outcome(write_config, temp_workdir: Path, mock_remote, capsys):
    mock_remote.patch_responses["A2"] = (200, {"data": None})
    path = _csv(temp_workdir, 'A1,"One","[]",Point,"[57.5,-20.1]"\nA2,"Two","[]",Point,"[57.6,-20.2]"\n')
    assert cli_main([path]) == EXIT_PARTIAL_FAILURE
    assert "attempted=2 success=1 error=1" in capsys.readouterr().out


def test_exit_code_partial_on_invalid_row(write_config, temp_workdir: Path, mock_remote):
    path = _csv(temp_workdir, 'A1,"One","[]",Point,"[57.5,-20.1]"\nA2,"","[]",Point,"[57.6,-20.2]"\n')
    assert cli_main([path]) == EXIT_PARTIAL_FAILURE


def test_exit_code_fatal_on_connectivity(write_config, temp_workdir: Path, mock_remote):
    mock_remote.probe_error = httpx.ConnectError("connection refused")
    path = _csv(temp_workdir, 'A1,"One","[]",Point,"[57.5,-20.1]"\n')
    assert cli_main([path]) == EXIT_FATAL
