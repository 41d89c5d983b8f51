"""Tests for the command line entry point."""

from __future__ import annotations

import json

import pytest

from mcp_host.cli import _parser, main

from tests.fakes import stdio_config


@pytest.fixture
def state_args(tmp_path):
    return ["--state-dir", str(tmp_path / "state")]


class TestParser:
    """Tests for argument parsing."""

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            _parser().parse_args([])

    def test_reconcile_options(self):
        args = _parser().parse_args(
            ["--port", "4000", "reconcile", "--url", "http://h:1", "--interval", "5"]
        )
        assert args.port == 4000
        assert args.url == "http://h:1"
        assert args.interval == 5.0

    def test_log_level_choices(self):
        with pytest.raises(SystemExit):
            _parser().parse_args(["--log-level", "loud", "serve"])


class TestCatalogCommands:
    """Tests for add, export and import against a temporary state dir."""

    def test_add_then_export(self, state_args, capsys):
        assert main(state_args + ["add", json.dumps(stdio_config("files"))]) == 0
        capsys.readouterr()

        assert main(state_args + ["export"]) == 0

        document = json.loads(capsys.readouterr().out)
        assert [s["id"] for s in document["servers"]] == ["files"]
        assert document["servers"][0]["command"] == "files"

    def test_add_duplicate(self, state_args, capsys):
        config = json.dumps(stdio_config("files"))
        main(state_args + ["add", config])

        assert main(state_args + ["add", config]) == 1
        assert "already exists" in capsys.readouterr().err

    def test_add_invalid_json(self, state_args, capsys):
        assert main(state_args + ["add", "{nope"]) == 2
        assert "invalid JSON" in capsys.readouterr().err

    def test_add_invalid_config(self, state_args, capsys):
        assert main(state_args + ["add", json.dumps({"id": "x", "type": "stdio"})]) == 1
        assert "error:" in capsys.readouterr().err

    def test_export_to_file_and_import(self, tmp_path, state_args, capsys):
        exported = tmp_path / "servers.json"
        main(state_args + ["add", json.dumps(stdio_config("files"))])
        main(state_args + ["add", json.dumps(stdio_config("git"))])
        assert main(state_args + ["export", "-o", str(exported)]) == 0

        other = ["--state-dir", str(tmp_path / "other")]
        assert main(other + ["import", str(exported)]) == 0
        assert json.loads(capsys.readouterr().out) == {"imported": ["files", "git"]}

        main(other + ["export"])
        assert [s["id"] for s in json.loads(capsys.readouterr().out)["servers"]] == ["files", "git"]

    def test_invalid_port_setting(self, state_args, capsys):
        assert main(state_args + ["--port", "0", "export"]) == 2
        assert "Invalid port" in capsys.readouterr().err
