from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

import pytest

import tjsdoc.cli as cli_module


@pytest.fixture
def captured_runs(monkeypatch: pytest.MonkeyPatch) -> List[Dict[str, Any]]:
    runs: List[Dict[str, Any]] = []

    def _fake_generate(config, **kwargs):
        runs.append({"config": config, **kwargs})

    monkeypatch.setattr(cli_module, "generate", _fake_generate)
    return runs


def test_cli_help_exits_zero(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as info:
        cli_module.main(["--help"])

    assert info.value.code == 0
    assert "usage: tjsdoc" in capsys.readouterr().out


def test_cli_version_exits_zero(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as info:
        cli_module.main(["-v"])

    assert info.value.code == 0
    assert capsys.readouterr().out.startswith("tjsdoc ")


def test_cli_without_config_prints_help_and_fails(
    repo_builder, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], captured_runs
) -> None:
    monkeypatch.chdir(repo_builder.path())

    with pytest.raises(SystemExit) as info:
        cli_module.main([])

    assert info.value.code == 1
    assert "usage: tjsdoc" in capsys.readouterr().err
    assert captured_runs == []


def test_cli_checks_rc_files_in_order(repo_builder, monkeypatch: pytest.MonkeyPatch, captured_runs) -> None:
    repo_builder.write_config({"source": "./from-yaml", "runtime": "python"}, name=".tjsdocrc.yml")
    repo_builder.write_config({"source": "./from-json", "runtime": "python"}, name=".tjsdocrc.json")
    monkeypatch.chdir(repo_builder.path())

    cli_module.main([])

    [run] = captured_runs
    assert run["config"]["source"] == "./from-json"
    assert run["config_dir"] == Path.cwd()


def test_cli_reads_extensionless_rc_as_yaml(repo_builder, monkeypatch: pytest.MonkeyPatch, captured_runs) -> None:
    repo_builder.write({".tjsdocrc": "source: ./src\nruntime: python\n"})
    monkeypatch.chdir(repo_builder.path())

    cli_module.main([])

    assert captured_runs[0]["config"] == {"source": "./src", "runtime": "python"}


def test_cli_reads_pyproject_tool_table(repo_builder, monkeypatch: pytest.MonkeyPatch, captured_runs) -> None:
    repo_builder.write(
        {
            "pyproject.toml": """
            [project]
            name = "demo"

            [tool.tjsdoc]
            source = "./src"
            runtime = "python"
            """
        }
    )
    monkeypatch.chdir(repo_builder.path())

    cli_module.main([])

    assert captured_runs[0]["config"] == {"source": "./src", "runtime": "python"}


def test_cli_reads_package_json_field(repo_builder, monkeypatch: pytest.MonkeyPatch, captured_runs) -> None:
    repo_builder.write(
        {
            "pyproject.toml": '[project]\nname = "demo"\n',
            "package.json": json.dumps({"name": "demo", "tjsdoc": {"source": "./lib", "runtime": "python"}}),
        }
    )
    monkeypatch.chdir(repo_builder.path())

    cli_module.main([])

    assert captured_runs[0]["config"]["source"] == "./lib"


def test_cli_explicit_config_path(repo_builder, monkeypatch: pytest.MonkeyPatch, captured_runs) -> None:
    path = repo_builder.write_config({"source": "./src", "runtime": "python"}, name="configs/docs.yml")
    monkeypatch.chdir(repo_builder.path())

    cli_module.main(["-c", "configs/docs.yml"])

    assert captured_runs[0]["config_dir"] == path.parent.resolve()


def test_cli_missing_explicit_config_fails(
    repo_builder, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], captured_runs
) -> None:
    monkeypatch.chdir(repo_builder.path())

    with pytest.raises(SystemExit) as info:
        cli_module.main(["-c", "missing.json"])

    assert info.value.code == 1
    assert "Unable to read config file" in capsys.readouterr().err
    assert captured_runs == []


def test_cli_serve_registers_service_plugin(repo_builder, monkeypatch: pytest.MonkeyPatch, captured_runs) -> None:
    repo_builder.write_config({"source": "./src", "runtime": "python", "plugins": ["custom"]})
    monkeypatch.chdir(repo_builder.path())

    cli_module.main(["--serve", "--port", "9001"])

    plugins = captured_runs[0]["config"]["plugins"]
    assert plugins[0] == "custom"
    assert plugins[1] == {"name": "service", "options": {"host": "127.0.0.1", "port": 9001}}


def test_cli_generates_docs(repo_builder, monkeypatch: pytest.MonkeyPatch) -> None:
    repo_builder.write({"src/pkg/__init__.py": '"""Package."""\n', "src/pkg/core.py": "class Engine:\n    pass\n"})
    repo_builder.write_config({"source": "./src", "runtime": "python"})
    monkeypatch.chdir(repo_builder.path())

    cli_module.main([])

    doc_data = json.loads((repo_builder.path("docs") / "doc_data.json").read_text(encoding="utf-8"))
    assert "pkg.core.Engine" in [record.get("longname") for record in doc_data]
