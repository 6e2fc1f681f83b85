import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from grove import VERSION, build_repository_model, main


@pytest.fixture(autouse=True)
def isolate_from_enclosing_repos(tmp_path, monkeypatch):
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))


def test_cli_without_repo_shows_help():
    result = CliRunner().invoke(main, [])
    assert result.exit_code == 2
    assert "Usage" in result.output


def test_cli_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert VERSION in result.output


def test_cli_dry_run(git_repo, tmp_path):
    out = tmp_path / "out"
    result = CliRunner().invoke(main, [git_repo, "--dry-run", "--max-commits", "3", "-o", str(out)])
    assert result.exit_code == 0
    assert "DRY RUN MODE" in result.output
    assert "Max commits: 3" in result.output
    assert "repository.json" in result.output
    assert not out.exists()


def test_cli_invalid_repo(tmp_path):
    plain = tmp_path / "plain"
    plain.mkdir()
    result = CliRunner().invoke(main, [str(plain), "-o", str(tmp_path / "out")])
    assert result.exit_code == 1
    assert "Not a git repository" in result.output


def test_cli_writes_model_and_manifest(git_repo, tmp_path):
    out = tmp_path / "out"
    result = CliRunner().invoke(main, [git_repo, "-o", str(out), "--indent", "2", "--no-color"])
    assert result.exit_code == 0, result.output

    data = json.loads((out / "repository.json").read_text(encoding="utf-8"))
    assert data["repoName"] == "repo"
    assert data["authors"] == ["Alice", "Bob"]
    assert [c["name"] for c in data["tree"]["children"]] == ["lib", "app.py", "logo.png"]

    manifest = json.loads((out / "manifest.json").read_text(encoding="utf-8"))
    assert manifest["datasets"]["repository"]["file"] == "repository.json"
    assert manifest["summary"]["files"] == 3
    assert not (out / "grove_errors.txt").exists()

    assert "Files: 3" in result.output
    assert "History: 2024-01-01 .. 2024-03-01" in result.output


def test_cli_quiet(git_repo, tmp_path):
    out = tmp_path / "out"
    result = CliRunner().invoke(main, [git_repo, "-o", str(out), "-q"])
    assert result.exit_code == 0
    assert result.output == ""
    assert (out / "repository.json").exists()


def test_cli_config_file(git_repo, tmp_path):
    out = tmp_path / "configured"
    config = tmp_path / "grove.yaml"
    config.write_text(f"max-commits: 1\noutput: {out}\nquiet: true\n", encoding="utf-8")

    result = CliRunner().invoke(main, [git_repo, "--config", str(config)])
    assert result.exit_code == 0, result.output

    data = json.loads((out / "repository.json").read_text(encoding="utf-8"))
    assert data["authors"] == ["Alice"]


def test_cli_invalid_config(git_repo, tmp_path):
    config = tmp_path / "grove.txt"
    config.write_text("quiet = true", encoding="utf-8")

    result = CliRunner().invoke(main, [git_repo, "--config", str(config)])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_cli_rejects_mistyped_config_value(git_repo, tmp_path):
    config = tmp_path / "grove.yaml"
    config.write_text("max-commits: many\n", encoding="utf-8")

    result = CliRunner().invoke(main, [git_repo, "--config", str(config)])
    assert result.exit_code == 1
    assert "'max_commits' must be int" in result.output


def test_cli_logs_parse_errors(git_repo, tmp_path):
    def fake_analyze(repo_path, reporter, max_commits=None, errors=None):
        errors.append("commit log: skipped line: garbage")
        return build_repository_model([], {}, {}, "repo")

    out = tmp_path / "out"
    with patch("grove.analyze_repository", side_effect=fake_analyze):
        result = CliRunner().invoke(main, [git_repo, "-o", str(out), "--no-color"])

    assert result.exit_code == 0
    assert "1 skipped line(s) logged to grove_errors.txt" in result.output
    assert "garbage" in (out / "grove_errors.txt").read_text(encoding="utf-8")


def test_cli_analysis_error(git_repo, tmp_path):
    with patch("grove.analyze_repository", side_effect=RuntimeError("Fail")):
        result = CliRunner().invoke(main, [git_repo, "-o", str(tmp_path / "out")])
    assert result.exit_code == 1
    assert "Analysis failed: Fail" in result.output
