import os
import subprocess

import pytest

from grove import CommitRecord, FileChange, ProgressReporter


@pytest.fixture
def quiet_reporter():
    return ProgressReporter(quiet=True)


@pytest.fixture
def loud_reporter():
    return ProgressReporter(quiet=False, use_colors=False)


@pytest.fixture
def sample_commits():
    """Three commits, two authors, supplied newest first like git log."""
    return [
        CommitRecord(
            hash="ccc333",
            date="2024-03-01T09:00:00+00:00",
            author="Alice",
            files=[
                FileChange("src/main.py", 5, 8),
                FileChange("assets/logo.png", -1, -1),
            ],
        ),
        CommitRecord(
            hash="bbb222",
            date="2024-02-01T09:00:00+00:00",
            author="Bob",
            files=[
                FileChange("src/main.py", 10, 3),
                FileChange("README.md", 12, 0),
            ],
        ),
        CommitRecord(
            hash="aaa111",
            date="2024-01-01T09:00:00+00:00",
            author="Alice",
            files=[
                FileChange("src/main.py", 50, 0),
                FileChange("assets/logo.png", 0, 0),
                FileChange("src/old.py", 20, 0),
            ],
        ),
    ]


@pytest.fixture
def commit_log_text():
    """Raw git log output for a merge plus two regular commits."""
    return (
        "COMMIT\x00m3rge\x002024-03-02T10:00:00+00:00\x00Carol\n"
        "COMMIT\x00ccc333\x002024-03-01T09:00:00+00:00\x00Alice\n"
        "\n"
        "5\t8\tsrc/main.py\n"
        "-\t-\tassets/logo.png\n"
        "COMMIT\x00aaa111\x002024-01-01T09:00:00+00:00\x00Bob\n"
        "\n"
        "50\t0\tsrc/main.py\n"
        "3\t1\tsrc/{util => helpers}/io.py\n"
    )


@pytest.fixture
def git_repo(tmp_path):
    """
    Real repository with dated commits by two authors:
    adds text and binary files, modifies one, then deletes one.
    """
    repo = tmp_path / "repo"
    repo.mkdir()

    def run(*args, date=None, author=None):
        env = dict(os.environ)
        if date:
            env["GIT_AUTHOR_DATE"] = date
            env["GIT_COMMITTER_DATE"] = date
        if author:
            env["GIT_AUTHOR_NAME"] = author
            env["GIT_COMMITTER_NAME"] = author
        subprocess.run(
            ["git", "-C", str(repo)] + list(args),
            check=True,
            capture_output=True,
            env=env,
        )

    run("init")
    run("config", "user.email", "tester@test.com")
    run("config", "user.name", "Tester")
    run("config", "commit.gpgsign", "false")

    # Commit 1: text files and a binary
    (repo / "app.py").write_text("print('hello')\n", encoding="utf-8")
    (repo / "lib").mkdir()
    (repo / "lib" / "util.py").write_text("def helper(): pass\n", encoding="utf-8")
    (repo / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00")
    run("add", ".")
    run(
        "commit", "-m", "initial",
        date="2024-01-01T10:00:00+00:00", author="Alice",
    )

    # Commit 2: modify app.py
    (repo / "app.py").write_text("print('hello')\nprint('world')\n", encoding="utf-8")
    run("add", ".")
    run(
        "commit", "-m", "update app",
        date="2024-02-01T10:00:00+00:00", author="Bob",
    )

    # Commit 3: delete lib/util.py
    run("rm", "lib/util.py")
    run(
        "commit", "-m", "drop util",
        date="2024-03-01T10:00:00+00:00", author="Alice",
    )

    return str(repo)
