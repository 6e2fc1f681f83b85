#!/usr/bin/env python3
"""
Repo Grove - Repository History Tree Builder (v1.0.0)

Turns raw git history into a normalized, hierarchical repository model:
- Commit log parsing with per-file line statistics (numstat)
- Rename notation normalization ("old => new", "src/{old => new}/f")
- Per-file history aggregation with binary classification
- Current file sizes and deletion dates reconciled onto the tree
- Deterministically ordered directory/file tree
- Author roster and first/last commit dates

The model is written as a single JSON document (plus a manifest) that a
visualization client can load as-is.

Version: 1.0.0
"""

import hashlib
import json
import os
import re
import subprocess
import sys
import time
import unicodedata
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import click
import yaml
from colorama import Fore, Style, just_fix_windows_console
from tqdm import tqdm

just_fix_windows_console()

# Version information
VERSION = "1.0.0"
SCHEMA_VERSION = "1.0.0"

# Stream markers written by the git format strings below
COMMIT_HEADER = "COMMIT\x00"
DELETE_HEADER = "DELETE\x00"
FIELD_SEPARATOR = "\x00"
RENAME_SEPARATOR = " => "

# numstat reports "-" for both counts on binary files
BINARY_SENTINEL = -1

KIND_FILE = "file"
KIND_BINARY = "binary"
KIND_DIRECTORY = "directory"

CONFIG_FILE_NAMES = [".grove.yaml", ".grove.yml", ".grove.json"]

_NUMSTAT_LINE = re.compile(r"^(-|\d+)\t(-|\d+)\t(.+)$")
_BRACE_RENAME = re.compile(r"\{(.*?) => (.*?)\}")
_REPEATED_SLASHES = re.compile(r"/{2,}")


class RepositoryExtractionError(RuntimeError):
    """Raised when git cannot produce the history streams for a repository."""


# ============================================================================
# PROGRESS REPORTING
# ============================================================================


class ProgressReporter:
    """
    Console reporting for a model build.

    Stages are context managers that print a banner, time the block and, in
    verbose mode, list whatever counts the block left in the yielded dict.
    Everything except errors is silenced by `quiet`.
    """

    def __init__(
        self, quiet: bool = False, verbose: bool = False, use_colors: bool = True
    ):
        self.quiet = quiet
        self.verbose = verbose
        self.use_colors = use_colors
        self.start_time = time.time()

    def _colorize(self, text: str, color: str) -> str:
        if self.use_colors:
            return f"{color}{text}{Style.RESET_ALL}"
        return text

    def _emit(self, prefix: str, message: str, color: str):
        if not self.quiet:
            print(f"{self._colorize(prefix, color)}{message}")

    def _rule(self) -> str:
        return self._colorize("=" * 70, Fore.CYAN)

    @contextmanager
    def stage(self, stage_name: str, message: str = ""):
        """Wrap one build stage; yields a dict the stage fills with counts"""
        counts = {}
        started = time.time()
        if not self.quiet:
            print(f"\n{self._rule()}")
            print(self._colorize(f"🔄 {stage_name}", Fore.BLUE + Style.BRIGHT))
            if message:
                print(f"   {message}")
            print(self._rule())

        yield counts

        if self.quiet:
            return
        elapsed = time.time() - started
        print(
            self._colorize(
                f"✅ {stage_name} complete ({elapsed:.2f}s)", Fore.GREEN + Style.BRIGHT
            )
        )
        if self.verbose:
            for key, value in counts.items():
                print(f"   {key}: {value}")

    def commit_progress(self, total_commits: int) -> Optional[tqdm]:
        """Progress bar advanced once per commit header read from git log"""
        if self.quiet:
            return None

        return tqdm(
            total=total_commits,
            desc=self._colorize("Reading commits", Fore.CYAN),
            unit=" commits",
            ncols=100,
            bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}, {rate_fmt}]",
        )

    def info(self, message: str):
        self._emit("ℹ️  ", message, Fore.BLUE)

    def warning(self, message: str):
        self._emit("⚠️  ", message, Fore.YELLOW + Style.BRIGHT)

    def malformed_lines(self, stream_name: str, count: int):
        """Single warning covering every line skipped in one parse pass"""
        self.warning(f"Skipped {count:,} malformed line(s) in {stream_name}")

    def error(self, message: str):
        """Always shown, on stderr"""
        error_text = self._colorize(f"❌ ERROR: {message}", Fore.RED + Style.BRIGHT)
        print(error_text, file=sys.stderr)

    def model_summary(self, model: "RepositoryModel", output_dir: str):
        """Repository name, file and author counts, commit range, output location"""
        if self.quiet:
            return
        first = model.first_commit_date[:10] or "-"
        last = model.last_commit_date[:10] or "-"
        elapsed = time.time() - self.start_time

        print(f"\n{self._rule()}")
        print(self._colorize(f"📊 {model.repo_name}", Fore.MAGENTA + Style.BRIGHT))
        print(self._rule())
        print(f"   Files: {model.file_count():,}")
        print(f"   Authors: {len(model.authors)}")
        print(f"   History: {first} .. {last}")
        print(f"   Output directory: {output_dir}")
        print(self._colorize(f"\n⏱️  Total time: {elapsed:.2f}s", Fore.YELLOW))
        print(f"{self._rule()}\n")
        self._emit(
            "✨ ",
            f"Model complete! Results saved to: {output_dir}",
            Fore.GREEN + Style.BRIGHT,
        )


# ============================================================================
# DATA STRUCTURES & MODELS
# ============================================================================


@dataclass
class FileChange:
    """One numstat entry: a path touched by a commit and its line counts."""

    path: str
    lines_added: int
    lines_removed: int

    @property
    def is_binary(self) -> bool:
        return self.lines_added == BINARY_SENTINEL


@dataclass
class CommitRecord:
    hash: str
    date: str
    author: str
    files: List[FileChange] = field(default_factory=list)


@dataclass
class FileCommit:
    """A single history entry of a file aggregate"""

    hash: str
    date: str
    author: str
    lines_added: int
    lines_removed: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hash": self.hash,
            "date": self.date,
            "author": self.author,
            "linesAdded": self.lines_added,
            "linesRemoved": self.lines_removed,
        }


@dataclass
class FileNode:
    """
    Aggregate of every commit that touched one path.

    `commits` is kept in chronological order; `kind` switches to binary the
    first time a commit reports the binary sentinel and never switches back.
    """

    name: str
    path: str
    created_at: str
    kind: str = KIND_FILE
    deleted_at: Optional[str] = None
    size: int = 0
    commits: List[FileCommit] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "kind": self.kind,
            "createdAt": self.created_at,
            "deletedAt": self.deleted_at,
            "size": self.size,
            "commits": [commit.to_dict() for commit in self.commits],
        }


@dataclass
class DirNode:
    name: str
    path: str
    children: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "kind": KIND_DIRECTORY,
            "children": [child.to_dict() for child in self.children],
        }


@dataclass(frozen=True)
class RepositoryModel:
    """
    Final immutable model handed to consumers.

    Serializes to the wire document through to_dict()/to_json(); field names
    on the wire are camelCase.
    """

    repo_name: str
    first_commit_date: str
    last_commit_date: str
    tree: DirNode
    authors: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repoName": self.repo_name,
            "firstCommitDate": self.first_commit_date,
            "lastCommitDate": self.last_commit_date,
            "tree": self.tree.to_dict(),
            "authors": list(self.authors),
        }

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def file_count(self) -> int:
        """Count file leaves in the tree"""
        count = 0
        stack = [self.tree]
        while stack:
            node = stack.pop()
            for child in node.children:
                if isinstance(child, DirNode):
                    stack.append(child)
                else:
                    count += 1
        return count


@dataclass
class RawHistory:
    """Raw text streams produced by git for one repository"""

    commit_log: str
    file_sizes: str
    deletions: str
    repo_name: str


# ============================================================================
# RENAME NORMALIZATION
# ============================================================================


def normalize_path(raw_path: str) -> str:
    """
    Resolve git rename notation to the destination path.

    Handles:
    - "old.txt => new.txt"            -> "new.txt"
    - "src/{old => new}/file.ts"      -> "src/new/file.ts"
    - "{ => new}/file.ts"             -> "new/file.ts"
    - "{old => }/file.ts"             -> "file.ts"

    Paths without a rename marker are returned unchanged.
    """
    expanded = _BRACE_RENAME.sub(lambda match: match.group(2), raw_path)
    if expanded != raw_path:
        # An empty side leaves "//" or a leading "/" behind
        return _REPEATED_SLASHES.sub("/", expanded).lstrip("/")

    if RENAME_SEPARATOR in raw_path:
        return raw_path.split(RENAME_SEPARATOR)[1]

    return raw_path


# ============================================================================
# LOG PARSING
# ============================================================================


def _report_skipped(
    reporter: Optional[ProgressReporter],
    errors: Optional[List[str]],
    stream_name: str,
    skipped: List[str],
):
    """Emit one aggregated warning for all malformed lines of a parse pass"""
    if not skipped:
        return
    if errors is not None:
        errors.extend(f"{stream_name}: skipped line: {line[:80]}" for line in skipped)
    if reporter is not None:
        reporter.malformed_lines(stream_name, len(skipped))


def _split_lines(output: str) -> List[str]:
    return [line.rstrip("\r") for line in output.split("\n")]


def parse_commit_log(
    output: str,
    reporter: Optional[ProgressReporter] = None,
    errors: Optional[List[str]] = None,
) -> List[CommitRecord]:
    """
    Parse `git log --format=COMMIT%x00%H%x00%aI%x00%an --numstat` output.

    Each block opens with a COMMIT header and runs until the next header.
    Blocks without numstat lines (merge commits) are kept with an empty
    file list.

    Args:
        output: Raw git log text
        reporter: Receives a single warning when lines were skipped
        errors: Optional list collecting the skipped lines

    Returns:
        Commit records in input order
    """
    if not output.strip():
        return []

    records = []
    skipped = []
    current = None

    for line in _split_lines(output):
        if line.startswith(COMMIT_HEADER):
            parts = line.split(FIELD_SEPARATOR)
            if len(parts) < 4:
                skipped.append(line)
                current = None
                continue
            current = CommitRecord(hash=parts[1], date=parts[2], author=parts[3])
            records.append(current)
            continue

        if not line:
            continue

        match = _NUMSTAT_LINE.match(line)
        if current is None or not match:
            skipped.append(line)
            continue

        added, removed, raw_path = match.groups()
        if "-" in (added, removed):
            lines_added = lines_removed = BINARY_SENTINEL
        else:
            lines_added, lines_removed = int(added), int(removed)

        current.files.append(
            FileChange(
                path=normalize_path(raw_path),
                lines_added=lines_added,
                lines_removed=lines_removed,
            )
        )

    _report_skipped(reporter, errors, "commit log", skipped)
    return records


def parse_file_sizes(
    output: str,
    reporter: Optional[ProgressReporter] = None,
    errors: Optional[List[str]] = None,
) -> Dict[str, int]:
    """
    Parse `git ls-tree -r --long HEAD` output.
    Lines: "mode type hash    size\\tpath"; submodule entries are skipped.
    """
    sizes = {}
    skipped = []

    for line in _split_lines(output):
        if not line.strip():
            continue

        meta, tab, file_path = line.partition("\t")
        parts = meta.split()
        if not tab or len(parts) < 4:
            skipped.append(line)
            continue

        # parts: [mode, type, hash, size]
        if parts[1] == "commit":
            continue
        try:
            sizes[file_path] = int(parts[3])
        except ValueError:
            skipped.append(line)

    _report_skipped(reporter, errors, "size listing", skipped)
    return sizes


def parse_deletions(
    output: str,
    reporter: Optional[ProgressReporter] = None,
    errors: Optional[List[str]] = None,
) -> Dict[str, str]:
    """
    Parse `git log --diff-filter=D --format=DELETE%x00%aI --name-only` output.

    git log lists newest first, so the first date seen for a path is its
    most recent deletion and later occurrences are ignored.
    """
    deletions = {}
    skipped = []
    current_date = None

    for line in _split_lines(output):
        if line.startswith(DELETE_HEADER):
            # An undated header leaves the paths under it unattributed
            current_date = line.split(FIELD_SEPARATOR)[1] or None
            if current_date is None:
                skipped.append(line)
            continue
        if not line:
            continue
        if current_date is None:
            skipped.append(line)
            continue

        deletions.setdefault(line, current_date)

    _report_skipped(reporter, errors, "deletion log", skipped)
    return deletions


# ============================================================================
# FILE HISTORY AGGREGATION
# ============================================================================


def sort_commits(commits: List[CommitRecord]) -> List[CommitRecord]:
    """Stable ascending sort by ISO date string"""
    return sorted(commits, key=lambda commit: commit.date)


def build_file_table(commits: List[CommitRecord]) -> Dict[str, FileNode]:
    """
    Fold chronologically sorted commits into one aggregate per path.

    Renames are resolved on the final path only: history recorded under the
    old path stays on the old path's aggregate.
    """
    table = {}

    for commit in commits:
        for change in commit.files:
            node = table.get(change.path)
            if node is None:
                node = FileNode(
                    name=change.path.rsplit("/", 1)[-1],
                    path=change.path,
                    created_at=commit.date,
                )
                table[change.path] = node

            node.commits.append(
                FileCommit(
                    hash=commit.hash,
                    date=commit.date,
                    author=commit.author,
                    lines_added=change.lines_added,
                    lines_removed=change.lines_removed,
                )
            )

            if change.is_binary:
                node.kind = KIND_BINARY

    return table


# ============================================================================
# TREE ASSEMBLY
# ============================================================================


def attach_metadata(
    file_table: Dict[str, FileNode],
    file_sizes: Dict[str, int],
    deletions: Dict[str, str],
) -> Dict[str, FileNode]:
    """
    Return a copy of the table with size and deletion date filled in.
    A deleted path has no current blob, so its size is always 0.
    """
    resolved = {}
    for file_path, node in file_table.items():
        deleted_at = deletions.get(file_path)
        size = 0 if deleted_at is not None else file_sizes.get(file_path, 0)
        resolved[file_path] = replace(
            node, size=size, deleted_at=deleted_at, commits=list(node.commits)
        )
    return resolved


def assemble_tree(file_table: Dict[str, FileNode]) -> DirNode:
    """Materialize the directory hierarchy for every path in the table"""
    root = DirNode(name="", path="")
    dir_cache = {"": root}

    def get_or_create_dir(dir_path: str) -> DirNode:
        cached = dir_cache.get(dir_path)
        if cached is not None:
            return cached

        parent_path, _, name = dir_path.rpartition("/")
        parent = get_or_create_dir(parent_path)

        directory = DirNode(name=name, path=dir_path)
        parent.children.append(directory)
        dir_cache[dir_path] = directory
        return directory

    for file_path, node in file_table.items():
        parent_path = file_path.rpartition("/")[0]
        get_or_create_dir(parent_path).children.append(node)

    return root


# ASCII punctuation and symbols in root-collation order; they sort before
# digits, and digits before letters
_PUNCTUATION_ORDER = "_-,;:!?.'\"()[]{}@*/\\&#%`^+<=>|~$"

_CLASS_SPACE, _CLASS_PUNCTUATION, _CLASS_DIGIT, _CLASS_LETTER, _CLASS_OTHER = range(5)


def _collation_element(char: str) -> Tuple[int, int, str]:
    category = unicodedata.category(char)
    if category.startswith("Z"):
        return (_CLASS_SPACE, 0, char)
    if category[0] in "PS":
        rank = _PUNCTUATION_ORDER.find(char)
        if rank < 0:
            # Non-ASCII marks go after the ASCII ones, punctuation before symbols
            rank = len(_PUNCTUATION_ORDER) + (0 if category[0] == "P" else 1)
        return (_CLASS_PUNCTUATION, rank, char)
    if category.startswith("N"):
        return (_CLASS_DIGIT, 0, char)
    if category.startswith("L"):
        return (_CLASS_LETTER, 0, char)
    return (_CLASS_OTHER, 0, char)


def _name_sort_key(name: str) -> Tuple:
    """
    Locale-style ordering key, compared level by level:
    base characters (case and accents ignored), then accents, then case with
    lowercase first, then the raw name.
    """
    decomposed = unicodedata.normalize("NFKD", name)
    base = "".join(c for c in decomposed if not unicodedata.combining(c))
    primary = tuple(_collation_element(c) for c in base.casefold())
    accents = decomposed.casefold()
    case = tuple(1 if c.isupper() else 0 for c in base)
    return (primary, accents, case, name)


def _child_sort_key(node) -> Tuple[int, Tuple]:
    return (0 if isinstance(node, DirNode) else 1, _name_sort_key(node.name))


def sort_tree(root: DirNode) -> DirNode:
    """Order every level: directories first, then files, each alphabetical"""
    stack = [root]
    while stack:
        node = stack.pop()
        node.children.sort(key=_child_sort_key)
        stack.extend(child for child in node.children if isinstance(child, DirNode))
    return root


# ============================================================================
# REPOSITORY SUMMARY
# ============================================================================


def collect_authors(commits: List[CommitRecord]) -> List[str]:
    return sorted({commit.author for commit in commits})


def commit_date_range(commits: List[CommitRecord]) -> Tuple[str, str]:
    """First and last commit dates, or empty strings for an empty history"""
    if not commits:
        return "", ""
    dates = [commit.date for commit in commits]
    return min(dates), max(dates)


def build_repository_model(
    commits: List[CommitRecord],
    file_sizes: Dict[str, int],
    deletions: Dict[str, str],
    repo_name: str,
) -> RepositoryModel:
    """
    Build the full repository model from parsed history.

    Args:
        commits: Commit records in any order
        file_sizes: Current size per path
        deletions: Most recent deletion date per path
        repo_name: Display name of the repository

    Returns:
        Immutable RepositoryModel
    """
    sorted_commits = sort_commits(commits)

    file_table = build_file_table(sorted_commits)
    file_table = attach_metadata(file_table, file_sizes, deletions)

    tree = sort_tree(assemble_tree(file_table))
    first_commit_date, last_commit_date = commit_date_range(sorted_commits)

    return RepositoryModel(
        repo_name=repo_name,
        first_commit_date=first_commit_date,
        last_commit_date=last_commit_date,
        tree=tree,
        authors=tuple(collect_authors(sorted_commits)),
    )


# ============================================================================
# GIT EXTRACTION
# ============================================================================


class GitHistoryExtractor:
    """
    Runs git against a repository and returns the raw history streams.
    Parsing is left to the parse_* functions.
    """

    def __init__(
        self,
        repo_path: str,
        reporter: Optional[ProgressReporter] = None,
        max_commits: Optional[int] = None,
    ):
        self.repo_path = os.path.abspath(repo_path)
        self.reporter = reporter or ProgressReporter(quiet=True)
        self.max_commits = max_commits

    def _git(self, *args: str) -> List[str]:
        return ["git", "-C", self.repo_path] + list(args)

    def _run_git(self, *args: str) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                self._git(*args),
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            raise RepositoryExtractionError(f"Failed to run git: {e}") from e

    def _limit_args(self) -> List[str]:
        if self.max_commits:
            return [f"--max-count={self.max_commits}"]
        return []

    def validate(self) -> str:
        """Return the repository top-level directory or fail fast"""
        result = self._run_git("rev-parse", "--show-toplevel")
        if result.returncode != 0:
            raise RepositoryExtractionError(f"Not a git repository: {self.repo_path}")
        return result.stdout.strip()

    def count_commits(self) -> int:
        result = self._run_git("rev-list", "--all", "--count", *self._limit_args())
        if result.returncode != 0:
            raise RepositoryExtractionError(f"Git command failed: {result.stderr}")
        return int(result.stdout.strip() or 0)

    def read_commit_log(self) -> str:
        """Stream the numstat commit log, advancing a progress bar per commit"""
        cmd = self._git(
            "log",
            "--all",
            *self._limit_args(),
            "--format=COMMIT%x00%H%x00%aI%x00%an",
            "--numstat",
        )
        total_commits = self.count_commits()

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            raise RepositoryExtractionError(f"Failed to run git: {e}") from e

        progress_bar = self.reporter.commit_progress(total_commits)

        lines = []
        for line in process.stdout:
            if progress_bar and line.startswith(COMMIT_HEADER):
                progress_bar.update(1)
            lines.append(line)

        if progress_bar:
            progress_bar.close()

        process.wait()

        if process.returncode != 0:
            stderr = process.stderr.read()
            raise RepositoryExtractionError(f"Git command failed: {stderr.strip()}")

        return "".join(lines)

    def read_file_sizes(self) -> str:
        result = self._run_git("ls-tree", "-r", "--long", "HEAD")
        # Empty repository or unborn HEAD: no current snapshot
        if result.returncode != 0:
            return ""
        return result.stdout

    def read_deletions(self) -> str:
        result = self._run_git(
            "log", "--all", "--diff-filter=D", "--format=DELETE%x00%aI", "--name-only"
        )
        if result.returncode != 0:
            raise RepositoryExtractionError(f"Git command failed: {result.stderr}")
        return result.stdout

    def extract(self) -> RawHistory:
        toplevel = self.validate()
        return RawHistory(
            commit_log=self.read_commit_log(),
            file_sizes=self.read_file_sizes(),
            deletions=self.read_deletions(),
            repo_name=os.path.basename(toplevel),
        )


def analyze_repository(
    repo_path: str,
    reporter: Optional[ProgressReporter] = None,
    max_commits: Optional[int] = None,
    errors: Optional[List[str]] = None,
) -> RepositoryModel:
    """Extract, parse and assemble the model for one repository"""
    reporter = reporter or ProgressReporter(quiet=True)
    extractor = GitHistoryExtractor(repo_path, reporter, max_commits=max_commits)

    with reporter.stage("Git Extraction", f"Reading history: {extractor.repo_path}"):
        raw = extractor.extract()

    with reporter.stage("Parsing", "Parsing commit, size and deletion logs...") as counts:
        commits = parse_commit_log(raw.commit_log, reporter, errors)
        file_sizes = parse_file_sizes(raw.file_sizes, reporter, errors)
        deletions = parse_deletions(raw.deletions, reporter, errors)
        counts["Commits"] = f"{len(commits):,}"
        counts["Sized files"] = f"{len(file_sizes):,}"
        counts["Deleted paths"] = f"{len(deletions):,}"

    with reporter.stage("Tree Assembly", "Aggregating file histories...") as counts:
        model = build_repository_model(commits, file_sizes, deletions, raw.repo_name)
        counts["Files"] = f"{model.file_count():,}"
        counts["Authors"] = len(model.authors)

    return model


# ============================================================================
# EXPORT & MANIFEST
# ============================================================================

_COMMIT_SCHEMA = {
    "type": "object",
    "required": ["hash", "date", "author", "linesAdded", "linesRemoved"],
    "additionalProperties": False,
    "properties": {
        "hash": {"type": "string"},
        "date": {"type": "string"},
        "author": {"type": "string"},
        "linesAdded": {"type": "integer", "minimum": BINARY_SENTINEL},
        "linesRemoved": {"type": "integer", "minimum": BINARY_SENTINEL},
    },
}

REPOSITORY_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "Repository model",
    "type": "object",
    "required": ["repoName", "firstCommitDate", "lastCommitDate", "tree", "authors"],
    "additionalProperties": False,
    "properties": {
        "repoName": {"type": "string"},
        "firstCommitDate": {"type": "string"},
        "lastCommitDate": {"type": "string"},
        "tree": {"$ref": "#/$defs/dirNode"},
        "authors": {"type": "array", "items": {"type": "string"}, "uniqueItems": True},
    },
    "$defs": {
        "commit": _COMMIT_SCHEMA,
        "fileNode": {
            "type": "object",
            "required": [
                "name",
                "path",
                "kind",
                "createdAt",
                "deletedAt",
                "size",
                "commits",
            ],
            "additionalProperties": False,
            "properties": {
                "name": {"type": "string"},
                "path": {"type": "string"},
                "kind": {"enum": [KIND_FILE, KIND_BINARY]},
                "createdAt": {"type": "string"},
                "deletedAt": {"type": ["string", "null"]},
                "size": {"type": "integer", "minimum": 0},
                "commits": {"type": "array", "items": {"$ref": "#/$defs/commit"}},
            },
        },
        "dirNode": {
            "type": "object",
            "required": ["name", "path", "kind", "children"],
            "additionalProperties": False,
            "properties": {
                "name": {"type": "string"},
                "path": {"type": "string"},
                "kind": {"const": KIND_DIRECTORY},
                "children": {
                    "type": "array",
                    "items": {
                        "oneOf": [
                            {"$ref": "#/$defs/dirNode"},
                            {"$ref": "#/$defs/fileNode"},
                        ]
                    },
                },
            },
        },
    },
}


def export_model(
    model: RepositoryModel, output_path: str, indent: Optional[int] = None
) -> int:
    """Write the model as JSON and return the number of bytes written"""
    os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
    data = model.to_json(indent=indent).encode("utf-8")
    with open(output_path, "wb") as f:
        f.write(data)
    return len(data)


def generate_manifest(
    output_dir: str, model: RepositoryModel, datasets: Dict[str, str]
) -> Dict[str, Any]:
    """Generate manifest.json with dataset metadata"""
    manifest = {
        "generator_version": VERSION,
        "schema_version": SCHEMA_VERSION,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "repository": model.repo_name,
        "summary": {
            "files": model.file_count(),
            "authors": len(model.authors),
            "first_commit_date": model.first_commit_date,
            "last_commit_date": model.last_commit_date,
        },
        "datasets": {},
    }

    for dataset_name, file_path in datasets.items():
        full_path = os.path.join(output_dir, file_path)
        if os.path.exists(full_path):
            with open(full_path, "rb") as f:
                data = f.read()

            manifest["datasets"][dataset_name] = {
                "file": file_path,
                "schema_version": SCHEMA_VERSION,
                "file_size_bytes": len(data),
                "sha256": hashlib.sha256(data).hexdigest(),
            }

    manifest_path = os.path.join(output_dir, "manifest.json")
    with open(manifest_path, "w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2, ensure_ascii=False)

    return manifest


# ============================================================================
# CONFIGURATION FILE SUPPORT
# ============================================================================

# Keys a .grove file may set, with the type each value must have
CONFIG_OPTIONS = {
    "output": str,
    "max_commits": int,
    "indent": int,
    "quiet": bool,
    "verbose": bool,
    "no_color": bool,
}


@dataclass(frozen=True)
class BuildSettings:
    """Effective settings for one CLI run"""

    output: Optional[str] = None
    max_commits: Optional[int] = None
    indent: Optional[int] = None
    quiet: bool = False
    verbose: bool = False
    no_color: bool = False

    def output_dir(self) -> str:
        if self.output:
            return self.output
        return f"grove_output_{datetime.now().strftime('%Y%m%d_%H%M%S')}"


def load_config_file(config_path: str) -> Dict[str, Any]:
    """
    Load a .grove.yaml / .grove.yml / .grove.json file.

    Returns the top-level mapping with kebab-case keys turned into
    snake_case. An empty YAML file is an empty configuration.
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    file_ext = os.path.splitext(config_path)[1].lower()

    with open(config_path, "r", encoding="utf-8") as f:
        if file_ext in [".yaml", ".yml"]:
            data = yaml.safe_load(f) or {}
        elif file_ext == ".json":
            data = json.load(f)
        else:
            raise ValueError(f"Unsupported config file format: {file_ext}")

    if not isinstance(data, dict):
        raise ValueError(f"{config_path}: expected a mapping of settings")
    return {str(k).replace("-", "_"): v for k, v in data.items()}


def find_config_file(repo_path: str) -> Optional[str]:
    """First .grove config in the repository, then in the working directory"""
    for search_dir in [repo_path, os.getcwd()]:
        for config_name in CONFIG_FILE_NAMES:
            config_path = os.path.join(search_dir, config_name)
            if os.path.exists(config_path):
                return config_path

    return None


class ConfigResolver:
    """
    Merge CLI options over a .grove config file.

    CLI values of None mean "not given". File values are checked against
    CONFIG_OPTIONS: unknown keys are reported and ignored, values of the
    wrong type raise ValueError.
    """

    def __init__(
        self,
        cli_args: Dict[str, Any],
        config_path: Optional[str],
        repo_path: str,
        reporter: Optional[ProgressReporter] = None,
    ):
        self.reporter = reporter or ProgressReporter(quiet=True)
        self.cli = {k: v for k, v in cli_args.items() if v is not None}
        self.config = {}

        if config_path:
            self.config = self._validated(load_config_file(config_path), config_path)
            return

        auto_path = find_config_file(repo_path)
        if not auto_path:
            return
        try:
            self.config = self._validated(load_config_file(auto_path), auto_path)
            self.reporter.info(f"Using configuration: {auto_path}")
        except (OSError, ValueError, yaml.YAMLError) as e:
            self.reporter.warning(f"Ignoring {auto_path}, failed to load: {e}")

    def _validated(self, data: Dict[str, Any], source: str) -> Dict[str, Any]:
        settings = {}
        for key, value in data.items():
            expected = CONFIG_OPTIONS.get(key)
            if expected is None:
                self.reporter.warning(f"{source}: unknown setting '{key}' ignored")
                continue
            # bool is an int subclass; keep "indent: true" out
            if not isinstance(value, expected) or (
                expected is int and isinstance(value, bool)
            ):
                raise ValueError(
                    f"{source}: '{key}' must be {expected.__name__}, got {value!r}"
                )
            settings[key] = value
        return settings

    def get(self, key: str, default: Any = None) -> Any:
        if key in self.cli:
            return self.cli[key]
        return self.config.get(key, default)

    def resolve(self) -> BuildSettings:
        return BuildSettings(
            output=self.get("output"),
            max_commits=self.get("max_commits"),
            indent=self.get("indent"),
            quiet=bool(self.get("quiet", False)),
            verbose=bool(self.get("verbose", False)),
            no_color=bool(self.get("no_color", False)),
        )


# ============================================================================
# CLI INTERFACE
# ============================================================================


@click.command(context_settings=dict(help_option_names=["-h", "--help"]))
@click.argument(
    "repo_path",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    required=False,
)
@click.option(
    "-o",
    "--output",
    type=click.Path(file_okay=False),
    help="Output directory (default: grove_output_TIMESTAMP)",
)
@click.option(
    "--config",
    type=click.Path(exists=True, dir_okay=False),
    help="Configuration file path (.yaml or .json)",
)
@click.option(
    "--max-commits",
    type=click.IntRange(min=1),
    help="Only read the N most recent commits",
)
@click.option(
    "--indent", type=click.IntRange(min=0), help="Indent the JSON output by N spaces"
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show what would be generated without running git",
)
@click.option(
    "-q", "--quiet", is_flag=True, default=None, help="Suppress progress output"
)
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    default=None,
    help="Show detailed progress information",
)
@click.option("--no-color", is_flag=True, default=None, help="Disable colored output")
@click.version_option(version=VERSION)
def main(repo_path, config, **kwargs):
    """
    Build the hierarchical history model of a git repository.

    Writes repository.json (tree, authors, commit range) and manifest.json
    to the output directory.
    """
    if not repo_path:
        ctx = click.get_current_context()
        click.echo(ctx.get_help())
        ctx.exit(2)

    dry_run = kwargs.pop("dry_run", False)
    reporter = ProgressReporter(
        quiet=bool(kwargs.get("quiet")),
        verbose=bool(kwargs.get("verbose")),
        use_colors=not kwargs.get("no_color"),
    )

    try:
        settings = ConfigResolver(kwargs, config, repo_path, reporter).resolve()
    except (OSError, ValueError, yaml.YAMLError) as e:
        reporter.error(f"Invalid configuration: {e}")
        sys.exit(1)

    reporter.quiet = settings.quiet
    reporter.verbose = settings.verbose
    reporter.use_colors = not settings.no_color
    output_dir = settings.output_dir()

    if dry_run:
        reporter.info("DRY RUN MODE - git will not be run")
        reporter.info(f"Repository: {repo_path}")
        reporter.info(f"Output directory: {output_dir}")
        if settings.max_commits:
            reporter.info(f"Max commits: {settings.max_commits}")
        reporter.info("Would write: repository.json, manifest.json")
        return

    errors = []
    try:
        model = analyze_repository(
            repo_path, reporter, max_commits=settings.max_commits, errors=errors
        )

        os.makedirs(output_dir, exist_ok=True)
        with reporter.stage("Export", f"Writing model to {output_dir}") as counts:
            model_path = os.path.join(output_dir, "repository.json")
            size = export_model(model, model_path, indent=settings.indent)
            generate_manifest(output_dir, model, {"repository": "repository.json"})
            counts["File"] = model_path
            counts["Size"] = f"{size:,} bytes"

        if errors:
            with open(
                os.path.join(output_dir, "grove_errors.txt"), "w", encoding="utf-8"
            ) as f:
                f.write("\n".join(errors))
            reporter.warning(
                f"{len(errors):,} skipped line(s) logged to grove_errors.txt"
            )

    except Exception as e:
        reporter.error(f"Analysis failed: {str(e)}")
        if reporter.verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)

    reporter.model_summary(model, output_dir)


if __name__ == "__main__":
    main()
