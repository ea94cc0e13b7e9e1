from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from urllib.parse import urlsplit

from .config import DEFAULT_GIT_TIMEOUT_S
from .errors import GitError, UnsupportedSourceError

MIN_GIT_VERSION = (2, 25)  # sparse-checkout --cone

_GIT_VERSION_RE = re.compile(r"git version (\d+)\.(\d+)")
_LS_REMOTE_HASH_RE = re.compile(r"^([0-9a-f]+)\t", re.MULTILINE)
_SYMREF_RE = re.compile(r"^ref: refs/heads/([^\t\n]+)\tHEAD", re.MULTILINE)
_TREE_PATH_RE = re.compile(r"^(https://github\.com/[^/]+/[^/]+)/tree/([^/]+)/(.+)$")
_TREE_BRANCH_RE = re.compile(r"^(https://github\.com/[^/]+/[^/]+)/tree/([^/]+)$")
_REPO_RE = re.compile(r"^https://github\.com/([^/]+)/([^/]+)$")


class Git(Protocol):
    def run(self, args: list[str], *, cwd: Path | None = None) -> str:
        ...


class GitRunner:
    """Blocking `git` subprocess calls with a per-call timeout."""

    def __init__(self, *, timeout_s: float = DEFAULT_GIT_TIMEOUT_S, executable: str = "git") -> None:
        self.timeout_s = timeout_s
        self.executable = executable

    def run(self, args: list[str], *, cwd: Path | None = None) -> str:
        if cwd is not None and not cwd.is_dir():
            raise GitError(tuple(args), None, f"working directory does not exist: {cwd}")
        try:
            result = subprocess.run(
                [self.executable, *args],
                cwd=str(cwd) if cwd is not None else None,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout_s,
            )
        except FileNotFoundError as e:
            raise GitError(tuple(args), None, f"git executable not found: {self.executable}") from e
        except subprocess.TimeoutExpired as e:
            raise GitError(tuple(args), None, f"timed out after {self.timeout_s:g}s") from e
        if result.returncode != 0:
            stderr = result.stderr.strip() or result.stdout.strip()
            raise GitError(tuple(args), result.returncode, stderr)
        return result.stdout


def check_git_version(git: Git) -> tuple[int, int]:
    out = git.run(["--version"])
    m = _GIT_VERSION_RE.search(out)
    if not m:
        raise GitError(("--version",), None, f"could not parse git version from {out.strip()!r}")
    found = (int(m.group(1)), int(m.group(2)))
    if found < MIN_GIT_VERSION:
        need = ".".join(str(n) for n in MIN_GIT_VERSION)
        raise GitError(("--version",), None, f"git version must be >= {need}, found {found[0]}.{found[1]}")
    return found


@dataclass(frozen=True)
class GitUrlInfo:
    url: str  # https://github.com/<owner>/<repo>.git
    branch: str | None = None
    path: str | None = None

    @property
    def owner_repo(self) -> str:
        m = _REPO_RE.match(self.url.removesuffix(".git"))
        if not m:
            raise UnsupportedSourceError(f"Only GitHub URLs are supported: {self.url}")
        return f"{m.group(1)}/{m.group(2)}"


def github_clone_url(owner_repo: str) -> str:
    return f"https://github.com/{owner_repo}.git"


def normalize_github_url(raw_url: str) -> GitUrlInfo:
    """
    Normalize the GitHub URL forms users paste:

        https://github.com/<owner>/<repo>[.git][/]
        https://github.com/<owner>/<repo>/tree/<branch>[/<path>][/]

    Query strings and fragments are dropped.
    """
    url = raw_url.strip().rstrip("/")
    url = url.split("?", 1)[0].split("#", 1)[0].rstrip("/")
    url = url.removesuffix(".git")

    parts = urlsplit(url)
    if parts.scheme != "https" or parts.netloc not in ("github.com", "www.github.com"):
        raise UnsupportedSourceError(f"Only GitHub URLs are supported for now: {raw_url}")
    if parts.netloc == "www.github.com":
        url = url.replace("https://www.github.com", "https://github.com", 1)

    m = _TREE_PATH_RE.match(url)
    if m:
        return GitUrlInfo(url=f"{m.group(1)}.git", branch=m.group(2), path=m.group(3).rstrip("/"))
    m = _TREE_BRANCH_RE.match(url)
    if m:
        return GitUrlInfo(url=f"{m.group(1)}.git", branch=m.group(2))
    if not _REPO_RE.match(url):
        raise UnsupportedSourceError(f"Unrecognized GitHub repository URL: {raw_url}")
    return GitUrlInfo(url=f"{url}.git")


def parse_ls_remote_hash(output: str) -> str | None:
    m = _LS_REMOTE_HASH_RE.search(output)
    return m.group(1) if m else None


def parse_symref_branch(output: str) -> str | None:
    m = _SYMREF_RE.search(output)
    return m.group(1) if m else None


def clone_full(git: Git, url: str, dest: Path) -> None:
    git.run(["clone", url, str(dest)])


def clone_sparse(git: Git, url: str, dest: Path, subpath: str, branch: str = "main") -> None:
    git.run(["clone", "--filter=blob:none", "--no-checkout", url, str(dest)])
    git.run(["sparse-checkout", "init", "--cone"], cwd=dest)
    git.run(["sparse-checkout", "set", subpath], cwd=dest)
    git.run(["checkout", branch], cwd=dest)


def clone_shallow(git: Git, url: str, dest: Path, branch: str) -> None:
    git.run(["clone", "--depth=1", "--branch", branch, url, str(dest)])


def clone_shallow_sparse(git: Git, url: str, dest: Path, subpath: str, branch: str) -> None:
    # Shallow clones are single-branch, so the branch has to be named up front.
    git.run(["clone", "--depth=1", "--filter=blob:none", "--no-checkout", "--branch", branch, url, str(dest)])
    git.run(["sparse-checkout", "init", "--cone"], cwd=dest)
    git.run(["sparse-checkout", "set", subpath], cwd=dest)
    git.run(["checkout", branch], cwd=dest)


def fetch(git: Git, repo_dir: Path) -> None:
    git.run(["fetch", "origin"], cwd=repo_dir)


def pull(git: Git, repo_dir: Path) -> None:
    git.run(["pull"], cwd=repo_dir)


def log_last_commit(git: Git, repo_dir: Path, subpath: str, ref: str | None = None) -> str | None:
    args = ["log", "-1", "--format=%H"]
    if ref:
        args.append(ref)
    args.extend(["--", subpath])
    out = git.run(args, cwd=repo_dir).strip()
    return out or None


def upstream_ref(git: Git, repo_dir: Path) -> str | None:
    """Remote-tracking ref of the checked-out branch (e.g. origin/dev), None without one."""
    try:
        out = git.run(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"], cwd=repo_dir).strip()
    except GitError:
        return None
    return out or None


def rev_parse(git: Git, repo_dir: Path, ref: str) -> str:
    out = git.run(["rev-parse", ref], cwd=repo_dir).strip()
    if not out:
        raise GitError(("rev-parse", ref), None, "empty output")
    return out.splitlines()[0].strip()


def ls_remote(git: Git, url: str, ref: str = "HEAD") -> str:
    out = git.run(["ls-remote", url, ref])
    commit = parse_ls_remote_hash(out)
    if commit is None:
        raise GitError(("ls-remote", url, ref), None, f"ref not found: {ref}")
    return commit


def ls_remote_symref(git: Git, url: str) -> str | None:
    return parse_symref_branch(git.run(["ls-remote", "--symref", url, "HEAD"]))
