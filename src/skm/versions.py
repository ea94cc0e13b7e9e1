from __future__ import annotations

import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Protocol

from . import git as gitops
from .errors import GitError, SkillFailure, SkmError
from .git import Git
from .github import MANIFEST_FILENAME
from .registry import SkillRecord

DEFAULT_BRANCH = "main"
WHOLE_REPO = "."


class ManifestProbe(Protocol):
    def manifest_exists(self, owner_repo: str, branch: str, subpath: str | None = None) -> bool | None:
        ...


@dataclass(frozen=True)
class UpdateCandidate:
    skill: SkillRecord
    remote_head: str
    branch: str
    url: str


@dataclass(frozen=True)
class UpdateScan:
    candidates: tuple[UpdateCandidate, ...]
    up_to_date: tuple[str, ...]
    skipped: tuple[str, ...]  # not github-sourced
    failures: tuple[SkillFailure, ...]


class VersionResolver:
    """
    Local vs. remote version of GitHub-sourced skills.

    Versions are path-scoped: the last commit that touched the skill's
    subdirectory, not the repository HEAD, so unrelated commits in a monorepo
    never show up as updates.
    """

    def __init__(self, git: Git, *, probe: ManifestProbe | None = None) -> None:
        self.git = git
        self.probe = probe

    def resolve_default_branch(self, owner_repo: str) -> str:
        try:
            branch = gitops.ls_remote_symref(self.git, gitops.github_clone_url(owner_repo))
        except GitError:
            return DEFAULT_BRANCH
        return branch or DEFAULT_BRANCH

    def tracked_branch(self, clone_dir: Path) -> str | None:
        # `git pull` follows the upstream, so updates are compared against it too.
        upstream = gitops.upstream_ref(self.git, clone_dir)
        if upstream and upstream.startswith("origin/"):
            return upstream.removeprefix("origin/")
        return None

    def _path_scoped_commit(self, clone_dir: Path, subpath: str, ref: str | None) -> str:
        try:
            commit = gitops.log_last_commit(self.git, clone_dir, subpath, ref)
        except GitError:
            commit = None
        if commit:
            return commit
        return gitops.rev_parse(self.git, clone_dir, ref or "HEAD")

    def local_version(self, clone_dir: Path, subpath: str | None = None) -> str:
        return self._path_scoped_commit(clone_dir, subpath or WHOLE_REPO, None)

    def remote_version(self, clone_dir: Path, remote_ref: str, subpath: str | None = None) -> str:
        """Call after fetch_remote(); remote_ref is a remote-tracking ref such as origin/main."""
        return self._path_scoped_commit(clone_dir, subpath or WHOLE_REPO, remote_ref)

    def fetch_remote(self, clone_dir: Path) -> None:
        gitops.fetch(self.git, clone_dir)

    def evaluate_update(self, record: SkillRecord, clone_dir: Path) -> UpdateCandidate | None:
        """Like check_update() but lets GitError and id errors propagate."""
        if record.type != "github":
            return None
        owner_repo = record.skill_id.locator

        local = self.local_version(clone_dir, record.path)
        self.fetch_remote(clone_dir)
        branch = self.tracked_branch(clone_dir) or self.resolve_default_branch(owner_repo)
        remote = self.remote_version(clone_dir, f"origin/{branch}", record.path)
        if remote == local:
            return None
        return UpdateCandidate(
            skill=record,
            remote_head=remote,
            branch=branch,
            url=gitops.github_clone_url(owner_repo),
        )

    def check_update(self, record: SkillRecord, clone_dir: Path) -> UpdateCandidate | None:
        try:
            return self.evaluate_update(record, clone_dir)
        except SkmError:
            return None

    def scan_updates(
        self,
        records: Iterable[SkillRecord],
        storage_dir_for: Callable[[str], Path],
        *,
        max_workers: int = 1,
    ) -> UpdateScan:
        """
        Check every record independently. One skill's failure is reported in
        `failures` and never stops the others.
        """
        items = list(records)

        def _one(record: SkillRecord) -> UpdateCandidate | SkillFailure | None:
            try:
                return self.evaluate_update(record, storage_dir_for(record.id))
            except (SkmError, OSError) as e:
                return SkillFailure(record.id, f"update check failed: {e}")

        if max_workers > 1 and len(items) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                outcomes = list(pool.map(_one, items))
        else:
            outcomes = [_one(r) for r in items]

        candidates: list[UpdateCandidate] = []
        up_to_date: list[str] = []
        skipped: list[str] = []
        failures: list[SkillFailure] = []
        for record, outcome in zip(items, outcomes):
            if isinstance(outcome, UpdateCandidate):
                candidates.append(outcome)
            elif isinstance(outcome, SkillFailure):
                failures.append(outcome)
            elif record.type != "github":
                skipped.append(record.id)
            else:
                up_to_date.append(record.id)
        return UpdateScan(
            candidates=tuple(candidates),
            up_to_date=tuple(up_to_date),
            skipped=tuple(skipped),
            failures=tuple(failures),
        )

    def remote_manifest_exists(self, owner_repo: str, branch: str, subpath: str | None = None) -> bool:
        """
        Check SKILL.md on the remote without cloning the repository. When the
        lightweight query cannot answer, a throwaway shallow sparse clone is used.
        """
        if self.probe is not None:
            found = self.probe.manifest_exists(owner_repo, branch, subpath)
            if found is not None:
                return found

        with tempfile.TemporaryDirectory(prefix="skm-check-", ignore_cleanup_errors=True) as td:
            dest = Path(td) / "repo"
            url = gitops.github_clone_url(owner_repo)
            if subpath:
                gitops.clone_shallow_sparse(self.git, url, dest, subpath, branch)
                return (dest / subpath / MANIFEST_FILENAME).is_file()
            gitops.clone_shallow(self.git, url, dest, branch)
            return (dest / MANIFEST_FILENAME).is_file()

    def clone(self, url: str, dest: Path, *, subpath: str | None, branch: str) -> None:
        if subpath:
            gitops.clone_sparse(self.git, url, dest, subpath, branch)
        else:
            gitops.clone_full(self.git, url, dest)
