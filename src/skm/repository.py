from __future__ import annotations

import os
import shutil
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Literal

from .context import SkmContext
from .errors import ManifestMissingError, SkillExistsError, SkillFailure, SkillNotFoundError, SkmError
from .git import check_git_version, normalize_github_url
from .git import pull as git_pull
from .github import MANIFEST_FILENAME, manifest_blob_url
from .identity import SkillId
from .links import create_dir_link
from .registry import SkillRecord
from .versions import UpdateCandidate, UpdateScan

OriginalAction = Literal["keep", "link", "delete"]
ORIGINAL_ACTIONS: tuple[str, ...] = ("keep", "link", "delete")

STAGING_DIRNAME = ".staging"


@dataclass(frozen=True)
class AddResult:
    skill: SkillRecord
    storage_path: Path
    replaced: bool
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class UpdateResult:
    updated: tuple[str, ...]
    failures: tuple[SkillFailure, ...]


def expand_user_path(value: str) -> Path:
    return Path(value.strip()).expanduser().resolve()


def _is_within(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


class SkillRepository:
    """
    The global skill repository: one stored copy per skill under repo/<safe_name>/
    and its record in repo/versions.json. A record is written only after the
    content it describes is in place.
    """

    def __init__(self, ctx: SkmContext) -> None:
        self.ctx = ctx
        self.registry = ctx.registry
        self.resolver = ctx.resolver

    def list_skills(self) -> list[SkillRecord]:
        return sorted(self.registry.list_all(), key=lambda r: r.id)

    def get(self, skill_id: str) -> SkillRecord:
        record = self.registry.get(skill_id)
        if record is None:
            raise SkillNotFoundError(f"Skill {skill_id} not found in repository.")
        return record

    def _ensure_absent(self, skill_id: str, *, overwrite: bool) -> bool:
        exists = self.registry.get(skill_id) is not None
        if exists and not overwrite:
            raise SkillExistsError(f"Skill {skill_id} already exists. Pass overwrite to replace it.")
        return exists

    def _install_tree(self, skill_id: str, populate: Callable[[Path], None]) -> Path:
        """
        Build the content in a staging directory, then swap it into
        repo/<safe_name>/. A failure leaves any previous copy untouched.
        """
        dest = self.ctx.storage_path(skill_id)
        staging_root = self.ctx.repo_dir / STAGING_DIRNAME
        staging_root.mkdir(parents=True, exist_ok=True)

        with tempfile.TemporaryDirectory(prefix="skm-", dir=staging_root, ignore_cleanup_errors=True) as td:
            staged = Path(td) / "content"
            populate(staged)

            backup = dest.with_name(dest.name + ".skm-backup")
            had_existing = dest.exists()
            if backup.exists():
                _rmtree(backup)
            if had_existing:
                dest.rename(backup)
            try:
                shutil.move(str(staged), str(dest))
            except Exception:
                if dest.exists():
                    _rmtree(dest)
                if had_existing and backup.exists():
                    backup.rename(dest)
                raise
            finally:
                if backup.exists():
                    _rmtree(backup)
        return dest

    def add_github(self, url: str, *, overwrite: bool = False) -> AddResult:
        git = self.ctx.git
        check_git_version(git)

        info = normalize_github_url(url)
        owner_repo = info.owner_repo
        skill_id = SkillId.github(owner_repo, info.path)
        key = skill_id.key
        replaced = self._ensure_absent(key, overwrite=overwrite)

        branch = info.branch or self.resolver.resolve_default_branch(owner_repo)
        if not self.resolver.remote_manifest_exists(owner_repo, branch, skill_id.subpath):
            raise ManifestMissingError(
                f"{MANIFEST_FILENAME} not found for {key}. "
                f"Expected location: {manifest_blob_url(owner_repo, branch, skill_id.subpath)}"
            )

        commit: list[str] = []

        def _clone(staged: Path) -> None:
            self.resolver.clone(info.url, staged, subpath=skill_id.subpath, branch=branch)
            commit.append(self.resolver.local_version(staged, skill_id.subpath))

        dest = self._install_tree(key, _clone)
        self.registry.add(key, "github", commit[0], skill_id.subpath)
        return AddResult(skill=self.get(key), storage_path=dest, replaced=replaced)

    def add_local(self, path: str, *, overwrite: bool = False, original: OriginalAction = "keep") -> AddResult:
        if original not in ORIGINAL_ACTIONS:
            raise SkmError(f"Unknown action for the original directory: {original!r}")
        source = expand_user_path(path)
        if not source.exists():
            raise SkmError(f"Path does not exist: {source}")
        if not source.is_dir():
            raise SkmError(f"Path is not a directory: {source}")
        if not (source / MANIFEST_FILENAME).is_file():
            raise ManifestMissingError(f"{MANIFEST_FILENAME} not found in {source}")
        if _is_within(source, self.ctx.repo_dir.resolve()):
            raise SkmError(f"Path is already inside the skill repository: {source}")

        key = SkillId.local(source.name).key
        replaced = self._ensure_absent(key, overwrite=overwrite)

        def _copy(staged: Path) -> None:
            shutil.copytree(source, staged, symlinks=True)

        dest = self._install_tree(key, _copy)
        self.registry.add(key, "local")

        warnings: list[str] = []
        try:
            if original == "delete":
                _rmtree(source)
            elif original == "link":
                _rmtree(source)
                create_dir_link(dest, source, system=self.ctx.config.system)
        except OSError as e:
            warnings.append(f"Skill {key} was added but the original directory could not be handled ({original}): {e}")
        return AddResult(skill=self.get(key), storage_path=dest, replaced=replaced, warnings=tuple(warnings))

    def check_updates(self, skill_ids: Iterable[str] | None = None, *, max_workers: int = 1) -> UpdateScan:
        if skill_ids is None:
            records = self.list_skills()
        else:
            records = [self.get(sid) for sid in skill_ids]
        return self.resolver.scan_updates(records, self.ctx.storage_path, max_workers=max_workers)

    def update(self, candidates: Iterable[UpdateCandidate]) -> UpdateResult:
        updated: list[str] = []
        failures: list[SkillFailure] = []
        for candidate in candidates:
            skill_id = candidate.skill.id
            try:
                git_pull(self.ctx.git, self.ctx.storage_path(skill_id))
            except SkmError as e:
                failures.append(SkillFailure(skill_id, f"update failed: {e}"))
                continue
            self.registry.update_version(skill_id, candidate.remote_head)
            updated.append(skill_id)
        return UpdateResult(updated=tuple(updated), failures=tuple(failures))

    def delete(self, skill_id: str) -> Path:
        """
        Remove the stored copy and the record. Project links pointing at it are
        left in place and become broken.
        """
        self.get(skill_id)
        storage = self.ctx.storage_path(skill_id)
        try:
            if storage.exists():
                _rmtree(storage)
        except OSError as e:
            raise SkmError(f"Failed to delete {skill_id}: {e}") from e
        self.registry.remove(skill_id)
        return storage


def _rmtree(path: Path) -> None:
    # git marks pack files read-only on Windows.
    def _retry_writable(func, p, _exc) -> None:
        os.chmod(p, 0o700)
        func(p)

    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_retry_writable)
    else:
        shutil.rmtree(path, onerror=_retry_writable)
