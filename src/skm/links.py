from __future__ import annotations

import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Literal, Protocol

from .errors import LinkError, SkillFailure, SkillNotFoundError, SkmError
from .github import MANIFEST_FILENAME
from .identity import encode_safe_name
from .registry import SkillRecord

LinkOutcome = Literal["linked", "unlinked", "unchanged"]


class SkillStorage(Protocol):
    def get(self, skill_id: str) -> SkillRecord | None:
        ...

    def storage_path(self, skill_id: str) -> Path:
        ...


@dataclass(frozen=True)
class ReconcileResult:
    linked: tuple[str, ...]
    unlinked: tuple[str, ...]
    unchanged: tuple[str, ...]
    failures: tuple[SkillFailure, ...]


def _is_link(path: Path) -> bool:
    if path.is_symlink():
        return True
    isjunction = getattr(os.path, "isjunction", None)  # 3.12+
    return bool(isjunction and isjunction(path))


def _entries(skill_dir: Path) -> list[Path]:
    if not skill_dir.is_dir():
        return []
    return sorted(skill_dir.iterdir(), key=lambda p: p.name)


def find_broken_links(skill_dir: Path) -> list[str]:
    """Names of symlinks in skill_dir whose target no longer exists."""
    broken: list[str] = []
    for entry in _entries(skill_dir):
        try:
            if _is_link(entry) and not entry.exists():
                broken.append(entry.name)
        except OSError:
            continue
    return broken


def find_foreign_skills(skill_dir: Path) -> list[str]:
    """Real (non-link) directories holding a SKILL.md: skills we do not manage."""
    foreign: list[str] = []
    for entry in _entries(skill_dir):
        try:
            if _is_link(entry):
                continue
            if entry.is_dir() and (entry / MANIFEST_FILENAME).is_file():
                foreign.append(entry.name)
        except OSError:
            continue
    return foreign


def remove_broken_links(skill_dir: Path, names: Iterable[str]) -> list[str]:
    """
    Remove the named entries if they are still broken links. Anything else
    (healthy links, real directories, files) is left alone.
    """
    removed: list[str] = []
    for name in names:
        entry = skill_dir / name
        if _is_link(entry) and not entry.exists():
            _remove_link(entry)
            removed.append(name)
    return removed


def _remove_link(path: Path) -> None:
    if sys.platform == "win32" and not path.is_symlink():
        os.rmdir(path)  # junction
        return
    try:
        path.unlink()
    except IsADirectoryError:
        os.rmdir(path)


def create_dir_link(target: Path, link_path: Path, *, system: str = sys.platform) -> None:
    """Directory symlink, or a junction on Windows (no privileges required)."""
    if system == "win32":
        result = subprocess.run(
            ["cmd", "/c", "mklink", "/J", str(link_path), str(target)],
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            detail = result.stderr.strip() or result.stdout.strip()
            raise OSError(f"mklink /J failed: {detail}")
        return
    os.symlink(target, link_path, target_is_directory=True)


class LinkReconciler:
    """
    Keeps the links in a project skill directory in line with a desired set
    of skill ids. Links are named by the skill's safe name; only entries that
    are links are ever removed.
    """

    def __init__(self, storage: SkillStorage, *, system: str = sys.platform) -> None:
        self.storage = storage
        self.system = system

    def link_path(self, skill_id: str, skill_dir: Path) -> Path:
        return skill_dir / encode_safe_name(skill_id)

    def target_path(self, record: SkillRecord) -> Path:
        base = self.storage.storage_path(record.id)
        return base / record.path if record.path else base

    def currently_linked(self, skill_dir: Path, skill_ids: Iterable[str]) -> set[str]:
        # Presence only: a broken link still counts as linked.
        return {sid for sid in skill_ids if os.path.lexists(self.link_path(sid, skill_dir))}

    def link(self, skill_id: str, skill_dir: Path) -> LinkOutcome:
        record = self.storage.get(skill_id)
        if record is None:
            raise SkillNotFoundError(f"Skill {skill_id} not found in repository.")

        dest = self.link_path(skill_id, skill_dir)
        if os.path.lexists(dest):
            return "unchanged"

        target = self.target_path(record)
        if not target.is_dir():
            raise LinkError(f"Failed to link {skill_id}: stored copy is missing ({target}).")
        try:
            skill_dir.mkdir(parents=True, exist_ok=True)
            create_dir_link(target, dest, system=self.system)
        except OSError as e:
            raise LinkError(f"Failed to link {skill_id}: {e}") from e
        return "linked"

    def unlink(self, skill_id: str, skill_dir: Path) -> LinkOutcome:
        dest = self.link_path(skill_id, skill_dir)
        if not os.path.lexists(dest):
            return "unchanged"
        if not _is_link(dest):
            raise LinkError(f"Failed to unlink {skill_id}: {dest} is not a link managed by skm.")
        try:
            _remove_link(dest)
        except OSError as e:
            raise LinkError(f"Failed to unlink {skill_id}: {e}") from e
        return "unlinked"

    def reconcile(self, desired: Iterable[str], actual: Iterable[str], skill_dir: Path) -> ReconcileResult:
        desired_set = set(desired)
        actual_set = set(actual)

        linked: list[str] = []
        unlinked: list[str] = []
        unchanged: list[str] = []
        failures: list[SkillFailure] = []
        for skill_id in sorted(desired_set | actual_set):
            want = skill_id in desired_set
            have = skill_id in actual_set
            if want == have:
                unchanged.append(skill_id)
                continue
            try:
                if want:
                    outcome = self.link(skill_id, skill_dir)
                else:
                    outcome = self.unlink(skill_id, skill_dir)
            except (SkmError, OSError) as e:
                failures.append(SkillFailure(skill_id, str(e)))
                continue
            if outcome == "linked":
                linked.append(skill_id)
            elif outcome == "unlinked":
                unlinked.append(skill_id)
            else:
                unchanged.append(skill_id)

        return ReconcileResult(
            linked=tuple(linked),
            unlinked=tuple(unlinked),
            unchanged=tuple(unchanged),
            failures=tuple(failures),
        )
