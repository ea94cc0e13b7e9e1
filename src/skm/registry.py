from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config import write_json_atomic
from .errors import RegistryError
from .identity import SkillId, parse_skill_id


@dataclass(frozen=True)
class SkillRecord:
    id: str
    type: str
    commit_id: str | None = None  # github only
    path: str | None = None  # repository-relative directory holding SKILL.md

    @property
    def skill_id(self) -> SkillId:
        return parse_skill_id(self.id, subpath=self.path if self.type == "github" else None)

    @property
    def short_version(self) -> str | None:
        return self.commit_id[:7] if self.commit_id else None


class SkillRegistry:
    """
    id -> record store backed by a single JSON document (repo/versions.json).

    Every mutation reads and rewrites the whole snapshot. There is no locking:
    two processes mutating concurrently can lose one writer's change.
    """

    def __init__(self, versions_file: Path) -> None:
        self.versions_file = versions_file

    def _load(self) -> dict[str, dict[str, Any]]:
        if not self.versions_file.exists():
            return {}
        try:
            raw = json.loads(self.versions_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise RegistryError(f"Failed to read skill registry {self.versions_file}: {e}") from e
        if not isinstance(raw, dict):
            raise RegistryError(f"Skill registry {self.versions_file} is not a JSON object.")
        return {k: v for k, v in raw.items() if isinstance(k, str) and isinstance(v, dict)}

    def _save(self, skills: dict[str, dict[str, Any]]) -> None:
        write_json_atomic(self.versions_file, skills)

    def add(self, skill_id: str, skill_type: str, version: str | None = None, path: str | None = None) -> None:
        skills = self._load()
        stored: dict[str, Any] = {"type": skill_type}
        if version is not None:
            stored["commitId"] = version
        if path is not None:
            stored["path"] = path
        skills[skill_id] = stored
        self._save(skills)

    def remove(self, skill_id: str) -> None:
        skills = self._load()
        if skills.pop(skill_id, None) is not None:
            self._save(skills)

    def get(self, skill_id: str) -> SkillRecord | None:
        stored = self._load().get(skill_id)
        if stored is None:
            return None
        return _record(skill_id, stored)

    def update_version(self, skill_id: str, version: str) -> None:
        skills = self._load()
        if skill_id not in skills:
            return
        skills[skill_id]["commitId"] = version
        self._save(skills)

    def list_all(self) -> list[SkillRecord]:
        return [_record(k, v) for k, v in self._load().items()]


def _opt_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _record(skill_id: str, stored: dict[str, Any]) -> SkillRecord:
    return SkillRecord(
        id=skill_id,
        type=str(stored.get("type", "")),
        commit_id=_opt_str(stored.get("commitId")),
        path=_opt_str(stored.get("path")),
    )
