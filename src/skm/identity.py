from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from .errors import InvalidSkillIdError

SourceType = Literal["github", "local"]

SOURCE_TYPES: tuple[str, ...] = ("github", "local")
TYPE_SEPARATOR = ":"
PATH_SEPARATOR = "/"
JOIN_TOKEN = "__"


def encode_safe_name(skill_id: str) -> str:
    """
    Map a skill id to the directory/link name used on disk.

        github:user/repo/skills/pdf -> github__user__repo__skills__pdf
    """
    if TYPE_SEPARATOR not in skill_id:
        return skill_id.replace(PATH_SEPARATOR, JOIN_TOKEN)
    source, rest = skill_id.split(TYPE_SEPARATOR, 1)
    return f"{source}{JOIN_TOKEN}{rest.replace(PATH_SEPARATOR, JOIN_TOKEN)}"


def decode_safe_name(safe_name: str) -> str:
    # Not an inverse when a segment itself contains "__".
    parts = safe_name.split(JOIN_TOKEN)
    if len(parts) < 2:
        return safe_name
    return f"{parts[0]}{TYPE_SEPARATOR}{PATH_SEPARATOR.join(parts[1:])}"


def _clean_segments(value: str, *, what: str, raw: str) -> list[str]:
    segments = value.strip().strip(PATH_SEPARATOR).split(PATH_SEPARATOR)
    if any(not s or s in (".", "..") for s in segments):
        raise InvalidSkillIdError(f"Invalid {what} in skill id {raw!r}.")
    return segments


@dataclass(frozen=True)
class SkillId:
    source: SourceType
    locator: str
    subpath: str | None = None

    @classmethod
    def github(cls, owner_repo: str, subpath: str | None = None) -> SkillId:
        raw = owner_repo if not subpath else f"{owner_repo}/{subpath}"
        parts = _clean_segments(owner_repo, what="owner/repo", raw=raw)
        if len(parts) != 2:
            raise InvalidSkillIdError(f"Invalid owner/repo in skill id {raw!r}. Expected <owner>/<repo>.")
        sub: str | None = None
        if subpath and subpath.strip().strip(PATH_SEPARATOR) not in ("", "."):
            sub = PATH_SEPARATOR.join(_clean_segments(subpath, what="subpath", raw=raw))
        return cls(source="github", locator=PATH_SEPARATOR.join(parts), subpath=sub)

    @classmethod
    def local(cls, name: str) -> SkillId:
        value = name.strip()
        if not value or PATH_SEPARATOR in value or "\\" in value or value in (".", ".."):
            raise InvalidSkillIdError(f"Invalid local skill name {name!r}.")
        return cls(source="local", locator=value)

    @property
    def owner_repo(self) -> str | None:
        return self.locator if self.source == "github" else None

    @property
    def key(self) -> str:
        if self.subpath:
            return f"{self.source}{TYPE_SEPARATOR}{self.locator}{PATH_SEPARATOR}{self.subpath}"
        return f"{self.source}{TYPE_SEPARATOR}{self.locator}"

    @property
    def safe_name(self) -> str:
        return encode_safe_name(self.key)

    def __str__(self) -> str:
        return self.key


def parse_skill_id(value: str, *, subpath: str | None = None) -> SkillId:
    """
    Parse the string form of an id.

    GitHub keys are split into owner/repo and subpath by position; when the
    record's stored subpath is known it must match the key's tail.
    """
    raw = value.strip()
    if TYPE_SEPARATOR not in raw:
        raise InvalidSkillIdError(f"Invalid skill id {value!r}. Expected <type>:<locator>.")
    source, rest = raw.split(TYPE_SEPARATOR, 1)
    if source == "local":
        return SkillId.local(rest)
    if source != "github":
        raise InvalidSkillIdError(f"Unknown skill source {source!r} in {value!r}. Expected one of: {', '.join(SOURCE_TYPES)}.")

    parts = _clean_segments(rest, what="locator", raw=value)
    if len(parts) < 2:
        raise InvalidSkillIdError(f"Invalid skill id {value!r}. Expected github:<owner>/<repo>[/<path>].")
    owner_repo = PATH_SEPARATOR.join(parts[:2])
    tail = PATH_SEPARATOR.join(parts[2:]) or None
    if subpath is not None:
        stored = subpath.strip().strip(PATH_SEPARATOR) or None
        if stored != tail:
            raise InvalidSkillIdError(f"Skill id {value!r} does not end with its stored path {subpath!r}.")
    return SkillId.github(owner_repo, tail)
