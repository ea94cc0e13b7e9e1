from __future__ import annotations

from dataclasses import dataclass


class SkmError(RuntimeError):
    pass


class ConfigError(SkmError):
    pass


class RegistryError(SkmError):
    pass


class InvalidSkillIdError(SkmError):
    pass


class UnsupportedSourceError(SkmError):
    pass


class SkillNotFoundError(SkmError):
    pass


class SkillExistsError(SkmError):
    pass


class ManifestMissingError(SkmError):
    pass


class LinkError(SkmError):
    pass


@dataclass(frozen=True)
class GitError(SkmError):
    command: tuple[str, ...]
    returncode: int | None
    stderr: str

    def __str__(self) -> str:
        cmd = " ".join(("git", *self.command))
        detail = self.stderr.strip()
        if self.returncode is None:
            return f"{cmd}: {detail}" if detail else cmd
        if detail:
            return f"{cmd} exited with {self.returncode}: {detail}"
        return f"{cmd} exited with {self.returncode}"


@dataclass(frozen=True)
class SkillFailure:
    skill_id: str
    message: str

    def __str__(self) -> str:
        return f"{self.skill_id}: {self.message}"
