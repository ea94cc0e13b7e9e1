from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from .config import AIToolConfig

UNKNOWN_PROJECT = "unknown"

# Each AI tool and the project-relative directories it reads skills from.
DEFAULT_AI_TOOLS: tuple[AIToolConfig, ...] = (
    AIToolConfig(type="antigravity", skill_dirs=(".gemini/antigravity/global_skills/skills", ".agent/skills")),
    AIToolConfig(type="github", skill_dirs=(".copilot/skills", ".github/skills")),
    AIToolConfig(type="cursor", skill_dirs=(".cursor/skills",)),
    AIToolConfig(type="claude", skill_dirs=(".claude/skills",)),
    AIToolConfig(type="opencode", skill_dirs=(".opencode/skills",)),
)


@dataclass(frozen=True)
class ProjectInfo:
    type: str
    root: Path
    skill_dir: Path | None = None


class ProjectDetector:
    def __init__(self, cwd: Path | None = None, *, tools: Sequence[AIToolConfig] | None = None) -> None:
        self.cwd = (cwd or Path.cwd()).resolve()
        self.tools = tuple(tools) if tools is not None else DEFAULT_AI_TOOLS

    def detect_all(self) -> list[ProjectInfo]:
        """
        A tool is present when the parent of one of its skill directories
        exists (e.g. `.claude/` for `.claude/skills`). The first match per tool wins.
        """
        projects: list[ProjectInfo] = []
        for tool in self.tools:
            for rel in tool.skill_dirs:
                skill_dir = self.cwd / rel
                if skill_dir.parent.is_dir():
                    projects.append(ProjectInfo(type=tool.type, root=self.cwd, skill_dir=skill_dir))
                    break
        return projects

    def detect(self) -> ProjectInfo:
        projects = self.detect_all()
        if projects:
            return projects[0]
        return ProjectInfo(type=UNKNOWN_PROJECT, root=self.cwd)

    def find(self, tool_type: str) -> ProjectInfo | None:
        for project in self.detect_all():
            if project.type == tool_type:
                return project
        return None
