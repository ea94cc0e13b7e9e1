from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .config import REPO_DIRNAME, VERSIONS_FILENAME, Config, ensure_home, home_path, load_config
from .git import Git, GitRunner
from .github import GitHubClient
from .identity import encode_safe_name
from .links import LinkReconciler
from .projects import ProjectDetector
from .registry import SkillRecord, SkillRegistry
from .versions import ManifestProbe, VersionResolver


class RepoLayout:
    """repo/<safe_name>/ storage directories plus their registry records."""

    def __init__(self, repo_dir: Path, registry: SkillRegistry) -> None:
        self.repo_dir = repo_dir
        self.registry = registry

    def storage_path(self, skill_id: str) -> Path:
        return self.repo_dir / encode_safe_name(skill_id)

    def get(self, skill_id: str) -> SkillRecord | None:
        return self.registry.get(skill_id)


@dataclass
class SkmContext:
    """
    Process-wide services, built once and passed to every operation.
    """

    home: Path
    config: Config
    registry: SkillRegistry
    git: Git
    github: GitHubClient | None
    resolver: VersionResolver
    layout: RepoLayout
    links: LinkReconciler

    @classmethod
    def create(
        cls,
        home: str | Path | None = None,
        *,
        config: Config | None = None,
        git: Git | None = None,
        probe: ManifestProbe | None = None,
    ) -> SkmContext:
        home_dir = home_path(home).resolve()
        ensure_home(home_dir)
        cfg = config if config is not None else load_config(home_dir)

        git_runner = git if git is not None else GitRunner(timeout_s=cfg.git_timeout_s)
        github: GitHubClient | None = None
        if probe is None:
            github = GitHubClient(timeout_s=cfg.http_timeout_s)
            probe = github

        registry = SkillRegistry(home_dir / REPO_DIRNAME / VERSIONS_FILENAME)
        layout = RepoLayout(home_dir / REPO_DIRNAME, registry)
        return cls(
            home=home_dir,
            config=cfg,
            registry=registry,
            git=git_runner,
            github=github,
            resolver=VersionResolver(git_runner, probe=probe),
            layout=layout,
            links=LinkReconciler(layout, system=cfg.system),
        )

    @property
    def repo_dir(self) -> Path:
        return self.layout.repo_dir

    def storage_path(self, skill_id: str) -> Path:
        return self.layout.storage_path(skill_id)

    def project_detector(self, cwd: Path | None = None) -> ProjectDetector:
        return ProjectDetector(cwd, tools=self.config.ai_tools)

    def close(self) -> None:
        if self.github is not None:
            self.github.close()

    def __enter__(self) -> SkmContext:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
