from __future__ import annotations

import argparse
import json
import sys
import textwrap
from dataclasses import replace
from pathlib import Path
from typing import Any

from ._version import __version__
from .config import HOME_ENV_VAR, config_path, config_to_json, save_config
from .context import SkmContext
from .errors import SkillFailure, SkmError
from .links import find_broken_links, find_foreign_skills, remove_broken_links
from .projects import ProjectInfo
from .repository import ORIGINAL_ACTIONS, SkillRepository


def _print_table(rows: list[list[str]]) -> None:
    if not rows:
        return
    widths = [0] * len(rows[0])
    for r in rows:
        for i, c in enumerate(r):
            widths[i] = max(widths[i], len(c))
    for r in rows:
        line = "  ".join(c.ljust(widths[i]) for i, c in enumerate(r))
        print(line.rstrip())


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


def _print_failures(failures: tuple[SkillFailure, ...] | list[SkillFailure]) -> None:
    for f in failures:
        print(f"error: {f}", file=sys.stderr)


def _is_url(value: str) -> bool:
    return "://" in value


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="skm",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="Manage a global skills repository and link skills into AI tool projects.",
        epilog=textwrap.dedent(
            f"""\
            Environment variables:
              {HOME_ENV_VAR}  skm home directory (holds config.json and repo/)
            """
        ),
    )
    p.add_argument("--home", help=f"skm home directory (default: ${HOME_ENV_VAR} or the user data dir)")
    p.add_argument("--version", action="version", version=f"skm {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # config
    cfg = sub.add_parser("config", help="Inspect or change config.json")
    cfg_sub = cfg.add_subparsers(dest="subcmd", required=True)
    cfg_sub.add_parser("path", help="Print config path")
    cfg_sub.add_parser("show", help="Show config")
    cfg_set = cfg_sub.add_parser("set", help="Set config fields")
    cfg_set.add_argument("--git-timeout-s", type=float, help="Timeout for each git command")
    cfg_set.add_argument("--http-timeout-s", type=float, help="Timeout for remote manifest checks")

    # global repository
    repo = sub.add_parser("repo", help="Manage the global skills repository")
    repo_sub = repo.add_subparsers(dest="subcmd", required=True)

    repo_list = repo_sub.add_parser("list", aliases=["ls"], help="List stored skills")
    repo_list.add_argument("--json", action="store_true", help="Output JSON")

    repo_add = repo_sub.add_parser("add", help="Add a skill from a GitHub URL or a local directory")
    repo_add.add_argument(
        "source",
        help="https://github.com/<owner>/<repo>[/tree/<branch>[/<path>]] or a local directory containing SKILL.md",
    )
    repo_add.add_argument("--overwrite", action="store_true", help="Replace the skill if it already exists")
    repo_add.add_argument(
        "--original",
        choices=ORIGINAL_ACTIONS,
        default="keep",
        help="Local skills only: keep the original directory, replace it with a link, or delete it (default: keep)",
    )
    repo_add.add_argument("--json", action="store_true", help="Output JSON")

    repo_update = repo_sub.add_parser("update", help="Check GitHub skills for upstream changes and pull them")
    repo_update.add_argument("skill_ids", nargs="*", metavar="SKILL_ID", help="Limit to these skills (default: all)")
    repo_update.add_argument("--check", action="store_true", help="Only report available updates")
    repo_update.add_argument("--jobs", type=int, default=1, help="Parallel update checks (default: 1)")
    repo_update.add_argument("--json", action="store_true", help="Output JSON")

    repo_delete = repo_sub.add_parser("delete", aliases=["rm"], help="Delete a skill from the repository")
    repo_delete.add_argument("skill_id", metavar="SKILL_ID")

    # projects
    def _add_project_args(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--project-dir", default=".", help="Project root (default: .)")
        parser.add_argument("--tool", help="AI tool type, e.g. claude or cursor (required when several are detected)")
        parser.add_argument("--skill-dir", help="Explicit skill directory (skips tool detection)")

    projects = sub.add_parser("projects", help="List AI tools detected in a project")
    projects.add_argument("--project-dir", default=".", help="Project root (default: .)")
    projects.add_argument("--json", action="store_true", help="Output JSON")

    status = sub.add_parser("status", help="Show linked, broken and unmanaged skills in a project")
    _add_project_args(status)
    status.add_argument("--prune-broken", action="store_true", help="Remove broken links")
    status.add_argument("--json", action="store_true", help="Output JSON")

    link = sub.add_parser("link", help="Link skills into a project")
    _add_project_args(link)
    link.add_argument("skill_ids", nargs="+", metavar="SKILL_ID")

    unlink = sub.add_parser("unlink", help="Remove skill links from a project")
    _add_project_args(unlink)
    unlink.add_argument("skill_ids", nargs="+", metavar="SKILL_ID")

    sync = sub.add_parser("sync", help="Make the project's links exactly the given skills")
    _add_project_args(sync)
    sync.add_argument("skill_ids", nargs="*", metavar="SKILL_ID", help="Desired skills (none: unlink all)")
    sync.add_argument("--json", action="store_true", help="Output JSON")

    return p


def _make_context(args: argparse.Namespace) -> SkmContext:
    return SkmContext.create(args.home)


def cmd_config(args: argparse.Namespace) -> int:
    with _make_context(args) as ctx:
        if args.subcmd == "path":
            print(str(config_path(ctx.home)))
            return 0

        if args.subcmd == "show":
            _print_json(config_to_json(ctx.config))
            return 0

        if args.subcmd == "set":
            cfg = ctx.config
            if args.git_timeout_s is not None:
                if args.git_timeout_s <= 0:
                    raise SkmError("--git-timeout-s must be positive.")
                cfg = replace(cfg, git_timeout_s=args.git_timeout_s)
            if args.http_timeout_s is not None:
                if args.http_timeout_s <= 0:
                    raise SkmError("--http-timeout-s must be positive.")
                cfg = replace(cfg, http_timeout_s=args.http_timeout_s)
            path = save_config(cfg, ctx.home)
            print(f"Saved: {path}")
            return 0

    raise AssertionError("unreachable")


def _record_json(record) -> dict[str, Any]:
    return {"id": record.id, "type": record.type, "commitId": record.commit_id, "path": record.path}


def cmd_repo(args: argparse.Namespace) -> int:
    with _make_context(args) as ctx:
        repo = SkillRepository(ctx)

        if args.subcmd in ("list", "ls"):
            skills = repo.list_skills()
            if args.json:
                _print_json([_record_json(s) for s in skills])
                return 0
            if not skills:
                print("No skills found in repository.")
                return 0
            rows = [["ID", "VERSION", "TYPE", "PATH"]]
            for s in skills:
                rows.append([s.id, s.short_version or "-", s.type, s.path or "(root)"])
            _print_table(rows)
            return 0

        if args.subcmd == "add":
            if _is_url(args.source):
                print(f"Adding {args.source}...", file=sys.stderr)
                result = repo.add_github(args.source, overwrite=args.overwrite)
            else:
                result = repo.add_local(args.source, overwrite=args.overwrite, original=args.original)
            if args.json:
                _print_json(
                    {
                        "skill": _record_json(result.skill),
                        "storage_path": str(result.storage_path),
                        "replaced": result.replaced,
                        "warnings": list(result.warnings),
                    }
                )
            else:
                print(f"Skill {result.skill.id} added successfully.")
                print(f"storage: {result.storage_path}")
            for w in result.warnings:
                print(f"warning: {w}", file=sys.stderr)
            return 0

        if args.subcmd == "update":
            skill_ids = args.skill_ids or None
            scan = repo.check_updates(skill_ids, max_workers=max(args.jobs, 1))
            updated: tuple[str, ...] = ()
            failures = list(scan.failures)
            if not args.check and scan.candidates:
                result = repo.update(scan.candidates)
                updated = result.updated
                failures.extend(result.failures)

            if args.json:
                _print_json(
                    {
                        "available": [
                            {
                                "id": c.skill.id,
                                "from": c.skill.commit_id,
                                "to": c.remote_head,
                                "branch": c.branch,
                            }
                            for c in scan.candidates
                        ],
                        "updated": list(updated),
                        "up_to_date": list(scan.up_to_date),
                        "skipped": list(scan.skipped),
                        "failures": [{"id": f.skill_id, "message": f.message} for f in failures],
                    }
                )
            else:
                if not scan.candidates and not failures:
                    print("All skills are up to date.")
                for c in scan.candidates:
                    print(f"available: {c.skill.id} ({c.skill.short_version or 'N/A'} -> {c.remote_head[:7]})")
                for skill_id in updated:
                    print(f"updated: {skill_id}")
            _print_failures(failures)
            return 1 if failures else 0

        if args.subcmd in ("delete", "rm"):
            storage = repo.delete(args.skill_id)
            print(f"Skill {args.skill_id} deleted ({storage}).")
            return 0

    raise AssertionError("unreachable")


def cmd_projects(args: argparse.Namespace) -> int:
    with _make_context(args) as ctx:
        projects = ctx.project_detector(Path(args.project_dir)).detect_all()
    if args.json:
        _print_json([{"type": p.type, "root": str(p.root), "skill_dir": str(p.skill_dir)} for p in projects])
        return 0
    if not projects:
        print("No supported AI project detected.")
        return 0
    rows = [["TOOL", "SKILL_DIR"]]
    rows.extend([p.type, str(p.skill_dir)] for p in projects)
    _print_table(rows)
    return 0


def _resolve_project(ctx: SkmContext, args: argparse.Namespace) -> ProjectInfo:
    root = Path(args.project_dir).expanduser().resolve()
    if args.skill_dir:
        return ProjectInfo(type=args.tool or "custom", root=root, skill_dir=Path(args.skill_dir).expanduser().resolve())

    detector = ctx.project_detector(root)
    if args.tool:
        project = detector.find(args.tool)
        if project is None:
            raise SkmError(f"AI tool {args.tool!r} not detected in {root}.")
        return project

    projects = detector.detect_all()
    if not projects:
        raise SkmError(f"No supported AI project detected in {root}.")
    if len(projects) > 1:
        found = ", ".join(p.type for p in projects)
        raise SkmError(f"Several AI tools detected ({found}); choose one with --tool.")
    return projects[0]


def _require_skill_dir(project: ProjectInfo) -> Path:
    if project.skill_dir is None:
        raise SkmError(f"No skill directory known for {project.type} project at {project.root}.")
    return project.skill_dir


def cmd_status(args: argparse.Namespace) -> int:
    with _make_context(args) as ctx:
        project = _resolve_project(ctx, args)
        skill_dir = _require_skill_dir(project)

        ids = [r.id for r in ctx.registry.list_all()]
        linked = sorted(ctx.links.currently_linked(skill_dir, ids))
        broken = find_broken_links(skill_dir)
        foreign = find_foreign_skills(skill_dir)
        removed: list[str] = []
        if args.prune_broken and broken:
            removed = remove_broken_links(skill_dir, broken)

    if args.json:
        _print_json(
            {
                "tool": project.type,
                "skill_dir": str(skill_dir),
                "linked": linked,
                "broken": broken,
                "foreign": foreign,
                "removed": removed,
            }
        )
        return 0

    print(f"tool: {project.type}")
    print(f"skill_dir: {skill_dir}")
    for skill_id in linked:
        print(f"linked: {skill_id}")
    for name in broken:
        if name in removed:
            print(f"removed broken link: {name}")
        else:
            print(f"broken: {name}", file=sys.stderr)
    if broken and not removed:
        print("warning: run with --prune-broken to remove broken links", file=sys.stderr)
    for name in foreign:
        print(f"unmanaged: {name}")
    return 0


def cmd_link(args: argparse.Namespace) -> int:
    failures: list[SkillFailure] = []
    with _make_context(args) as ctx:
        project = _resolve_project(ctx, args)
        skill_dir = _require_skill_dir(project)
        for skill_id in args.skill_ids:
            try:
                if args.cmd == "link":
                    outcome = ctx.links.link(skill_id, skill_dir)
                    print(f"Linked {skill_id}" if outcome == "linked" else f"Skill {skill_id} is already linked.")
                else:
                    outcome = ctx.links.unlink(skill_id, skill_dir)
                    print(f"Unlinked {skill_id}" if outcome == "unlinked" else f"Skill {skill_id} is not linked.")
            except SkmError as e:
                failures.append(SkillFailure(skill_id, str(e)))
    _print_failures(failures)
    return 1 if failures else 0


def cmd_sync(args: argparse.Namespace) -> int:
    with _make_context(args) as ctx:
        project = _resolve_project(ctx, args)
        skill_dir = _require_skill_dir(project)

        known = [r.id for r in ctx.registry.list_all()]
        unknown = [sid for sid in args.skill_ids if sid not in known]
        if unknown:
            raise SkmError(f"Skill(s) not found in repository: {', '.join(unknown)}")
        actual = ctx.links.currently_linked(skill_dir, known)
        result = ctx.links.reconcile(args.skill_ids, actual, skill_dir)

    if args.json:
        _print_json(
            {
                "skill_dir": str(skill_dir),
                "linked": list(result.linked),
                "unlinked": list(result.unlinked),
                "unchanged": list(result.unchanged),
                "failures": [{"id": f.skill_id, "message": f.message} for f in result.failures],
            }
        )
    else:
        print(f"skill_dir: {skill_dir}")
        for skill_id in result.linked:
            print(f"linked: {skill_id}")
        for skill_id in result.unlinked:
            print(f"unlinked: {skill_id}")
        for skill_id in result.unchanged:
            print(f"unchanged: {skill_id}")
    _print_failures(result.failures)
    return 1 if result.failures else 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        if args.cmd == "config":
            return cmd_config(args)
        if args.cmd == "repo":
            return cmd_repo(args)
        if args.cmd == "projects":
            return cmd_projects(args)
        if args.cmd == "status":
            return cmd_status(args)
        if args.cmd in ("link", "unlink"):
            return cmd_link(args)
        if args.cmd == "sync":
            return cmd_sync(args)
        raise AssertionError("unreachable")
    except SkmError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nHave a nice day!", file=sys.stderr)
        return 130


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
