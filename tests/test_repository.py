import os
import tempfile
import unittest
from pathlib import Path

from skm.context import SkmContext
from skm.errors import GitError, ManifestMissingError, SkillExistsError, SkillNotFoundError, SkmError
from skm.repository import SkillRepository


class StaticProbe:
    def __init__(self, answer: bool | None) -> None:
        self.answer = answer

    def manifest_exists(self, owner_repo: str, branch: str, subpath: str | None = None) -> bool | None:
        return self.answer


class FakeRemoteGit:
    """
    Pretends every clone is of a repository holding skills/pdf/SKILL.md.
    `log` answers with `local` in a checkout and `remote` against origin refs.
    """

    def __init__(self, *, local: str = "abc123", remote: str = "abc123", default_branch: str = "main") -> None:
        self.local = local
        self.remote = remote
        self.default_branch = default_branch
        self.fail_pull_in: set[Path] = set()
        self.calls: list[tuple[list[str], Path | None]] = []

    def run(self, args: list[str], *, cwd: Path | None = None) -> str:
        self.calls.append((list(args), cwd))
        cmd = args[0]
        if cmd == "--version":
            return "git version 2.43.0\n"
        if cmd == "ls-remote":
            return f"ref: refs/heads/{self.default_branch}\tHEAD\n{self.remote}\tHEAD\n"
        if cmd == "clone":
            dest = Path(args[-1])
            dest.mkdir(parents=True)
            if "--no-checkout" not in args:
                (dest / "SKILL.md").write_text("# root\n", encoding="utf-8")
            return ""
        if cmd == "checkout":
            manifest = cwd / "skills" / "pdf" / "SKILL.md"
            manifest.parent.mkdir(parents=True, exist_ok=True)
            manifest.write_text("# pdf\n", encoding="utf-8")
            return ""
        if cmd == "log":
            return (self.remote if args[3].startswith("origin/") else self.local) + "\n"
        if cmd == "pull":
            if cwd in self.fail_pull_in:
                raise GitError(tuple(args), 1, "fatal: merge conflict")
            return ""
        return ""

    def commands(self) -> list[str]:
        return [args[0] for args, _ in self.calls]


class RepositoryTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name).resolve()
        self.git = FakeRemoteGit()
        self.ctx = SkmContext.create(self.root / "home", git=self.git, probe=StaticProbe(True))
        self.repo = SkillRepository(self.ctx)

    def tearDown(self) -> None:
        self.ctx.close()
        self._td.cleanup()

    def _local_skill(self, name: str) -> Path:
        src = self.root / "work" / name
        src.mkdir(parents=True)
        (src / "SKILL.md").write_text(f"# {name}\n", encoding="utf-8")
        (src / "notes.txt").write_text("notes\n", encoding="utf-8")
        return src


class TestAddGithub(RepositoryTestCase):
    def test_add_subdirectory_skill(self) -> None:
        result = self.repo.add_github("https://github.com/user/repo/tree/main/skills/pdf")

        self.assertEqual(result.skill.id, "github:user/repo/skills/pdf")
        self.assertEqual(result.skill.commit_id, "abc123")
        self.assertEqual(result.skill.path, "skills/pdf")
        self.assertFalse(result.replaced)
        self.assertEqual(result.storage_path, self.ctx.repo_dir / "github__user__repo__skills__pdf")
        self.assertTrue((result.storage_path / "skills" / "pdf" / "SKILL.md").is_file())
        self.assertIn(["sparse-checkout", "set", "skills/pdf"], [args for args, _ in self.git.calls])
        # Branch came from the URL, so no default-branch lookup.
        self.assertNotIn("ls-remote", self.git.commands())

    def test_add_whole_repo_uses_default_branch_and_full_clone(self) -> None:
        self.git.default_branch = "trunk"
        result = self.repo.add_github("https://github.com/user/repo")

        self.assertEqual(result.skill.id, "github:user/repo")
        self.assertIsNone(result.skill.path)
        self.assertTrue((result.storage_path / "SKILL.md").is_file())
        clone_args = next(args for args, _ in self.git.calls if args[0] == "clone")
        self.assertEqual(clone_args[:2], ["clone", "https://github.com/user/repo.git"])

    def test_missing_manifest_stores_nothing(self) -> None:
        ctx = SkmContext.create(self.root / "home2", git=self.git, probe=StaticProbe(False))
        with self.assertRaises(ManifestMissingError) as err:
            SkillRepository(ctx).add_github("https://github.com/user/repo/tree/main/skills/nope")
        self.assertIn("https://github.com/user/repo/blob/main/skills/nope/SKILL.md", str(err.exception))
        self.assertEqual(ctx.registry.list_all(), [])
        self.assertFalse((ctx.repo_dir / "github__user__repo__skills__nope").exists())

    def test_existing_skill_requires_overwrite(self) -> None:
        self.repo.add_github("https://github.com/user/repo/tree/main/skills/pdf")
        with self.assertRaises(SkillExistsError):
            self.repo.add_github("https://github.com/user/repo/tree/main/skills/pdf")

        self.git.local = "fff999"
        result = self.repo.add_github("https://github.com/user/repo/tree/main/skills/pdf", overwrite=True)
        self.assertTrue(result.replaced)
        self.assertEqual(result.skill.commit_id, "fff999")

    def test_failed_clone_keeps_previous_copy(self) -> None:
        first = self.repo.add_github("https://github.com/user/repo/tree/main/skills/pdf")

        def failing_run(args: list[str], *, cwd: Path | None = None) -> str:
            if args[0] == "clone":
                raise GitError(tuple(args), 128, "fatal: unable to access")
            return FakeRemoteGit.run(self.git, args, cwd=cwd)

        self.git.run = failing_run
        with self.assertRaises(GitError):
            self.repo.add_github("https://github.com/user/repo/tree/main/skills/pdf", overwrite=True)
        self.assertTrue((first.storage_path / "skills" / "pdf" / "SKILL.md").is_file())
        self.assertEqual(self.repo.get(first.skill.id).commit_id, "abc123")

    def test_old_git_is_rejected(self) -> None:
        def old_git(args: list[str], *, cwd: Path | None = None) -> str:
            return "git version 2.17.1\n"

        self.git.run = old_git
        with self.assertRaises(GitError):
            self.repo.add_github("https://github.com/user/repo")
        self.assertEqual(self.repo.list_skills(), [])


class TestAddLocal(RepositoryTestCase):
    def test_add_copies_directory(self) -> None:
        src = self._local_skill("my-skill")
        result = self.repo.add_local(str(src))

        self.assertEqual(result.skill.id, "local:my-skill")
        self.assertIsNone(result.skill.commit_id)
        self.assertEqual(result.storage_path, self.ctx.repo_dir / "local__my-skill")
        self.assertTrue((result.storage_path / "notes.txt").is_file())
        self.assertTrue((src / "SKILL.md").is_file())

    def test_requires_manifest(self) -> None:
        src = self.root / "work" / "empty"
        src.mkdir(parents=True)
        with self.assertRaises(ManifestMissingError):
            self.repo.add_local(str(src))
        with self.assertRaises(SkmError):
            self.repo.add_local(str(self.root / "work" / "missing"))

    def test_duplicate_requires_overwrite(self) -> None:
        src = self._local_skill("dup")
        self.repo.add_local(str(src))
        with self.assertRaises(SkillExistsError):
            self.repo.add_local(str(src))
        self.assertTrue(self.repo.add_local(str(src), overwrite=True).replaced)

    def test_original_delete(self) -> None:
        src = self._local_skill("moved")
        result = self.repo.add_local(str(src), original="delete")
        self.assertFalse(src.exists())
        self.assertEqual(result.warnings, ())
        self.assertTrue((result.storage_path / "SKILL.md").is_file())

    @unittest.skipIf(os.name == "nt", "directory symlinks need privileges on Windows")
    def test_original_link(self) -> None:
        src = self._local_skill("linked")
        result = self.repo.add_local(str(src), original="link")
        self.assertTrue(src.is_symlink())
        self.assertEqual(src.resolve(), result.storage_path.resolve())

    def test_refuses_path_inside_repository(self) -> None:
        inside = self.ctx.repo_dir / "local__x"
        inside.mkdir()
        (inside / "SKILL.md").write_text("# x\n", encoding="utf-8")
        with self.assertRaises(SkmError):
            self.repo.add_local(str(inside))


class TestDeleteAndUpdate(RepositoryTestCase):
    def test_delete_removes_storage_and_record(self) -> None:
        result = self.repo.add_local(str(self._local_skill("bye")))
        storage = self.repo.delete("local:bye")
        self.assertEqual(storage, result.storage_path)
        self.assertFalse(storage.exists())
        self.assertIsNone(self.ctx.registry.get("local:bye"))

        with self.assertRaises(SkillNotFoundError):
            self.repo.delete("local:bye")

    def test_check_and_update(self) -> None:
        added = self.repo.add_github("https://github.com/user/repo/tree/main/skills/pdf")
        self.repo.add_local(str(self._local_skill("mine")))
        self.git.remote = "def456"

        scan = self.repo.check_updates()
        self.assertEqual([c.skill.id for c in scan.candidates], [added.skill.id])
        self.assertEqual(scan.skipped, ("local:mine",))

        result = self.repo.update(scan.candidates)
        self.assertEqual(result.updated, (added.skill.id,))
        self.assertEqual(result.failures, ())
        self.assertEqual(self.repo.get(added.skill.id).commit_id, "def456")
        self.assertIn((["pull"], added.storage_path), self.git.calls)

    def test_update_failure_is_reported_per_skill(self) -> None:
        a = self.repo.add_github("https://github.com/user/a/tree/main/skills/pdf")
        b = self.repo.add_github("https://github.com/user/b/tree/main/skills/pdf")
        self.git.remote = "def456"
        self.git.fail_pull_in.add(a.storage_path)

        result = self.repo.update(self.repo.check_updates().candidates)
        self.assertEqual(result.updated, (b.skill.id,))
        self.assertEqual([f.skill_id for f in result.failures], [a.skill.id])
        self.assertEqual(self.repo.get(a.skill.id).commit_id, "abc123")

    def test_check_unknown_skill(self) -> None:
        with self.assertRaises(SkillNotFoundError):
            self.repo.check_updates(["github:user/none"])


if __name__ == "__main__":
    unittest.main()
