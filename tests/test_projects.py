import tempfile
import unittest
from pathlib import Path

from skm.config import AIToolConfig
from skm.projects import UNKNOWN_PROJECT, ProjectDetector


class TestProjectDetector(unittest.TestCase):
    def test_no_tools_detected(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            detector = ProjectDetector(Path(td))
            self.assertEqual(detector.detect_all(), [])
            project = detector.detect()
            self.assertEqual(project.type, UNKNOWN_PROJECT)
            self.assertIsNone(project.skill_dir)

    def test_detects_by_parent_of_skill_dir(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td).resolve()
            (root / ".claude").mkdir()
            (root / ".github").mkdir()

            projects = ProjectDetector(root).detect_all()
            self.assertEqual([p.type for p in projects], ["github", "claude"])
            by_type = {p.type: p for p in projects}
            self.assertEqual(by_type["claude"].skill_dir, root / ".claude" / "skills")
            self.assertEqual(by_type["github"].skill_dir, root / ".github" / "skills")
            self.assertEqual(ProjectDetector(root).detect().type, "github")

    def test_first_matching_dir_wins_per_tool(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td).resolve()
            (root / ".agent").mkdir()
            (root / ".gemini" / "antigravity" / "global_skills").mkdir(parents=True)

            project = ProjectDetector(root).find("antigravity")
            self.assertEqual(project.skill_dir, root / ".gemini" / "antigravity" / "global_skills" / "skills")
            self.assertIsNone(ProjectDetector(root).find("cursor"))

    def test_custom_tool_table(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td).resolve()
            (root / ".claude").mkdir()
            (root / ".mytool").mkdir()
            tools = (AIToolConfig(type="mytool", skill_dirs=(".mytool/skills",)),)

            projects = ProjectDetector(root, tools=tools).detect_all()
            self.assertEqual([(p.type, p.skill_dir) for p in projects], [("mytool", root / ".mytool" / "skills")])


if __name__ == "__main__":
    unittest.main()
