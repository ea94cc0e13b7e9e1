import json
import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from skm.config import (
    HOME_ENV_VAR,
    AIToolConfig,
    Config,
    config_path,
    ensure_home,
    home_path,
    load_config,
    save_config,
)
from skm.errors import ConfigError


class TestHomePath(unittest.TestCase):
    def test_override_wins_over_env(self) -> None:
        with patch.dict(os.environ, {HOME_ENV_VAR: "/from/env"}):
            self.assertEqual(home_path("/explicit"), Path("/explicit"))

    def test_env_var(self) -> None:
        with patch.dict(os.environ, {HOME_ENV_VAR: "/from/env"}):
            self.assertEqual(home_path(), Path("/from/env"))

    def test_platform_default(self) -> None:
        env = {k: v for k, v in os.environ.items() if k != HOME_ENV_VAR}
        with (
            patch.dict(os.environ, env, clear=True),
            patch("skm.config.user_data_path", return_value=Path("/data/skills-management")) as mock_path,
        ):
            self.assertEqual(home_path(), Path("/data/skills-management"))
        mock_path.assert_called_once_with("skills-management", appauthor=False)


class TestConfigFile(unittest.TestCase):
    def test_ensure_home_creates_repo_dir_and_default_config(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            home = Path(td) / "skm"
            ensure_home(home)
            self.assertTrue((home / "repo").is_dir())
            self.assertEqual(json.loads(config_path(home).read_text(encoding="utf-8")), {"system": sys.platform})

            config_path(home).write_text(json.dumps({"system": "linux", "custom": 1}), encoding="utf-8")
            ensure_home(home)
            self.assertEqual(json.loads(config_path(home).read_text(encoding="utf-8"))["custom"], 1)

    def test_missing_config_gives_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            self.assertEqual(load_config(Path(td)), Config())

    def test_load_and_save_preserve_unknown_keys(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            home = Path(td)
            config_path(home).write_text(
                json.dumps(
                    {
                        "system": "darwin",
                        "gitTimeoutS": 60,
                        "aiTools": [{"type": "claude", "skillDirs": [".claude/skills"]}],
                        "theme": "dark",
                    }
                ),
                encoding="utf-8",
            )
            cfg = load_config(home)
            self.assertEqual(cfg.system, "darwin")
            self.assertEqual(cfg.git_timeout_s, 60.0)
            self.assertEqual(cfg.ai_tools, (AIToolConfig(type="claude", skill_dirs=(".claude/skills",)),))
            self.assertEqual(cfg.extra, {"theme": "dark"})

            save_config(cfg, home)
            saved = json.loads(config_path(home).read_text(encoding="utf-8"))
            self.assertEqual(saved["theme"], "dark")
            self.assertEqual(saved["gitTimeoutS"], 60.0)
            self.assertNotIn("httpTimeoutS", saved)

    def test_invalid_values_raise(self) -> None:
        bad_payloads = [
            "{broken",
            json.dumps({"aiTools": "claude"}),
            json.dumps({"aiTools": [{"type": "claude"}]}),
            json.dumps({"gitTimeoutS": -1}),
            json.dumps({"httpTimeoutS": True}),
        ]
        for payload in bad_payloads:
            with tempfile.TemporaryDirectory() as td:
                config_path(Path(td)).write_text(payload, encoding="utf-8")
                with self.assertRaises(ConfigError, msg=payload):
                    load_config(Path(td))


if __name__ == "__main__":
    unittest.main()
