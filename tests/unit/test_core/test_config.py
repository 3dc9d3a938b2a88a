"""
Unit tests for the configuration manager.
"""

import json
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

from notedash.core.config import Config


class TestConfigDefaults:

    def test_creates_files_with_defaults(self, tmp_path):
        config = Config(tmp_path)
        assert (tmp_path / "settings.json").exists()
        assert config.get("log_level") == "INFO"
        assert config.get("bulk_confirm_threshold") == 20
        assert config.get("done_counts_last_run", "preferences") is None

    def test_missing_key_returns_default(self, tmp_path):
        config = Config(tmp_path)
        assert config.get("nope", default=3) == 3
        assert config.get("log_level", section="no-such-section", default="x") == "x"

    def test_new_default_keys_fill_old_files(self, tmp_path):
        """Files written before a key existed still get its default."""
        (tmp_path / "settings.json").write_text(json.dumps({"log_level": "DEBUG"}))
        config = Config(tmp_path)
        assert config.get("log_level") == "DEBUG"
        assert config.get("delayed_refresh_seconds") == 5.0

    def test_corrupt_file_falls_back(self, tmp_path):
        (tmp_path / "settings.json").write_text("{not json")
        config = Config(tmp_path)
        assert config.get("log_level") == "INFO"


class TestConfigWrites:

    def test_set_persists(self, tmp_path):
        Config(tmp_path).set("log_level", "WARNING")
        assert Config(tmp_path).get("log_level") == "WARNING"

    def test_set_many_single_section(self, tmp_path):
        config = Config(tmp_path)
        config.set_many({"perspectives": [], "settings": {"a": 1}}, section="dashboard")
        data = json.loads((tmp_path / "dashboard.json").read_text())
        assert data == {"perspectives": [], "settings": {"a": 1}}

    def test_absolute_notes_directory(self, tmp_path):
        config = Config(tmp_path)
        config.set("notes_directory", str(tmp_path / "notes"))
        assert config.get_notes_directory() == tmp_path / "notes"
