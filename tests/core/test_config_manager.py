"""
配置管理器测试
"""

import tempfile
from pathlib import Path

from devmemory.core.config_manager import (
    ConfigManager,
    get_config_manager,
    init_config_manager,
    load_config_file,
    reset_config_manager,
)
from devmemory.core.defaults import DEFAULTS, get_default, get_defaults_dict
from devmemory.core.test_utils import setup_test_config


class TestDefaults:
    """默认配置测试"""

    def test_get_default_value(self):
        assert get_default("traversal", "max_depth") == 3
        assert get_default("storage", "db_name") == "knowledge_graph.db"

    def test_get_default_dict_subkey(self):
        assert get_default("extraction", "min_confidence.file") == 0.6
        assert get_default("relationship", "archetype_strength.belongs_to") == 0.9

    def test_get_default_fallback(self):
        assert get_default("nope", "x", "fb") == "fb"
        assert get_default("traversal", "nope", 7) == 7
        assert get_default("extraction", "min_confidence.unknown", 0.1) == 0.1

    def test_defaults_dict(self):
        d = get_defaults_dict()
        assert set(d) == {"extraction", "relationship", "traversal", "storage", "log"}
        assert d["extraction"]["max_confidence"] == DEFAULTS.extraction.max_confidence


class TestConfigManager:
    """ConfigManager 测试"""

    def test_builtin_default(self):
        mgr = ConfigManager()
        assert mgr.get("extraction.base_confidence") == 0.5
        assert mgr.max_depth == 3

    def test_user_override(self):
        mgr = ConfigManager({"traversal": {"max_depth": 5}})
        assert mgr.get("traversal.max_depth") == 5
        assert mgr.get("traversal.max_results") == 10

    def test_dict_defaults_are_merged(self):
        """用户只覆盖字典中的部分键"""
        mgr = ConfigManager({"extraction": {"min_confidence": {"file": 0.9}}})
        merged = mgr.get("extraction.min_confidence")
        assert merged["file"] == 0.9
        assert merged["default"] == 0.5
        assert merged["concept"] == 0.4

    def test_explicit_default_for_unknown_key(self):
        mgr = ConfigManager()
        assert mgr.get("custom.key", "x") == "x"

    def test_set_user_config_clears_cache(self):
        mgr = ConfigManager({"traversal": {"max_depth": 2}})
        assert mgr.get("traversal.max_depth") == 2
        mgr.set_user_config({"traversal": {"max_depth": 4}})
        assert mgr.get("traversal.max_depth") == 4

    def test_cache_until_invalidated(self):
        user = {"storage": {"search_limit": 5}}
        mgr = ConfigManager(user, cache_ttl=60)
        assert mgr.get("storage.search_limit") == 5
        user["storage"]["search_limit"] = 8
        assert mgr.get("storage.search_limit") == 5
        mgr.invalidate_cache("storage.search_limit")
        assert mgr.get("storage.search_limit") == 8


class TestConfigFile:
    """YAML 配置文件测试"""

    def test_load_yaml(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "devmemory.yaml"
            path.write_text(
                "traversal:\n  max_depth: 4\nextraction:\n  min_confidence:\n    person: 0.7\n",
                encoding="utf-8",
            )
            data = load_config_file(path)
            assert data["traversal"]["max_depth"] == 4

            mgr = init_config_manager(path)
            assert mgr.get("traversal.max_depth") == 4
            assert mgr.get("extraction.min_confidence")["person"] == 0.7
            assert mgr.get("extraction.min_confidence")["default"] == 0.5

    def test_missing_file_returns_empty(self):
        assert load_config_file("/nonexistent/devmemory.yaml") == {}

    def test_invalid_yaml_ignored(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "bad.yaml"
            path.write_text("traversal: [unclosed\n", encoding="utf-8")
            assert load_config_file(path) == {}

    def test_non_mapping_ignored(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "list.yaml"
            path.write_text("- a\n- b\n", encoding="utf-8")
            assert load_config_file(path) == {}


class TestGlobalManager:
    """全局配置管理器测试"""

    def test_reset_creates_fresh_manager(self):
        setup_test_config({"traversal": {"max_depth": 1}})
        assert get_config_manager().get("traversal.max_depth") == 1
        reset_config_manager()
        assert get_config_manager().get("traversal.max_depth") == 3

    def test_init_with_dict(self):
        mgr = init_config_manager({"storage": {"db_name": "x.db"}})
        assert get_config_manager() is mgr
        assert mgr.db_name == "x.db"


class TestExampleConfig:
    """仓库自带的示例配置"""

    def test_example_file_loads(self):
        path = Path(__file__).resolve().parents[2] / "devmemory.example.yaml"
        mgr = init_config_manager(path)
        assert mgr.get("traversal.max_depth") == 3
        assert mgr.get("extraction.min_confidence")["concept"] == 0.4
        assert "service" in mgr.get("extraction.custom_patterns")
        priors = mgr.get("relationship.type_priors")
        assert priors["project->technology"] == ["uses", 0.5, 0.4]
        assert priors["site->document"] == ["contains", 0.5, 0.4]
