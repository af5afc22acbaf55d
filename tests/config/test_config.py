"""atomica Configuration & Logging Tests — CFG-001 through CFG-003."""

import json
import logging

import pytest

from atomica import pipeline
from atomica.config import AtomicaConfig, find_config, load_config
from atomica.log import LOGGER_NAME, configure_logging


@pytest.fixture
def package_logger():
    logger = logging.getLogger(LOGGER_NAME)
    level, handlers = logger.level, list(logger.handlers)
    yield logger
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    for handler in handlers:
        logger.addHandler(handler)


# ===========================================================================
# CFG-001: Loading
# ===========================================================================

class TestCFG001:
    """CFG-001: YAML and JSON config files."""

    def test_yaml(self, tmp_path):
        path = tmp_path / ".atomicarc.yml"
        path.write_text("backend: none\ntimeout_ms: 500\nsection_comments: false\n")
        config = load_config(str(path))
        assert config.backend == "none"
        assert config.timeout_ms == 500
        assert config.section_comments is False
        assert config.emit_ivl is False

    def test_json(self, tmp_path):
        path = tmp_path / ".atomicarc.json"
        path.write_text(json.dumps({"log_level": "debug", "emit_ivl": True}))
        config = load_config(str(path))
        assert config.log_level == "debug"
        assert config.emit_ivl is True
        assert config.backend == "z3"

    def test_unknown_keys_are_ignored(self, tmp_path):
        path = tmp_path / ".atomicarc.yml"
        path.write_text("colour: blue\nbackend: none\n")
        assert load_config(str(path)) == AtomicaConfig(backend="none")


# ===========================================================================
# CFG-002: Discovery and fallbacks
# ===========================================================================

class TestCFG002:
    """CFG-002: Finding config files and falling back to defaults."""

    def test_walks_up(self, tmp_path):
        (tmp_path / ".atomicarc.yaml").write_text("timeout_ms: 42\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config(str(nested)) == str(tmp_path / ".atomicarc.yaml")
        assert load_config(start_dir=str(nested)).timeout_ms == 42

    def test_priority(self, tmp_path):
        (tmp_path / ".atomicarc.json").write_text("{}")
        (tmp_path / ".atomicarc.yml").write_text("{}")
        assert find_config(str(tmp_path)) == str(tmp_path / ".atomicarc.yml")

    def test_missing_file(self, tmp_path):
        assert load_config(str(tmp_path / "absent.yml")) == AtomicaConfig()

    @pytest.mark.parametrize("name,content", [
        (".atomicarc.yml", "backend: [unclosed"),
        (".atomicarc.json", "{not json"),
        (".atomicarc.yml", "- just\n- a list\n"),
        (".atomicarc.yml", ""),
    ])
    def test_unusable_content(self, tmp_path, name, content):
        path = tmp_path / name
        path.write_text(content)
        assert load_config(str(path)) == AtomicaConfig()


# ===========================================================================
# CFG-003: Logging
# ===========================================================================

class TestCFG003:
    """CFG-003: configure_logging sets up the package logger."""

    def test_level_by_name(self, package_logger):
        logger = configure_logging("debug")
        assert logger is package_logger
        assert logger.level == logging.DEBUG

    def test_level_by_number(self, package_logger):
        assert configure_logging(logging.INFO).level == logging.INFO

    def test_single_handler(self, package_logger):
        configure_logging("info")
        configure_logging("warning")
        named = [h for h in package_logger.handlers if h.get_name() == LOGGER_NAME]
        assert len(named) == 1

    def test_unknown_level(self, package_logger):
        with pytest.raises(ValueError, match="Unknown log level"):
            configure_logging("chatty")

    def test_module_loggers_are_children(self):
        assert pipeline.logger.name.startswith(LOGGER_NAME + ".")
