"""
Logging Setup Tests
"""

import logging

import structlog

from shared.utils.logger import load_logging_config, setup_logging, DEFAULT_LOGGING_CONFIG


class TestLogging:
    def test_missing_config_file_falls_back_to_default(self, tmp_path):
        config = load_logging_config(str(tmp_path / "missing.yaml"))
        assert config == DEFAULT_LOGGING_CONFIG
        assert config is not DEFAULT_LOGGING_CONFIG

    def test_yaml_config_file(self, tmp_path):
        path = tmp_path / "logging.yaml"
        path.write_text(
            "version: 1\n"
            "handlers:\n"
            "  console:\n"
            "    class: logging.StreamHandler\n"
            "root:\n"
            "  level: WARNING\n"
            "  handlers: [console]\n"
        )
        config = load_logging_config(str(path))
        assert config['root']['level'] == "WARNING"

    def test_setup_logging_level_override(self):
        setup_logging(log_level="debug", log_format="json")
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("starter_portal").level == logging.DEBUG
        assert structlog.is_configured()
