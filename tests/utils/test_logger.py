"""
日志工具测试
"""

import logging
import logging.handlers
import tempfile
from pathlib import Path

from devmemory.utils.logger import get_logger, init_logging_from_config, setup_logging
from devmemory.core.test_utils import setup_test_config


class TestGetLogger:

    def test_namespaced_and_cached(self):
        a = get_logger("kg_test")
        b = get_logger("kg_test")
        assert a is b
        assert a.name == "devmemory.kg_test"

    def test_console_handler_by_default(self):
        logger = get_logger("kg_console")
        assert any(isinstance(h, logging.StreamHandler) for h in logger.handlers)


class TestSetupLogging:

    def teardown_method(self):
        setup_logging()

    def test_file_output_creates_files(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            log_dir = Path(tmpdir) / "logs"
            logger = get_logger("kg_file")
            setup_logging(log_dir=log_dir, level="DEBUG", file_output=True, console_output=False)
            logger.debug("hello")
            for h in logger.handlers:
                h.flush()
            assert (log_dir / "kg_file.log").exists()
            assert (log_dir / "devmemory.log").exists()
            assert logger.level == logging.DEBUG
            setup_logging()

    def test_file_output_requires_dir(self):
        logger = get_logger("kg_nofile")
        setup_logging(log_dir=None, file_output=True)
        assert not any(
            isinstance(h, logging.handlers.RotatingFileHandler) for h in logger.handlers
        )

    def test_init_from_config(self):
        setup_test_config({"log": {"level": "WARNING", "file_output": True}})
        with tempfile.TemporaryDirectory() as tmpdir:
            init_logging_from_config(Path(tmpdir))
            logger = get_logger("kg_cfg")
            assert logger.level == logging.WARNING
            assert (Path(tmpdir) / "logs").is_dir()
            setup_logging()
