"""Tests for log handler installation."""

from __future__ import annotations

import logging
import os

import pytest

from site_upgrade.logging_setup import setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_file_and_console_handlers(tmp_path, restore_root_logger):
    path = setup_logging(log_prefix="upgrade", log_dir=str(tmp_path))
    root = restore_root_logger

    assert os.path.dirname(path) == str(tmp_path)
    assert os.path.basename(path).startswith("upgrade_")
    levels = sorted(h.level for h in root.handlers)
    assert levels == [logging.DEBUG, logging.WARNING]

    logging.getLogger("site_upgrade.test").debug("written to file only")
    for handler in root.handlers:
        handler.flush()
    with open(path, encoding="utf-8") as f:
        assert "written to file only" in f.read()


def test_verbose_console(tmp_path, restore_root_logger):
    setup_logging(verbose=True, log_dir=str(tmp_path))
    assert all(h.level == logging.DEBUG for h in restore_root_logger.handlers)
