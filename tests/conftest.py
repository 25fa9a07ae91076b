from __future__ import annotations

import logging

import pytest


@pytest.fixture(autouse=True)
def _restore_roar_logger():
    """Undo configure_logging() so records keep reaching caplog."""
    logger = logging.getLogger("roar")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate
