import logging
from collections.abc import Generator

import pytest

from txpool.core import log


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Scripts call configure_logging(); undo it so other tests see a clean root logger."""
    root = logging.getLogger()
    level = root.level
    yield
    if log._handler is not None:
        root.removeHandler(log._handler)
        log._handler = None
    root.setLevel(level)
