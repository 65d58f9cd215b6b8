import pytest

from strata.core import config
from strata.core.scope import get_scope_stack


@pytest.fixture(autouse=True)
def _fresh_state():
    """Restore process-wide defaults and the thread's scope stack around each test."""

    saved = config.get_config()
    stack = get_scope_stack()
    stack.frames.clear()
    stack.reset()
    yield
    config.set_config(saved)
    stack.frames.clear()
    stack.reset()
