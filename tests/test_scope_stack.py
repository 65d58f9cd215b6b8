import threading

import pytest

from strata import (
    InvalidNameError,
    NestedScopeError,
    ScopeError,
    ScopeStack,
    StatelessScope,
    current_path,
    device_scope,
    get_scope_stack,
    name_scope,
)
from strata.core.scope import NameFrame, auto_name, current_device


def test_nested_name_scopes_compose_paths():
    assert current_path() == ""
    with name_scope("a"):
        assert current_path() == "a"
        with name_scope("b"):
            assert current_path() == "a/b"
        assert current_path() == "a"
    assert current_path() == ""


def test_deduplicated_scope_reuses_frame_for_same_caller():
    caller = object()
    with name_scope("a", caller=caller):
        with name_scope("a", caller=caller, deduplicate=True):
            assert current_path() == "a"
            assert len(get_scope_stack()) == 1
        assert current_path() == "a"
    assert current_path() == ""


def test_deduplication_requires_matching_caller_and_flag():
    caller = object()
    with name_scope("a", caller=caller):
        with name_scope("a", caller=object()):
            assert current_path() == "a/a"
        with name_scope("a", caller=caller, deduplicate=False):
            assert current_path() == "a/a"
        with name_scope("a"):
            assert current_path() == "a/a"


def test_override_parent_replaces_inherited_prefix():
    with name_scope("outer"):
        with name_scope("inner", override_parent="model/block"):
            assert current_path() == "model/block/inner"
            with name_scope("leaf"):
                assert current_path() == "model/block/inner/leaf"
        with name_scope("root", override_parent=""):
            assert current_path() == "root"
        assert current_path() == "outer"


def test_name_scope_path_property():
    scope = name_scope("x")
    with pytest.raises(ScopeError):
        scope.path
    with scope:
        assert scope.path == "x"


def test_name_scope_rejects_empty_name():
    with pytest.raises(InvalidNameError):
        name_scope("")


def test_frames_are_released_when_body_raises():
    with pytest.raises(RuntimeError, match="boom"):
        with name_scope("a"):
            with StatelessScope():
                with name_scope("b"):
                    raise RuntimeError("boom")
    stack = get_scope_stack()
    assert len(stack) == 0
    assert stack.current_stateless_scope() is None
    with StatelessScope():
        pass


def test_second_stateless_scope_is_rejected():
    with StatelessScope() as outer:
        with pytest.raises(NestedScopeError):
            with StatelessScope():
                pass
        assert get_scope_stack().current_stateless_scope() is outer
    assert get_scope_stack().current_stateless_scope() is None


def test_explicit_enter_exit_tokens_are_lifo():
    stack = ScopeStack()
    first = stack.enter(NameFrame("a"))
    second = stack.enter(NameFrame("b"))
    assert stack.current_path() == "a/b"
    with pytest.raises(ScopeError, match="reverse order"):
        stack.exit(first)
    stack.exit(second)
    stack.exit(first)
    assert stack.current_path() == ""


def test_explicit_stack_handle_is_independent_of_thread_stack():
    stack = ScopeStack()
    with name_scope("private", stack=stack):
        assert stack.current_path() == "private"
        assert current_path() == ""


def test_device_scope_normalizes_and_refuses_nesting():
    assert current_device() is None
    with device_scope("GPU:1"):
        assert current_device() == "cuda:1"
        with pytest.raises(NestedScopeError):
            with device_scope("cpu"):
                pass
        assert current_device() == "cuda:1"
    assert current_device() is None
    with device_scope("gpu"):
        assert current_device() == "cuda"


def test_auto_name_uniquifies_per_stack():
    assert auto_name("DenseLayer") == "dense_layer"
    assert auto_name("DenseLayer") == "dense_layer_1"
    assert auto_name("DenseLayer", stack=ScopeStack()) == "dense_layer"


def test_reset_refuses_live_frames():
    stack = ScopeStack()
    stack.enter(NameFrame("a"))
    with pytest.raises(ScopeError):
        stack.reset()


def test_each_thread_has_its_own_stack():
    seen = {}
    ready = threading.Event()
    release = threading.Event()

    def worker():
        with name_scope("worker"):
            seen["worker"] = current_path()
            ready.set()
            release.wait(timeout=5)

    with name_scope("main"):
        thread = threading.Thread(target=worker)
        thread.start()
        assert ready.wait(timeout=5)
        seen["main"] = current_path()
        release.set()
        thread.join(timeout=5)

    assert seen == {"worker": "worker", "main": "main"}


def test_autocast_frames_nest_innermost_wins():
    from strata import AutocastScope
    from strata.core.scope import current_autocast_dtype

    assert current_autocast_dtype() is None
    with AutocastScope("float16"):
        with AutocastScope("float64"):
            assert current_autocast_dtype() == "float64"
        assert current_autocast_dtype() == "float16"
