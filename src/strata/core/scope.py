"""Per-thread stack of nested scopes.

Four kinds of frame live on a :class:`ScopeStack`:

* naming frames, whose names compose variable paths (``"block/dense/kernel"``);
* at most one stateless frame, through which variables redirect reads/writes;
* device frames, at most one of which is live;
* autocast frames, the innermost of which sets the autocast dtype.

Every thread has its own stack (see :func:`get_scope_stack`). Scope objects
and variables also accept an explicit ``stack=`` handle, so a computation can
carry its stack instead of relying on the thread default.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from .exceptions import InvalidNameError, NestedScopeError, ScopeError

if TYPE_CHECKING:
    from .stateless import StatelessScope
    from .variables import Variable

logger = logging.getLogger(__name__)


@dataclass
class NameFrame:
    name: str
    caller: Optional[int] = None  # id() of the object that opened the scope
    override_parent: Optional[str] = None
    path: str = field(default="", init=False)


@dataclass
class StatelessFrame:
    scope: "StatelessScope"


@dataclass
class DeviceFrame:
    device: str


@dataclass
class AutocastFrame:
    dtype: Optional[str]


Frame = Union[NameFrame, StatelessFrame, DeviceFrame, AutocastFrame]


@dataclass(frozen=True)
class ScopeToken:
    frame: Frame
    depth: int
    pushed: bool = True


class ScopeStack:
    def __init__(self) -> None:
        self.frames: List[Frame] = []
        self.uid_counters: Dict[str, int] = {}
        self.uninitialized_variables: List["Variable"] = []

    def __len__(self) -> int:
        return len(self.frames)

    def enter(self, frame: Frame, *, deduplicate: bool = False) -> ScopeToken:
        if isinstance(frame, NameFrame):
            top = self.frames[-1] if self.frames else None
            if (
                deduplicate
                and frame.caller is not None
                and isinstance(top, NameFrame)
                and top.caller == frame.caller
                and top.name == frame.name
            ):
                return ScopeToken(top, len(self.frames), pushed=False)
            if frame.override_parent is not None:
                parent = frame.override_parent
            else:
                parent = self.current_path()
            frame.path = f"{parent}/{frame.name}" if parent else frame.name
        elif isinstance(frame, StatelessFrame):
            if self.current_stateless_scope() is not None:
                raise NestedScopeError(
                    "A stateless scope is already active; stateless scopes cannot be nested"
                )
        elif isinstance(frame, DeviceFrame):
            active = self.current_device()
            if active is not None:
                raise NestedScopeError(
                    f"Device scope '{active}' is already active; device scopes cannot be nested"
                )
        self.frames.append(frame)
        logger.debug("enter %s (depth=%d)", frame, len(self.frames))
        return ScopeToken(frame, len(self.frames))

    def exit(self, token: ScopeToken) -> None:
        if not token.pushed:
            return
        if not self.frames or self.frames[-1] is not token.frame:
            raise ScopeError(
                f"Scopes must be exited in reverse order of entry; "
                f"{token.frame} is not the innermost scope"
            )
        self.frames.pop()
        logger.debug("exit %s (depth=%d)", token.frame, len(self.frames))

    def current_path(self) -> str:
        for frame in reversed(self.frames):
            if isinstance(frame, NameFrame):
                return frame.path
        return ""

    def current_stateless_scope(self) -> Optional["StatelessScope"]:
        for frame in reversed(self.frames):
            if isinstance(frame, StatelessFrame):
                return frame.scope
        return None

    def current_device(self) -> Optional[str]:
        for frame in reversed(self.frames):
            if isinstance(frame, DeviceFrame):
                return frame.device
        return None

    def current_autocast_frame(self) -> Optional[AutocastFrame]:
        for frame in reversed(self.frames):
            if isinstance(frame, AutocastFrame):
                return frame
        return None

    def current_autocast_dtype(self) -> Optional[str]:
        frame = self.current_autocast_frame()
        return frame.dtype if frame is not None else None

    def uniquify(self, name: str) -> str:
        count = self.uid_counters.get(name, 0)
        self.uid_counters[name] = count + 1
        return name if count == 0 else f"{name}_{count}"

    def reset(self) -> None:
        if self.frames:
            raise ScopeError(f"Cannot reset a scope stack with {len(self.frames)} live frame(s)")
        self.uid_counters.clear()
        self.uninitialized_variables.clear()


_LOCAL = threading.local()


def get_scope_stack() -> ScopeStack:
    """Return the calling thread's scope stack, creating it on first use."""
    stack = getattr(_LOCAL, "stack", None)
    if stack is None:
        stack = ScopeStack()
        _LOCAL.stack = stack
    return stack


def reset_scope_stack() -> None:
    get_scope_stack().reset()


def _resolve(stack: Optional[ScopeStack]) -> ScopeStack:
    return stack if stack is not None else get_scope_stack()


def current_path(stack: Optional[ScopeStack] = None) -> str:
    return _resolve(stack).current_path()


def current_stateless_scope(stack: Optional[ScopeStack] = None) -> Optional["StatelessScope"]:
    return _resolve(stack).current_stateless_scope()


def in_stateless_scope(stack: Optional[ScopeStack] = None) -> bool:
    return current_stateless_scope(stack) is not None


def current_device(stack: Optional[ScopeStack] = None) -> Optional[str]:
    return _resolve(stack).current_device()


def current_autocast_dtype(stack: Optional[ScopeStack] = None) -> Optional[str]:
    return _resolve(stack).current_autocast_dtype()


def _to_snake_case(name: str) -> str:
    name = re.sub(r"\W+", "", name)
    name = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
    name = re.sub(r"([a-z])([A-Z])", r"\1_\2", name)
    return name.lower()


def auto_name(prefix: str, stack: Optional[ScopeStack] = None) -> str:
    return _resolve(stack).uniquify(_to_snake_case(prefix))


class _Scope:
    """Context manager pushing one frame; the frame is popped on every exit path."""

    def __init__(self, stack: Optional[ScopeStack] = None):
        self._stack = stack
        self._active_stack: Optional[ScopeStack] = None
        self._token: Optional[ScopeToken] = None

    @property
    def stack(self) -> ScopeStack:
        if self._active_stack is not None:
            return self._active_stack
        return _resolve(self._stack)

    def _frame(self) -> Frame:
        raise NotImplementedError

    def _enter_frame(self, stack: ScopeStack) -> ScopeToken:
        return stack.enter(self._frame())

    def __enter__(self):
        if self._token is not None:
            raise ScopeError(f"{type(self).__name__} is already active")
        stack = self.stack
        self._token = self._enter_frame(stack)
        self._active_stack = stack
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        token, self._token = self._token, None
        stack, self._active_stack = self._active_stack, None
        if token is not None and stack is not None:
            stack.exit(token)


class name_scope(_Scope):
    """Open a sub-namespace for variable paths.

    Parameters
    ----------
    name:
        Name of the scope; composes into paths as ``parent/name``.
    caller:
        Optional object opening the scope (e.g. a layer instance).
    deduplicate:
        When ``caller`` is given and the innermost frame was opened by the same
        caller with the same name, reuse it instead of nesting ``name/name``.
    override_parent:
        Absolute parent path replacing whatever prefix is currently open.
    """

    def __init__(
        self,
        name: str,
        caller: Any = None,
        deduplicate: bool = True,
        override_parent: Optional[str] = None,
        *,
        stack: Optional[ScopeStack] = None,
    ):
        if not isinstance(name, str) or not name:
            raise InvalidNameError(
                f"Argument `name` must be a non-empty string. Received: name={name!r}"
            )
        super().__init__(stack)
        self.name = name
        self.caller = caller
        self.deduplicate = deduplicate
        self.override_parent = override_parent

    def _frame(self) -> NameFrame:
        caller_id = id(self.caller) if self.caller is not None else None
        return NameFrame(self.name, caller=caller_id, override_parent=self.override_parent)

    def _enter_frame(self, stack: ScopeStack) -> ScopeToken:
        return stack.enter(self._frame(), deduplicate=self.deduplicate)

    @property
    def path(self) -> str:
        if self._token is None:
            raise ScopeError("name_scope.path is only available while the scope is active")
        return self._token.frame.path  # type: ignore[union-attr]


def normalize_device(spec: str) -> str:
    device = (spec or "").strip()
    if not device:
        return "cpu"
    lowered = device.lower()
    if lowered == "gpu":
        return "cuda"
    if lowered.startswith("gpu:"):
        return "cuda:" + lowered.split(":", 1)[1]
    if lowered.startswith("mps"):
        return "mps"
    return lowered


class DeviceScope(_Scope):
    def __init__(self, device: str, *, stack: Optional[ScopeStack] = None):
        super().__init__(stack)
        self.device = normalize_device(device)

    def _frame(self) -> DeviceFrame:
        return DeviceFrame(self.device)


def device_scope(device: str, *, stack: Optional[ScopeStack] = None) -> DeviceScope:
    return DeviceScope(device, stack=stack)


class AutocastScope(_Scope):
    """Present autocasting float variables in ``dtype`` on read.

    ``dtype=None`` disables autocasting inside the scope, including the
    configured ``compute_dtype``.
    """

    def __init__(self, dtype: Optional[str], *, stack: Optional[ScopeStack] = None):
        from .dtypes import is_float_dtype, standardize_dtype

        super().__init__(stack)
        if dtype is not None:
            dtype = standardize_dtype(dtype)
            if not is_float_dtype(dtype):
                raise ValueError(f"AutocastScope requires a float dtype, received {dtype}")
        self.dtype = dtype

    def _frame(self) -> AutocastFrame:
        return AutocastFrame(self.dtype)
