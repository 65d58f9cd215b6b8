"""Scope that keeps variable state out of place for one execution.

Values for the variables touched inside the scope are passed in through
``state_mapping``; every write is captured instead of applied::

    state = [(v, np.ones(v.shape, dtype=v.dtype)) for v in weights]
    with StatelessScope(state) as scope:
        outputs = forward(inputs)
        new_values = {v: scope.get_current_value(v) for v in weights}

No variable storage is modified for the duration of the scope. Updates that
are not copied out by the caller are discarded with the scope.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from .exceptions import NestedScopeError, ScopeError, ShapeMismatchError
from .scope import ScopeStack, ScopeToken, StatelessFrame, _Scope

if TYPE_CHECKING:
    from .variables import Variable

logger = logging.getLogger(__name__)

StateMapping = Union[Mapping["Variable", Any], Iterable[Tuple["Variable", Any]]]


class StatelessScope(_Scope):
    def __init__(
        self,
        state_mapping: Optional[StateMapping] = None,
        collect_losses: bool = False,
        *,
        stack: Optional[ScopeStack] = None,
    ):
        from .variables import Variable

        super().__init__(stack)
        self.collect_losses = collect_losses
        self.losses: List[Any] = []
        self._variables: Dict[int, "Variable"] = {}
        self.value_overrides: Dict[int, Any] = {}
        self.collected_updates: Dict[int, Any] = {}
        self._initialized_pending: Dict[int, Any] = {}
        self._used = False

        pairs = state_mapping.items() if isinstance(state_mapping, Mapping) else (state_mapping or ())
        for variable, value in pairs:
            if not isinstance(variable, Variable):
                raise TypeError(
                    f"All keys in argument `state_mapping` must be Variable instances. "
                    f"Received instead: {variable!r}"
                )
            value = variable.backend.convert_to_tensor(value, dtype=variable.dtype)
            received = variable.backend.shape(value)
            if received != variable.shape:
                raise ShapeMismatchError(
                    "Invalid value in argument `state_mapping`: the shape of the value must "
                    "match the shape of the variable.",
                    expected=variable.shape,
                    received=received,
                    path=variable.path,
                )
            self._variables[id(variable)] = variable
            self.value_overrides[id(variable)] = value

    def _frame(self) -> StatelessFrame:
        return StatelessFrame(self)

    def _enter_frame(self, stack: ScopeStack) -> ScopeToken:
        if self._used:
            raise ScopeError(
                "A StatelessScope can only be entered once; create a new scope for each run"
            )
        token = stack.enter(self._frame())
        self._used = True
        logger.debug("stateless scope entered with %d override(s)", len(self.value_overrides))
        return token

    def __exit__(self, exc_type, exc, tb) -> None:
        super().__exit__(exc_type, exc, tb)
        logger.debug(
            "stateless scope exited with %d collected update(s)", len(self.collected_updates)
        )

    @property
    def active(self) -> bool:
        return self._token is not None

    def get_current_value(self, variable: "Variable") -> Optional[Any]:
        """Most recent update for ``variable``, else its override, else ``None``."""
        key = id(variable)
        if key in self.collected_updates:
            return self.collected_updates[key]
        return self.value_overrides.get(key)

    def add_update(self, variable: "Variable", value: Any) -> None:
        self._variables[id(variable)] = variable
        self.collected_updates[id(variable)] = value
        logger.debug("captured update for %s", variable.path)

    def add_loss(self, loss: Any) -> None:
        if not self.collect_losses:
            raise RuntimeError("add_loss() requires a StatelessScope created with collect_losses=True")
        self.losses.append(loss)

    def register_uninitialized_variable(self, variable: "Variable") -> None:
        self._variables[id(variable)] = variable
        pending = self.stack.uninitialized_variables
        if all(existing is not variable for existing in pending):
            pending.append(variable)

    def pending_value(self, variable: "Variable") -> Optional[Any]:
        return self._initialized_pending.get(id(variable))

    def resolve_pending(self, variable: "Variable", value: Any) -> None:
        self._variables[id(variable)] = variable
        self._initialized_pending[id(variable)] = value

    @property
    def initialized_pending(self) -> Set["Variable"]:
        return {self._variables[key] for key in self._initialized_pending}

    def updates(self) -> Dict["Variable", Any]:
        """Copy of the collected updates keyed by variable."""
        return {self._variables[key]: value for key, value in self.collected_updates.items()}


def initialize_all_variables(stack: Optional[ScopeStack] = None) -> int:
    """Materialize every variable left pending by stateless scopes.

    Returns the number of variables initialized.
    """
    from .scope import get_scope_stack

    stack = stack if stack is not None else get_scope_stack()
    if stack.current_stateless_scope() is not None:
        raise NestedScopeError("Cannot initialize pending variables inside a stateless scope")
    pending = stack.uninitialized_variables
    count = 0
    # a variable leaves the list only once it is materialized
    while pending:
        variable = pending[0]
        if not variable.initialized:
            variable.initialize()
            count += 1
        pending.pop(0)
    logger.debug("initialized %d pending variable(s)", count)
    return count
