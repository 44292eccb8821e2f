"""Ambient, dynamically scoped capabilities.

A `Capability` is a named slot holding a callable. Channel adapters install
implementations for the duration of one handler invocation with
`Capability.inject`, and code anywhere below that invocation reads the active
implementation through `Capability.access`. Bindings live in `ContextVar`s, so
two asyncio tasks running concurrently never see each other's bindings.

Several single-slot injectors combine into one override set with `compose`.
When the same slot is bound more than once in a composition, the leftmost
binding is the visible one:

    compose(reply.inject(a), reply.inject(b))(handler)  # handler sees `a`

Nesting separately built injectors keeps ordinary dynamic scoping: the
innermost scope wins.
"""

from __future__ import annotations

import functools
import inspect
from contextvars import ContextVar, Token
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar, Union

F = TypeVar("F", bound=Callable[..., Any])
H = TypeVar("H", bound=Callable[..., Any])

Binding = tuple["Capability[Any]", Callable[..., Any]]


class Capability(Generic[F]):
    """One overridable ambient function slot."""

    def __init__(self, name: str, default: F) -> None:
        self.name = name
        self.default = default
        self._var: ContextVar[Callable[..., Any]] = ContextVar(
            f"abstract_bot_api.capability.{name}", default=default
        )

    def __repr__(self) -> str:
        return f"Capability({self.name!r})"

    def current(self) -> F:
        """Return the implementation visible in the current context."""
        return self._var.get()  # type: ignore[return-value]

    def access(self, *args: Any, **kwargs: Any) -> Any:
        """Call the implementation visible in the current context."""
        return self._var.get()(*args, **kwargs)

    __call__ = access

    def inject(self, implementation: F) -> "Injector":
        return Injector(((self, implementation),))

    def provide(self, value: Any) -> "Injector":
        """Bind a constant; reading the slot returns `value`."""
        return self.inject(_constant(value))  # type: ignore[arg-type]


def declare(name: str, default: F) -> Capability[F]:
    return Capability(name, default)


def _constant(value: Any) -> Callable[..., Any]:
    def read(*_args: Any, **_kwargs: Any) -> Any:
        return value

    return read


class Injector:
    """An ordered override set, applied atomically around one call.

    `injector(handler)` returns a callable with the handler's signature. While
    it runs (including every awaited continuation) the bound implementations
    are visible; the previous bindings are restored when it returns, raises or
    is cancelled.
    """

    __slots__ = ("_bindings",)

    def __init__(self, bindings: Iterable[Binding] = ()) -> None:
        seen: set[int] = set()
        kept: list[Binding] = []
        for capability, implementation in bindings:
            if id(capability) in seen:
                continue
            seen.add(id(capability))
            kept.append((capability, implementation))
        self._bindings: tuple[Binding, ...] = tuple(kept)

    @property
    def bindings(self) -> tuple[Binding, ...]:
        return self._bindings

    @property
    def capabilities(self) -> tuple[Capability[Any], ...]:
        return tuple(capability for capability, _ in self._bindings)

    def __repr__(self) -> str:
        names = ", ".join(capability.name for capability in self.capabilities)
        return f"Injector({names})"

    def _install(self) -> list[tuple[Capability[Any], Token[Callable[..., Any]]]]:
        return [
            (capability, capability._var.set(implementation))
            for capability, implementation in self._bindings
        ]

    @staticmethod
    def _restore(
        tokens: list[tuple[Capability[Any], Token[Callable[..., Any]]]],
    ) -> None:
        for capability, token in reversed(tokens):
            capability._var.reset(token)

    async def _await_in_scope(self, awaitable: Awaitable[Any]) -> Any:
        tokens = self._install()
        try:
            return await awaitable
        finally:
            self._restore(tokens)

    def __call__(self, handler: H) -> H:
        if inspect.iscoroutinefunction(handler):

            @functools.wraps(handler)
            async def run_async(*args: Any, **kwargs: Any) -> Any:
                tokens = self._install()
                try:
                    return await handler(*args, **kwargs)
                finally:
                    self._restore(tokens)

            return run_async  # type: ignore[return-value]

        @functools.wraps(handler)
        def run(*args: Any, **kwargs: Any) -> Any:
            tokens = self._install()
            try:
                result = handler(*args, **kwargs)
            finally:
                self._restore(tokens)
            if inspect.isawaitable(result):
                # Plain callables returning a coroutine run their body only
                # when awaited, so the bindings are re-installed around it.
                return self._await_in_scope(result)
            return result

        return run  # type: ignore[return-value]


def compose(*injectors: Union[Injector, Iterable[Injector]]) -> Injector:
    """Merge injectors into one override set; leftmost binding per slot wins.

    `compose(w1, w2, w3)(h)` behaves like `w1(w2(w3(h)))` for disjoint slots
    and calls `h` exactly once.
    """
    flat: list[Injector] = []
    for item in injectors:
        if isinstance(item, Injector):
            flat.append(item)
        else:
            flat.extend(item)
    bindings: list[Binding] = []
    for injector in flat:
        bindings.extend(injector.bindings)
    return Injector(bindings)
