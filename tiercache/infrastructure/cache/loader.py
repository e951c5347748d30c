"""
Producer Invocation

A producer is any callable (sync or async) that computes a value on a full
cache miss. Before it is called, its signature is checked against the
arguments the caller supplied; after it returns, the result is interpreted
by shape:

    None / ()             -> no value (negative cache)
    value / (value,)      -> one value
    (value, None)         -> one value
    (value, exc)          -> exc is raised
    anything longer       -> unsupported, nothing cached

A producer that raises propagates its exception unchanged.
"""

import asyncio
import inspect
import types
from collections.abc import Callable
from dataclasses import dataclass
from typing import Annotated, Any, Literal, TypeVar, Union, get_args, get_origin, get_type_hints

from tiercache.core.config.constants import ProducerOutcome, Stage
from tiercache.core.exceptions import ProducerSignatureError
from tiercache.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)

_POSITIONAL = (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)


@dataclass(frozen=True)
class ProducerCall:
    """A validated producer together with the arguments to call it with."""

    producer: Callable[..., Any]
    args: tuple[Any, ...]
    name: str


# =============================================================================
# Type checks
# =============================================================================


def producer_name(fn: Any) -> str:
    """``module.qualname`` of a callable, for error messages and logs."""
    qualname = getattr(fn, "__qualname__", None) or type(fn).__qualname__
    module = getattr(fn, "__module__", None)
    return f"{module}.{qualname}" if module else qualname


def type_name(annotation: Any) -> str:
    if annotation is None or annotation is type(None):
        return "None"
    if isinstance(annotation, type) and get_origin(annotation) is None:
        return annotation.__qualname__
    return repr(annotation).replace("typing.", "")


def matches(value: Any, annotation: Any) -> bool:
    """
    Runtime check of ``value`` against a type annotation.

    Unions, Optional, Literal, Annotated, TypeVar bounds and generic aliases
    (by origin) are understood. ``bool`` does not satisfy ``int``; ``int``
    satisfies ``float``. Annotations that cannot be checked at runtime
    (string forward references, TypedDict, non-runtime Protocols) accept
    any value.
    """
    if annotation is Any or annotation is object or annotation is inspect.Parameter.empty:
        return True
    if annotation is None or annotation is type(None):
        return value is None

    origin = get_origin(annotation)
    if origin is Annotated:
        return matches(value, get_args(annotation)[0])
    if origin is Union or origin is types.UnionType:
        return any(matches(value, arg) for arg in get_args(annotation))
    if origin is Literal:
        return any(value == arg and type(value) is type(arg) for arg in get_args(annotation))

    if isinstance(annotation, TypeVar):
        if annotation.__bound__ is not None:
            return matches(value, annotation.__bound__)
        if annotation.__constraints__:
            return any(matches(value, c) for c in annotation.__constraints__)
        return True

    supertype = getattr(annotation, "__supertype__", None)
    if supertype is not None:
        # NewType
        return matches(value, supertype)

    target = origin if origin is not None else annotation
    if not isinstance(target, type):
        return True

    if isinstance(value, bool) and target is int:
        return False
    if target is float and isinstance(value, int) and not isinstance(value, bool):
        return True

    try:
        return isinstance(value, target)
    except TypeError:
        return True


def _type_hints(fn: Any) -> dict[str, Any]:
    target = fn if inspect.isroutine(fn) or inspect.isclass(fn) else getattr(fn, "__call__", fn)
    try:
        return get_type_hints(target, include_extras=True)
    except (NameError, TypeError, AttributeError):
        return {}


def _is_tuple_model(model: Any) -> bool:
    target = get_origin(model) or model
    return isinstance(target, type) and issubclass(target, tuple)


def _is_async(fn: Any) -> bool:
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(getattr(fn, "__call__", None))


# =============================================================================
# Invoker
# =============================================================================


class ProducerInvoker:
    """
    Validates, calls and interprets producers.

    STAGE-2.5: Producer call

    Usage:
        invoker = ProducerInvoker()
        call = invoker.prepare(load_user, (42,))
        outcome, value = await invoker.invoke(call, User)
    """

    def prepare(self, producer: Callable[..., Any], args: tuple[Any, ...]) -> ProducerCall:
        """
        Check that ``producer`` can be called with ``args``.

        Raises:
            ProducerSignatureError: On arity or argument type mismatch
        """
        if not callable(producer):
            raise ProducerSignatureError(
                f"producer {producer!r} is not callable",
                details={"producer": repr(producer)},
            )

        name = producer_name(producer)
        args = tuple(args)

        try:
            signature = inspect.signature(producer)
        except (TypeError, ValueError):
            # Builtins and extension callables without introspectable signatures
            return ProducerCall(producer, args, name)

        params = list(signature.parameters.values())
        positional = [p for p in params if p.kind in _POSITIONAL]
        required = [p for p in positional if p.default is inspect.Parameter.empty]
        variadic = next((p for p in params if p.kind is inspect.Parameter.VAR_POSITIONAL), None)
        required_kwonly = [
            p.name for p in params
            if p.kind is inspect.Parameter.KEYWORD_ONLY and p.default is inspect.Parameter.empty
        ]

        if required_kwonly:
            raise ProducerSignatureError(
                f"producer requires keyword-only arguments {required_kwonly} "
                f"while calling function {name}",
                details={"producer": name, "expected": required_kwonly, "got": len(args)},
            )

        too_few = len(args) < len(required)
        too_many = variadic is None and len(args) > len(positional)
        if too_few or too_many:
            expected = self._expected_arity(len(required), len(positional), variadic is not None)
            raise ProducerSignatureError(
                f"expected {expected} arguments, got {len(args)} while calling function {name}",
                details={"producer": name, "expected": expected, "got": len(args)},
            )

        hints = _type_hints(producer)
        for position, value in enumerate(args):
            param = positional[position] if position < len(positional) else variadic
            annotation = hints.get(param.name, param.annotation)
            if not matches(value, annotation):
                raise ProducerSignatureError(
                    f"argument {position} expected type {type_name(annotation)}, "
                    f"got {type(value).__name__} while calling function {name}",
                    details={
                        "producer": name,
                        "position": position,
                        "expected": type_name(annotation),
                        "got": type(value).__name__,
                    },
                )

        return ProducerCall(producer, args, name)

    @staticmethod
    def _expected_arity(required: int, total: int, variadic: bool) -> str:
        if variadic:
            return f"at least {required}"
        if required == total:
            return str(total)
        return f"{required} to {total}"

    async def invoke(self, call: ProducerCall, model: Any) -> tuple[ProducerOutcome, Any]:
        """
        Call the producer and interpret what it returned.

        Returns:
            (outcome, value) where value is set only for ProducerOutcome.VALUE

        Raises:
            Whatever the producer raised or returned as its error
            ProducerSignatureError: If the result has the wrong type or shape
        """
        if _is_async(call.producer):
            result = await call.producer(*call.args)
        else:
            # Sync producers run in a worker thread
            result = await asyncio.to_thread(call.producer, *call.args)
            if inspect.isawaitable(result):
                result = await result
        return self.interpret(call, result, model)

    def interpret(self, call: ProducerCall, result: Any, model: Any) -> tuple[ProducerOutcome, Any]:
        if result is None:
            return ProducerOutcome.EMPTY, None
        if isinstance(result, BaseException):
            raise result

        if not isinstance(result, tuple) or _is_tuple_model(model):
            return self._single(call, result, model)

        if len(result) == 0:
            return ProducerOutcome.EMPTY, None
        if len(result) == 1:
            return self._single(call, result[0], model)
        if len(result) == 2:
            value, error = result
            if error is not None:
                if isinstance(error, BaseException):
                    raise error
                raise ProducerSignatureError(
                    f"second return value must be an exception or None, "
                    f"got {type(error).__name__} while calling function {call.name}",
                    details={"producer": call.name, "position": 1, "got": type(error).__name__},
                )
            return self._single(call, value, model)

        log_stage(
            logger, Stage.PRODUCER, "Producer returned an unsupported number of values",
            level="warning", producer=call.name, returned=len(result),
        )
        return ProducerOutcome.UNSUPPORTED, None

    def _single(self, call: ProducerCall, value: Any, model: Any) -> tuple[ProducerOutcome, Any]:
        if value is None:
            return ProducerOutcome.EMPTY, None
        if isinstance(value, BaseException):
            raise value
        if not matches(value, model):
            raise ProducerSignatureError(
                f"expected return type {type_name(model)}, "
                f"got {type(value).__name__} while calling function {call.name}",
                details={
                    "producer": call.name,
                    "expected": type_name(model),
                    "got": type(value).__name__,
                },
            )
        return ProducerOutcome.VALUE, value
