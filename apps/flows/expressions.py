"""
Expression language for ``transform`` and ``condition`` steps.

Expressions are Jinja2 expressions (the part between ``{{ }}``), compiled in a
``SandboxedEnvironment``. Top-level payload keys are variables and
``payload`` is the whole document. Missing keys evaluate to ``None`` instead
of raising.

On top of Jinja2's own syntax (literals, ``and``/``or``/``not``, ``in``,
arithmetic, ``a if cond else b``, list/dict displays, filters such as
``title|lower``), only the functions in ``FUNCTIONS`` can be called.

Example:
    expr = compile_expression("severity in ['high', 'critical'] and score > 7")
    expr.evaluate({"severity": "high", "score": 9})  # True
"""

from __future__ import annotations

from functools import lru_cache, wraps
from typing import Any, Callable

import jinja2
from jinja2 import nodes
from jinja2.parser import Parser
from jinja2.sandbox import SandboxedEnvironment

from apps.flows.exceptions import ExpressionError

MAX_EXPRESSION_LENGTH = 2000

_MISSING = object()


class MissingValue(jinja2.ChainableUndefined):
    """Undefined that chains through lookups and compares equal to ``null``."""

    __slots__ = ()

    def __eq__(self, other):
        return other is None or isinstance(other, jinja2.Undefined)

    def __ne__(self, other):
        return not self.__eq__(other)

    __hash__ = jinja2.ChainableUndefined.__hash__


class PayloadEnvironment(SandboxedEnvironment):
    """Sandbox where ``a.b`` and ``a['b']`` on objects only ever read keys."""

    def getattr(self, obj, attribute):
        if isinstance(obj, dict):
            return self._key(obj, attribute)
        return super().getattr(obj, attribute)

    def getitem(self, obj, argument):
        if isinstance(obj, dict):
            return self._key(obj, argument)
        return super().getitem(obj, argument)

    def _key(self, obj, key):
        try:
            return obj[key]
        except (KeyError, TypeError):
            return self.undefined(obj=obj, name=key)


def _defined(value: Any) -> Any:
    return None if isinstance(value, jinja2.Undefined) else value


def _tolerant(func: Callable[..., Any]) -> Callable[..., Any]:
    """Pass missing values to ``func`` as ``None``."""

    @wraps(func)
    def wrapper(*args):
        return func(*(_defined(arg) for arg in args))

    return wrapper


def _get_path(data: Any, path: str, default: Any = None) -> Any:
    """Dot-path lookup: ``get(payload, "a.b.0.c", default)``."""
    current = data
    for part in str(path).split("."):
        if isinstance(current, (list, tuple)) and part.lstrip("-").isdigit():
            try:
                current = current[int(part)]
            except IndexError:
                return default
        elif isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return default
        if current is None:
            return default
    return current


def _exists(data: Any, path: str) -> bool:
    return _get_path(data, path, _MISSING) is not _MISSING


def _contains(container: Any, item: Any) -> bool:
    if container is None:
        return False
    return item in container


FUNCTIONS: dict[str, Callable[..., Any]] = {
    name: _tolerant(func)
    for name, func in {
        "len": lambda value: len(value) if value is not None else 0,
        "lower": lambda value: str(value).lower() if value is not None else None,
        "upper": lambda value: str(value).upper() if value is not None else None,
        "str": str,
        "int": int,
        "float": float,
        "bool": bool,
        "abs": abs,
        "min": min,
        "max": max,
        "round": round,
        "get": _get_path,
        "exists": _exists,
        "contains": _contains,
        "startswith": lambda value, prefix: str(value).startswith(prefix) if value is not None else False,
        "endswith": lambda value, suffix: str(value).endswith(suffix) if value is not None else False,
    }.items()
}

_ENV = PayloadEnvironment(undefined=MissingValue, autoescape=False)
_ENV.globals.clear()
_ENV.globals.update(FUNCTIONS)
_ENV.globals["null"] = None


def _plain(value: Any) -> Any:
    """Turn a Jinja2 result into plain JSON-compatible data."""
    if isinstance(value, jinja2.Undefined):
        return None
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    return value


class Expression:
    """A compiled, validated expression."""

    def __init__(self, source: str, compiled: jinja2.environment.TemplateExpression):
        self.source = source
        self._compiled = compiled

    def __repr__(self):
        return f"Expression({self.source!r})"

    def evaluate(self, payload: Any) -> Any:
        """
        Evaluate against a payload.

        Raises:
            ExpressionError: On type errors, division by zero, sandbox
                violations and similar.
        """
        context = {"payload": payload}
        if isinstance(payload, dict):
            context.update((key, value) for key, value in payload.items() if isinstance(key, str))
            context["payload"] = payload
        try:
            return _plain(self._compiled(context))
        except (
            jinja2.TemplateError,
            TypeError,
            ValueError,
            ZeroDivisionError,
            OverflowError,
        ) as e:
            raise ExpressionError(f"Error evaluating {self.source!r}: {e}") from e


def _validate(tree: nodes.Node, source: str) -> None:
    for node in tree.find_all(nodes.Getattr):
        if node.attr.startswith("_"):
            raise ExpressionError(f"Private attribute access is not allowed: {node.attr}")
    for node in tree.find_all(nodes.Call):
        if not isinstance(node.node, nodes.Name) or node.node.name not in FUNCTIONS:
            name = node.node.name if isinstance(node.node, nodes.Name) else "method call"
            raise ExpressionError(f"Unknown function {name!r} in {source!r}. Available: {sorted(FUNCTIONS)}")
        if node.kwargs or node.dyn_args or node.dyn_kwargs:
            raise ExpressionError("Keyword and unpacked arguments are not supported")


@lru_cache(maxsize=512)
def compile_expression(source: str) -> Expression:
    """
    Parse and validate an expression.

    Raises:
        ExpressionError: If the expression is empty, too long, not valid
            syntax, or calls anything outside ``FUNCTIONS``.
    """
    if not isinstance(source, str) or not source.strip():
        raise ExpressionError("Expression must be a non-empty string")
    if len(source) > MAX_EXPRESSION_LENGTH:
        raise ExpressionError(f"Expression exceeds {MAX_EXPRESSION_LENGTH} characters")

    source = source.strip()
    try:
        parser = Parser(_ENV, source, state="variable")
        tree = parser.parse_expression()
        if not parser.stream.eos:
            raise jinja2.TemplateSyntaxError(
                f"unexpected {parser.stream.current.value!r}", parser.stream.current.lineno
            )
        _validate(tree, source)
        compiled = _ENV.compile_expression(source)
    except jinja2.TemplateSyntaxError as e:
        raise ExpressionError(f"Invalid expression {source!r}: {e.message}") from e

    return Expression(source, compiled)


def evaluate(source: str, payload: Any) -> Any:
    """Compile (cached) and evaluate an expression in one call."""
    return compile_expression(source).evaluate(payload)
