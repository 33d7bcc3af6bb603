"""Capability sandbox — a small tree-walking interpreter for agent-written snippets.

Snippets are written in a restricted Python subset and never reach ``exec``. The
interpreter walks the ``ast`` itself, so anything it does not implement simply does
not exist inside a snippet: no imports, no function or class definitions, no
``with``/``try``/``global``, no attribute access beyond a per-type whitelist, no
dunder names. Names resolve against the bindings handed in by the host plus a fixed
table of safe builtins. A step budget bounds how long a snippet may run and a size
cap bounds any single string or container it builds.

Usage:
    interp = Interpreter({"element": {...}, "set_popup": popup_fn}, max_steps=5000)
    interp.run('set_popup({"type": "text", "content": "hi " + element["content"]})')
"""

from __future__ import annotations

import ast
import logging
import operator
import random as _random
import re
import secrets
import time
from collections.abc import Callable, Mapping
from typing import Any

logger = logging.getLogger(__name__)

MAX_SEQUENCE = 10_000
# Largest string/container a snippet may build (characters or items)
MAX_SIZE = MAX_SEQUENCE * 10
MAX_EXPONENT = 1_000
MAX_CALL_DEPTH = 64


class SandboxError(Exception):
    """A snippet failed: bad syntax, a runtime error, or an exhausted budget."""


class SandboxViolation(SandboxError):
    """A snippet tried to use something outside the permitted subset."""


class _Return(Exception):
    def __init__(self, value: Any) -> None:
        self.value = value


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


# ---------------------------------------------------------------------------
# Permitted surface
# ---------------------------------------------------------------------------

_ALLOWED_NODES: tuple[type[ast.AST], ...] = (
    ast.Module, ast.Expr, ast.Assign, ast.AugAssign, ast.If, ast.For, ast.While,
    ast.Break, ast.Continue, ast.Pass, ast.Return,
    ast.Constant, ast.Name, ast.Load, ast.Store, ast.List, ast.Tuple, ast.Dict, ast.Set,
    ast.BinOp, ast.UnaryOp, ast.BoolOp, ast.Compare, ast.IfExp, ast.Subscript, ast.Slice,
    ast.Call, ast.keyword, ast.Attribute, ast.JoinedStr, ast.FormattedValue,
    ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp, ast.comprehension,
    ast.Lambda, ast.arguments, ast.arg,
    ast.Add, ast.Sub, ast.Mult, ast.Div, ast.FloorDiv, ast.Mod, ast.Pow,
    ast.UAdd, ast.USub, ast.Not, ast.And, ast.Or,
    ast.Eq, ast.NotEq, ast.Lt, ast.LtE, ast.Gt, ast.GtE, ast.In, ast.NotIn, ast.Is, ast.IsNot,
)

_BIN_OPS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
}

_COMPARE_OPS: dict[type[ast.cmpop], Callable[[Any, Any], Any]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

# Methods a snippet may call on plain data. Exact types only; no str.format (it
# reaches attributes through its field syntax).
_SAFE_METHODS: dict[type, frozenset[str]] = {
    list: frozenset({"append", "extend", "insert", "pop", "remove", "index", "count", "copy", "reverse", "sort"}),
    dict: frozenset({"get", "keys", "values", "items", "copy", "update", "pop", "setdefault"}),
    str: frozenset({
        "upper", "lower", "strip", "lstrip", "rstrip", "startswith", "endswith", "replace",
        "split", "join", "find", "title", "capitalize", "isdigit",
    }),
    tuple: frozenset({"index", "count"}),
}


def _safe_range(*args: int) -> range:
    r = range(*args)
    if len(r) > MAX_SEQUENCE:
        raise SandboxError(f"range too large ({len(r)} > {MAX_SEQUENCE})")
    return r


def _check_size(value: Any) -> Any:
    if isinstance(value, (str, list, tuple, dict, set)) and len(value) > MAX_SIZE:
        raise SandboxError(f"value too large ({len(value)} > {MAX_SIZE})")
    return value


def _flat_size(value: Any) -> int:
    """Characters plus items ``value`` spans once flattened; raises past MAX_SIZE.

    Shared references count every time they are reached, which is what rendering
    the value to text (or summing lists) would cost.
    """
    total = 0
    stack = [value]
    while stack:
        item = stack.pop()
        if isinstance(item, str):
            total += len(item)
        elif isinstance(item, dict):
            total += 1 + len(item)
            if total <= MAX_SIZE:
                stack.extend(item.keys())
                stack.extend(item.values())
        elif isinstance(item, (list, tuple, set, frozenset)):
            total += 1 + len(item)
            if total <= MAX_SIZE:
                stack.extend(item)
        else:
            total += 1
        if total > MAX_SIZE:
            raise SandboxError(f"value too large (> {MAX_SIZE})")
    return total


def _safe_str(value: Any = "") -> str:
    _flat_size(value)
    return str(value)


def _safe_sum(iterable: Any, start: Any = 0) -> Any:
    items = list(_bounded(iterable))
    _flat_size(items)
    _flat_size(start)
    return _check_size(sum(items, start))


def _precheck_str_method(owner: str, name: str, args: list[Any]) -> None:
    """Refuse ``replace``/``join`` calls whose result would pass MAX_SIZE."""
    if name == "replace" and len(args) >= 2 and isinstance(args[0], str) and isinstance(args[1], str):
        old, new = args[0], args[1]
        count = owner.count(old)
        if len(args) > 2 and isinstance(args[2], int) and args[2] >= 0:
            count = min(count, args[2])
        if len(owner) + count * (len(new) - len(old)) > MAX_SIZE:
            raise SandboxError("str.replace result too large")
    elif name == "join" and args and isinstance(args[0], (list, tuple, str, set, frozenset, dict)):
        parts = args[0]
        size = sum(len(p) for p in _bounded(parts) if isinstance(p, str))
        if size + len(owner) * max(len(parts) - 1, 0) > MAX_SIZE:
            raise SandboxError("str.join result too large")


def _now() -> int:
    """Milliseconds since the epoch."""
    return int(time.time() * 1000)


def _new_id(prefix: str = "el") -> str:
    return f"{prefix}-{_now()}-{secrets.token_hex(4)}"


SAFE_BUILTINS: dict[str, Any] = {
    "len": len,
    "range": _safe_range,
    "min": min,
    "max": max,
    "abs": abs,
    "round": round,
    "int": int,
    "float": float,
    "str": _safe_str,
    "bool": bool,
    "list": list,
    "dict": dict,
    "enumerate": enumerate,
    "zip": zip,
    "sorted": sorted,
    "sum": _safe_sum,
    "any": any,
    "all": all,
    "random": _random.random,
    "uniform": _random.uniform,
    "randint": _random.randint,
    "choice": _random.choice,
    "now": _now,
    "new_id": _new_id,
    "True": True,
    "False": False,
    "None": None,
}


def exposed_attributes(obj: Any) -> frozenset[str]:
    """Attributes a snippet may read on ``obj``.

    Host objects opt in by declaring a ``sandbox_exposed`` class attribute; plain data
    gets the method whitelist for its exact type.
    """
    declared = getattr(type(obj), "sandbox_exposed", None)
    if declared is not None:
        return frozenset(declared)
    return _SAFE_METHODS.get(type(obj), frozenset())


# ---------------------------------------------------------------------------
# Static validation
# ---------------------------------------------------------------------------

def parse_snippet(code: str) -> ast.Module:
    """Parse and structurally check a snippet. Raises SandboxError/SandboxViolation."""
    try:
        tree = ast.parse(code, mode="exec")
    except SyntaxError as e:
        raise SandboxError(f"SyntaxError: {e.msg} (line {e.lineno})") from e

    for node in ast.walk(tree):
        if not isinstance(node, _ALLOWED_NODES):
            raise SandboxViolation(f"{type(node).__name__} is not allowed in capability code")
        if isinstance(node, ast.Name) and node.id.startswith("__"):
            raise SandboxViolation(f"Use of name {node.id!r} is not allowed")
        if isinstance(node, ast.Attribute):
            if node.attr.startswith("_"):
                raise SandboxViolation(f"Access to attribute {node.attr!r} is not allowed")
            if isinstance(node.ctx, ast.Store):
                raise SandboxViolation("Assigning to attributes is not allowed")
        if isinstance(node, ast.arguments) and (node.vararg or node.kwarg or node.kwonlyargs):
            raise SandboxViolation("Only plain positional lambda parameters are allowed")
        if isinstance(node, ast.keyword) and node.arg is None:
            raise SandboxViolation("**kwargs expansion is not allowed")
    return tree


def validate(code: str) -> str | None:
    """Return None when ``code`` is an acceptable snippet, otherwise the reason it is not."""
    try:
        parse_snippet(code)
    except SandboxError as e:
        return str(e)
    return None


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------

class _Scope:
    __slots__ = ("vars", "parent")

    def __init__(self, parent: _Scope | None = None) -> None:
        self.vars: dict[str, Any] = {}
        self.parent = parent

    def lookup(self, name: str) -> tuple[bool, Any]:
        scope: _Scope | None = self
        while scope is not None:
            if name in scope.vars:
                return True, scope.vars[name]
            scope = scope.parent
        return False, None


class Closure:
    """A snippet ``lambda``. Callable from host code (e.g. as a ``set_elements`` updater)."""

    def __init__(self, interp: Interpreter, node: ast.Lambda, scope: _Scope) -> None:
        self._interp = interp
        self._node = node
        self._scope = scope

    def __call__(self, *args: Any) -> Any:
        return self._interp.call_closure(self._node, self._scope, args)

    def __repr__(self) -> str:
        return "<capability lambda>"


class Interpreter:
    """Runs one snippet against a fixed set of host bindings."""

    def __init__(
        self,
        bindings: Mapping[str, Any],
        *,
        max_steps: int = 20_000,
    ) -> None:
        self._bindings = dict(bindings)
        self._max_steps = max_steps
        self._steps = 0
        self._depth = 0
        self._running = False

    # -- entry points ------------------------------------------------------

    def run(self, code: str | ast.Module) -> Any:
        """Execute a snippet. Returns the value of a top-level ``return`` (or None)."""
        tree = parse_snippet(code) if isinstance(code, str) else code
        scope = _Scope()
        self._steps = 0
        self._depth = 0
        self._running = True
        try:
            self._exec_block(tree.body, scope)
        except _Return as r:
            return r.value
        except (_Break, _Continue):
            raise SandboxError("'break'/'continue' outside loop")
        except SandboxError:
            raise
        except RecursionError as e:
            raise SandboxError("snippet nested too deeply") from e
        except Exception as e:
            raise SandboxError(f"{type(e).__name__}: {e}") from e
        finally:
            self._running = False
        return None

    def call_closure(self, node: ast.Lambda, scope: _Scope, args: tuple[Any, ...]) -> Any:
        if self._depth == 0 and not self._running:
            # Host-initiated call (e.g. a delayed set_elements updater): fresh budget
            self._steps = 0
        if self._depth >= MAX_CALL_DEPTH:
            raise SandboxError("lambda call depth exceeded")

        params = node.args.args
        defaults = node.args.defaults
        if len(args) > len(params):
            raise SandboxError(f"lambda takes {len(params)} arguments but {len(args)} were given")
        local = _Scope(scope)
        first_default = len(params) - len(defaults)
        for i, param in enumerate(params):
            if i < len(args):
                local.vars[param.arg] = args[i]
            elif i >= first_default:
                local.vars[param.arg] = self._eval(defaults[i - first_default], scope)
            else:
                raise SandboxError(f"lambda missing argument {param.arg!r}")

        self._depth += 1
        try:
            return self._eval(node.body, local)
        except SandboxError:
            raise
        except (_Return, _Break, _Continue):
            raise SandboxError("control flow inside lambda")
        except Exception as e:
            raise SandboxError(f"{type(e).__name__}: {e}") from e
        finally:
            self._depth -= 1

    # -- bookkeeping -------------------------------------------------------

    def _tick(self) -> None:
        self._steps += 1
        if self._steps > self._max_steps:
            raise SandboxError(f"step budget exhausted ({self._max_steps} steps)")

    def _lookup(self, name: str, scope: _Scope) -> Any:
        found, value = scope.lookup(name)
        if found:
            return value
        if name in self._bindings:
            return self._bindings[name]
        if name in SAFE_BUILTINS:
            return SAFE_BUILTINS[name]
        raise SandboxError(f"name {name!r} is not defined")

    # -- statements --------------------------------------------------------

    def _exec_block(self, body: list[ast.stmt], scope: _Scope) -> None:
        for stmt in body:
            self._exec(stmt, scope)

    def _exec(self, node: ast.stmt, scope: _Scope) -> None:
        self._tick()

        if isinstance(node, ast.Expr):
            self._eval(node.value, scope)
        elif isinstance(node, ast.Assign):
            value = self._eval(node.value, scope)
            for target in node.targets:
                self._assign(target, value, scope)
        elif isinstance(node, ast.AugAssign):
            current = self._eval(_as_load(node.target), scope)
            value = self._binop(node.op, current, self._eval(node.value, scope))
            self._assign(node.target, value, scope)
        elif isinstance(node, ast.If):
            branch = node.body if self._eval(node.test, scope) else node.orelse
            self._exec_block(branch, scope)
        elif isinstance(node, ast.For):
            self._exec_for(node, scope)
        elif isinstance(node, ast.While):
            self._exec_while(node, scope)
        elif isinstance(node, ast.Return):
            raise _Return(self._eval(node.value, scope) if node.value is not None else None)
        elif isinstance(node, ast.Break):
            raise _Break()
        elif isinstance(node, ast.Continue):
            raise _Continue()
        elif isinstance(node, ast.Pass):
            pass
        else:
            raise SandboxViolation(f"{type(node).__name__} is not allowed in capability code")

    def _exec_for(self, node: ast.For, scope: _Scope) -> None:
        iterable = self._eval(node.iter, scope)
        broke = False
        for item in _bounded(iterable):
            self._assign(node.target, item, scope)
            try:
                self._exec_block(node.body, scope)
            except _Break:
                broke = True
                break
            except _Continue:
                continue
        if not broke:
            self._exec_block(node.orelse, scope)

    def _exec_while(self, node: ast.While, scope: _Scope) -> None:
        broke = False
        while self._eval(node.test, scope):
            self._tick()
            try:
                self._exec_block(node.body, scope)
            except _Break:
                broke = True
                break
            except _Continue:
                continue
        if not broke:
            self._exec_block(node.orelse, scope)

    def _assign(self, target: ast.expr, value: Any, scope: _Scope) -> None:
        if isinstance(target, ast.Name):
            scope.vars[target.id] = value
        elif isinstance(target, ast.Subscript):
            container = self._eval(target.value, scope)
            if not isinstance(container, (list, dict)):
                raise SandboxViolation(f"cannot assign items on {type(container).__name__}")
            container[self._eval(target.slice, scope)] = value
        elif isinstance(target, (ast.Tuple, ast.List)):
            items = list(_bounded(value))
            if len(items) != len(target.elts):
                raise SandboxError(f"cannot unpack {len(items)} values into {len(target.elts)} names")
            for elt, item in zip(target.elts, items):
                self._assign(elt, item, scope)
        else:
            raise SandboxViolation(f"cannot assign to {type(target).__name__}")

    # -- expressions -------------------------------------------------------

    def _eval(self, node: ast.expr, scope: _Scope) -> Any:
        self._tick()

        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            return self._lookup(node.id, scope)
        if isinstance(node, ast.List):
            return [self._eval(e, scope) for e in node.elts]
        if isinstance(node, ast.Tuple):
            return tuple(self._eval(e, scope) for e in node.elts)
        if isinstance(node, ast.Set):
            return {self._eval(e, scope) for e in node.elts}
        if isinstance(node, ast.Dict):
            if any(k is None for k in node.keys):
                raise SandboxViolation("dict unpacking is not allowed")
            return {self._eval(k, scope): self._eval(v, scope) for k, v in zip(node.keys, node.values)}
        if isinstance(node, ast.BinOp):
            return self._binop(node.op, self._eval(node.left, scope), self._eval(node.right, scope))
        if isinstance(node, ast.UnaryOp):
            return _UNARY_OPS[type(node.op)](self._eval(node.operand, scope))
        if isinstance(node, ast.BoolOp):
            return self._boolop(node, scope)
        if isinstance(node, ast.Compare):
            return self._compare(node, scope)
        if isinstance(node, ast.IfExp):
            return self._eval(node.body if self._eval(node.test, scope) else node.orelse, scope)
        if isinstance(node, ast.Subscript):
            return self._subscript(node, scope)
        if isinstance(node, ast.Slice):
            return slice(
                self._eval(node.lower, scope) if node.lower else None,
                self._eval(node.upper, scope) if node.upper else None,
                self._eval(node.step, scope) if node.step else None,
            )
        if isinstance(node, ast.Attribute):
            return self._attribute(node, scope)
        if isinstance(node, ast.Call):
            return self._call(node, scope)
        if isinstance(node, ast.JoinedStr):
            return _check_size("".join(str(self._eval(v, scope)) for v in node.values))
        if isinstance(node, ast.FormattedValue):
            return self._formatted(node, scope)
        if isinstance(node, ast.Lambda):
            return Closure(self, node, scope)
        if isinstance(node, (ast.ListComp, ast.GeneratorExp)):
            return [self._eval(node.elt, s) for s in self._comprehend(node.generators, scope)]
        if isinstance(node, ast.SetComp):
            return {self._eval(node.elt, s) for s in self._comprehend(node.generators, scope)}
        if isinstance(node, ast.DictComp):
            return {
                self._eval(node.key, s): self._eval(node.value, s)
                for s in self._comprehend(node.generators, scope)
            }
        raise SandboxViolation(f"{type(node).__name__} is not allowed in capability code")

    def _binop(self, op: ast.operator, left: Any, right: Any) -> Any:
        if isinstance(op, ast.Pow) and isinstance(right, (int, float)) and abs(right) > MAX_EXPONENT:
            raise SandboxError("exponent too large")
        if isinstance(op, ast.Mod) and isinstance(left, str):
            raise SandboxViolation("%-formatting is not allowed, use an f-string")
        if isinstance(op, ast.Mult):
            for seq, times in ((left, right), (right, left)):
                if isinstance(seq, (str, list, tuple)) and isinstance(times, int):
                    if len(seq) * times > MAX_SIZE:
                        raise SandboxError("sequence repetition too large")
        if isinstance(op, ast.Add) and isinstance(left, (str, list, tuple)) and isinstance(right, (str, list, tuple)):
            if len(left) + len(right) > MAX_SIZE:
                raise SandboxError("concatenation too large")
        return _check_size(_BIN_OPS[type(op)](left, right))

    def _boolop(self, node: ast.BoolOp, scope: _Scope) -> Any:
        value: Any = None
        if isinstance(node.op, ast.And):
            for v in node.values:
                value = self._eval(v, scope)
                if not value:
                    return value
            return value
        for v in node.values:
            value = self._eval(v, scope)
            if value:
                return value
        return value

    def _compare(self, node: ast.Compare, scope: _Scope) -> bool:
        left = self._eval(node.left, scope)
        for op, comparator in zip(node.ops, node.comparators):
            right = self._eval(comparator, scope)
            if not _COMPARE_OPS[type(op)](left, right):
                return False
            left = right
        return True

    def _subscript(self, node: ast.Subscript, scope: _Scope) -> Any:
        container = self._eval(node.value, scope)
        if not isinstance(container, (list, tuple, dict, str)):
            raise SandboxViolation(f"cannot index {type(container).__name__}")
        key = self._eval(node.slice, scope)
        return container[key]

    def _attribute(self, node: ast.Attribute, scope: _Scope) -> Any:
        obj = self._eval(node.value, scope)
        if node.attr.startswith("_") or node.attr not in exposed_attributes(obj):
            raise SandboxViolation(f"attribute {node.attr!r} is not available on {type(obj).__name__}")
        return getattr(obj, node.attr)

    def _call(self, node: ast.Call, scope: _Scope) -> Any:
        func = self._eval(node.func, scope)
        if not callable(func):
            raise SandboxError(f"{type(func).__name__} object is not callable")
        args: list[Any] = []
        for a in node.args:
            if isinstance(a, ast.Starred):
                raise SandboxViolation("*args expansion is not allowed")
            args.append(self._eval(a, scope))
        kwargs = {kw.arg: self._eval(kw.value, scope) for kw in node.keywords if kw.arg is not None}
        owner = getattr(func, "__self__", None)
        if isinstance(owner, str):
            _precheck_str_method(owner, func.__name__, args)
        result = _check_size(func(*args, **kwargs))
        if isinstance(owner, (list, dict)):
            # In-place growth (extend, insert, update)
            _check_size(owner)
        return result

    def _formatted(self, node: ast.FormattedValue, scope: _Scope) -> str:
        value = self._eval(node.value, scope)
        _flat_size(value)
        if node.conversion == ord("r"):
            value = repr(value)
        elif node.conversion in (ord("s"), ord("a")):
            value = str(value)
        spec = self._eval(node.format_spec, scope) if node.format_spec is not None else ""
        if any(int(n) > MAX_SIZE for n in re.findall(r"\d+", spec)):
            raise SandboxError(f"format width too large: {spec!r}")
        return _check_size(format(value, spec))

    def _comprehend(self, generators: list[ast.comprehension], scope: _Scope):
        """Yield one child scope per combination of comprehension bindings."""
        if not generators:
            yield scope
            return
        first, rest = generators[0], generators[1:]
        if first.is_async:
            raise SandboxViolation("async comprehensions are not allowed")
        for item in _bounded(self._eval(first.iter, scope)):
            child = _Scope(scope)
            self._assign(first.target, item, child)
            if all(self._eval(cond, child) for cond in first.ifs):
                yield from self._comprehend(rest, child)


def _as_load(target: ast.expr) -> ast.expr:
    """Re-read an augmented-assignment target as an expression."""
    if isinstance(target, ast.Name):
        return ast.Name(id=target.id, ctx=ast.Load())
    if isinstance(target, ast.Subscript):
        return ast.Subscript(value=target.value, slice=target.slice, ctx=ast.Load())
    raise SandboxViolation(f"cannot augment-assign to {type(target).__name__}")


def _bounded(iterable: Any):
    """Iterate at most MAX_SEQUENCE items of a data value."""
    if isinstance(iterable, (dict, list, tuple, str, range, set, frozenset)) or type(iterable).__name__ in (
        "dict_keys", "dict_values", "dict_items", "enumerate", "zip",
    ):
        for i, item in enumerate(iterable):
            if i >= MAX_SEQUENCE:
                raise SandboxError(f"iteration exceeded {MAX_SEQUENCE} items")
            yield item
        return
    raise SandboxViolation(f"cannot iterate over {type(iterable).__name__}")
