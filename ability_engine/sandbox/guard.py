"""Static checks and restricted globals for untrusted ability code.

Ability fragments, static header expressions and transform functions are
Python source supplied by the registry or the caller. Before any of it is
compiled, the AST is walked and rejected if it uses:

- imports, ``global`` / ``nonlocal``
- names starting with ``__`` or attributes starting with ``_``
- frame / code introspection attributes and ``str.format`` style lookups
- the same attribute names used as ``match`` class pattern keywords
- builtins that reach the host (``open``, ``eval``, ``getattr`` ...)

Code then runs with ``SAFE_BUILTINS`` as its only builtins. Nothing here stops
a fragment from looping forever; the network timeout bounds I/O only.
"""

from __future__ import annotations

import ast
import logging
from typing import Any, Callable, Dict, Optional

from ..errors import SandboxCompileError, SandboxViolationError

sandbox_logger = logging.getLogger("ability_engine.sandbox.code")

FORBIDDEN_NAMES = frozenset(
    {
        "breakpoint",
        "compile",
        "delattr",
        "dir",
        "eval",
        "exec",
        "exit",
        "getattr",
        "globals",
        "hasattr",
        "help",
        "input",
        "locals",
        "memoryview",
        "open",
        "quit",
        "setattr",
        "type",
        "vars",
    }
)

FORBIDDEN_ATTRIBUTES = frozenset(
    {
        "ag_code",
        "ag_frame",
        "cr_code",
        "cr_frame",
        "f_back",
        "f_builtins",
        "f_globals",
        "f_locals",
        "format",
        "format_map",
        "gi_code",
        "gi_frame",
        "mro",
        "tb_frame",
        "tb_next",
    }
)

FORBIDDEN_NODES = (ast.Import, ast.ImportFrom, ast.Global, ast.Nonlocal)


def _sandbox_print(*args: Any, **_: Any) -> None:
    sandbox_logger.info(" ".join(str(a) for a in args))


SAFE_BUILTINS: Dict[str, Any] = {
    "abs": abs,
    "all": all,
    "any": any,
    "bool": bool,
    "dict": dict,
    "divmod": divmod,
    "enumerate": enumerate,
    "filter": filter,
    "float": float,
    "frozenset": frozenset,
    "int": int,
    "isinstance": isinstance,
    "iter": iter,
    "len": len,
    "list": list,
    "map": map,
    "max": max,
    "min": min,
    "next": next,
    "print": _sandbox_print,
    "range": range,
    "repr": repr,
    "reversed": reversed,
    "round": round,
    "set": set,
    "slice": slice,
    "sorted": sorted,
    "str": str,
    "sum": sum,
    "tuple": tuple,
    "zip": zip,
    "ArithmeticError": ArithmeticError,
    "AttributeError": AttributeError,
    "Exception": Exception,
    "IndexError": IndexError,
    "KeyError": KeyError,
    "LookupError": LookupError,
    "RuntimeError": RuntimeError,
    "TypeError": TypeError,
    "ValueError": ValueError,
    "ZeroDivisionError": ZeroDivisionError,
}


class _SafetyVisitor(ast.NodeVisitor):
    def generic_visit(self, node: ast.AST) -> None:
        if isinstance(node, FORBIDDEN_NODES):
            raise SandboxViolationError(type(node).__name__.lower(), getattr(node, "lineno", None))
        super().generic_visit(node)

    def visit_Name(self, node: ast.Name) -> None:
        if node.id.startswith("__") or node.id in FORBIDDEN_NAMES:
            raise SandboxViolationError(f"name '{node.id}'", node.lineno)
        self.generic_visit(node)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if node.attr.startswith("_") or node.attr in FORBIDDEN_ATTRIBUTES:
            raise SandboxViolationError(f"attribute '.{node.attr}'", node.lineno)
        self.generic_visit(node)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._check_binding(node.name, node.lineno)
        self.generic_visit(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._check_binding(node.name, node.lineno)
        self.generic_visit(node)

    def visit_MatchClass(self, node: ast.MatchClass) -> None:
        # Keyword patterns read attributes without an ast.Attribute node.
        for attr in node.kwd_attrs:
            if attr.startswith("_") or attr in FORBIDDEN_ATTRIBUTES:
                raise SandboxViolationError(f"attribute '.{attr}'", node.lineno)
        self.generic_visit(node)

    def visit_MatchAs(self, node: ast.MatchAs) -> None:
        if node.name is not None:
            self._check_binding(node.name, node.lineno)
        self.generic_visit(node)

    def visit_MatchStar(self, node: ast.MatchStar) -> None:
        if node.name is not None:
            self._check_binding(node.name, node.lineno)
        self.generic_visit(node)

    def visit_ExceptHandler(self, node: ast.ExceptHandler) -> None:
        if node.name is not None:
            self._check_binding(node.name, node.lineno)
        self.generic_visit(node)

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        raise SandboxViolationError("class definition", node.lineno)

    def visit_arg(self, node: ast.arg) -> None:
        self._check_binding(node.arg, getattr(node, "lineno", None))
        self.generic_visit(node)

    @staticmethod
    def _check_binding(name: str, line: Optional[int]) -> None:
        if name.startswith("__") or name in FORBIDDEN_NAMES:
            raise SandboxViolationError(f"name '{name}'", line)


def validate(source: str, *, mode: str = "exec", filename: str = "<ability>") -> ast.AST:
    """Parse and check source, returning the AST.

    Raises:
        SandboxCompileError: If the source does not parse.
        SandboxViolationError: If the source uses a forbidden construct.
    """
    try:
        tree = ast.parse(source, filename=filename, mode=mode)
    except SyntaxError as e:
        raise SandboxCompileError(f"{e.msg} (line {e.lineno})") from e
    _SafetyVisitor().visit(tree)
    return tree


def restricted_globals(extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    namespace: Dict[str, Any] = {"__builtins__": dict(SAFE_BUILTINS), "__name__": "ability"}
    if extra:
        namespace.update(extra)
    return namespace


def exec_fragment(source: str, namespace: Dict[str, Any], *, filename: str = "<ability>") -> Dict[str, Any]:
    """Validate, compile and execute a module-level fragment into ``namespace``."""
    tree = validate(source, mode="exec", filename=filename)
    try:
        code = compile(tree, filename, "exec")
    except (SyntaxError, ValueError) as e:
        raise SandboxCompileError(str(e)) from e
    exec(code, namespace)  # noqa: S102 - checked above, restricted builtins
    return namespace


def evaluate_expression(
    source: str,
    namespace: Optional[Dict[str, Any]] = None,
    *,
    call: bool = True,
    filename: str = "<expression>",
) -> Any:
    """Evaluate a restricted expression.

    With ``call=True`` a callable result (``lambda: 'x'``) is invoked with no
    arguments, which is how static header values are written.
    """
    tree = validate(source.strip(), mode="eval", filename=filename)
    try:
        code = compile(tree, filename, "eval")
    except (SyntaxError, ValueError) as e:
        raise SandboxCompileError(str(e)) from e
    value = eval(code, namespace if namespace is not None else restricted_globals())  # noqa: S307
    if call and callable(value):
        return value()
    return value


def compile_function(source: str, namespace: Optional[Dict[str, Any]] = None) -> Callable[..., Any]:
    """Evaluate an expression that must produce a callable (e.g. a transform lambda)."""
    fn = evaluate_expression(source, namespace, call=False, filename="<transform>")
    if not callable(fn):
        raise SandboxCompileError("expression did not produce a function")
    return fn

