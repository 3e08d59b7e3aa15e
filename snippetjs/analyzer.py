"""
SnippetJS - Static Analyzer
Reads an AST without evaluating it:
  - parse_signature:     name and parameter names of the entry function
  - trace_dependencies:  token ids and contract addresses the code calls
  - check_identifiers:   every identifier is bound somewhere in scope
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .ast_nodes import (
    Ast, ASTNode, FunctionDeclNode, VarDeclNode, IdentifierNode, LiteralNode,
    UnaryNode, CallNode, AssignmentNode, UpdateNode,
)
from .context import RunContext
from .decimal_math import FixedDecimal
from .errors import ParseError, UnboundIdentifierError

logger = logging.getLogger(__name__)

EXECUTE_TOKEN = "executeToken"
STATICCALL_CONTRACT = "staticcallContract"

# Functions the interpreter provides without a declaration
BUILTINS = {EXECUTE_TOKEN, STATICCALL_CONTRACT}

_UNRESOLVED = object()


@dataclass
class Signature:
    name: str
    args: List[str] = field(default_factory=list)


@dataclass
class Dependencies:
    contract_dependees: List[str] = field(default_factory=list)
    exe_token_dependees: List[int] = field(default_factory=list)


def format_address(value: Any) -> str:
    """Contract addresses given as numbers are written as 0x-prefixed hex."""
    if isinstance(value, FixedDecimal):
        return "0x%040x" % value.truncate()
    if isinstance(value, int) and not isinstance(value, bool):
        return "0x%040x" % value
    return str(value)


def _host_number(value: FixedDecimal) -> Any:
    return value.truncate() if value.is_integer else value


class Analyzer:
    def __init__(self, ast: Ast):
        self._ast = ast
        self._globals: Set[str] = set()
        self._scope: Set[str] = set()

    # ------------------------------------------------------------------ helpers

    def _walk(self, index: int, into_functions: bool = False) -> Iterable[int]:
        """Pre-order indices below `index` (inclusive), in source order."""
        stack = [index]
        while stack:
            i = stack.pop()
            yield i
            if i != index and not into_functions and isinstance(self._ast[i], FunctionDeclNode):
                continue
            stack.extend(reversed(self._ast.children(i)))

    def functions(self) -> Dict[str, int]:
        """Every function declaration in the program, by name."""
        out: Dict[str, int] = {}
        for i in self._walk(self._ast.root, into_functions=True):
            node = self._ast[i]
            if isinstance(node, FunctionDeclNode):
                out.setdefault(node.name, i)
        return out

    def declared_vars(self, index: int) -> Set[str]:
        """Names declared by var/let/const below `index`, not entering nested functions."""
        names: Set[str] = set()
        for i in self._walk(index):
            node = self._ast[i]
            if isinstance(node, VarDeclNode):
                names.update(d.name for d in node.declarations)
        return names

    def entry_function(self, start_node_index: int = 0) -> Optional[int]:
        body = self._ast.program.body
        if 0 <= start_node_index < len(body) and isinstance(self._ast[body[start_node_index]], FunctionDeclNode):
            return body[start_node_index]
        for i in body:
            if isinstance(self._ast[i], FunctionDeclNode):
                return i
        return None

    # ------------------------------------------------------------------ signature

    def parse_signature(self, start_node_index: int = 0) -> Signature:
        index = self.entry_function(start_node_index)
        if index is None:
            raise ParseError("no function declaration found", 1)
        fn: FunctionDeclNode = self._ast[index]
        return Signature(name=fn.name, args=[p.name for p in fn.params])

    # ------------------------------------------------------------------ identifiers

    def check_identifiers(self, names: Iterable[str] = ()) -> None:
        program = self._ast.program
        self._globals = (set(names) | BUILTINS | set(self.functions())
                         | self.declared_vars(self._ast.root))
        self._scope = set()
        for stmt in program.body:
            self._visit(stmt)

    def _visit(self, index: int) -> None:
        node = self._ast[index]
        visitor = getattr(self, f"_visit_{type(node).__name__}", self._visit_generic)
        visitor(index, node)

    def _visit_generic(self, index: int, node: ASTNode) -> None:
        for child in self._ast.children(index):
            self._visit(child)

    def _visit_FunctionDeclNode(self, index: int, node: FunctionDeclNode) -> None:
        prev = self._scope
        self._scope = {p.name for p in node.params} | self.declared_vars(node.body)
        for p in node.params:
            if p.default is not None:
                self._visit(p.default)
        self._visit(node.body)
        self._scope = prev

    def _visit_IdentifierNode(self, index: int, node: IdentifierNode) -> None:
        if node.name not in self._scope and node.name not in self._globals:
            raise UnboundIdentifierError(f"undefined identifier '{node.name}'", node.line)

    # ------------------------------------------------------------------ dependencies

    def trace_dependencies(self, context: Optional[RunContext] = None) -> Dependencies:
        context = context or RunContext()
        entry = self.entry_function(context.start_node_index)
        top_consts = self._constant_vars(self._ast.root)

        # (resolved through a binding?, source order, kind, value)
        sites: List[Tuple[bool, int, str, Any]] = []
        order = 0
        fn_stack: List[Tuple[int, Dict[str, Any]]] = []

        for i in self._walk_with_functions(fn_stack, entry, context, top_consts):
            node = self._ast[i]
            if not (isinstance(node, CallNode) and isinstance(self._ast[node.callee], IdentifierNode)):
                continue
            callee = self._ast[node.callee].name
            if callee not in BUILTINS or not node.arguments:
                continue
            env = fn_stack[-1][1] if fn_stack else top_consts
            value, via_binding = self._resolve(node.arguments[0], env)
            if value is _UNRESOLVED:
                logger.debug("skipping unresolvable %s call on line %d", callee, node.line)
                continue
            sites.append((via_binding, order, callee, value))
            order += 1

        deps = Dependencies()
        for via_binding, _, callee, value in sorted(sites, key=lambda s: (s[0], s[1])):
            if callee == EXECUTE_TOKEN:
                token_id = value.truncate() if isinstance(value, FixedDecimal) else value
                if isinstance(token_id, int) and token_id not in deps.exe_token_dependees:
                    deps.exe_token_dependees.append(token_id)
            else:
                address = format_address(value)
                if address not in deps.contract_dependees:
                    deps.contract_dependees.append(address)
        return deps

    def _walk_with_functions(self, fn_stack, entry, context, top_consts) -> Iterable[int]:
        """Pre-order walk that keeps fn_stack pointing at the enclosing function's bindings."""
        stack: List[Tuple[int, bool]] = [(self._ast.root, False)]
        while stack:
            i, leaving = stack.pop()
            if leaving:
                fn_stack.pop()
                continue
            node = self._ast[i]
            if isinstance(node, FunctionDeclNode):
                fn_stack.append((i, self._function_env(i, i == entry, context, top_consts)))
                stack.append((i, True))
            yield i
            stack.extend((c, False) for c in reversed(self._ast.children(i)))

    def _function_env(self, index: int, is_entry: bool, context: RunContext,
                      top_consts: Dict[str, Any]) -> Dict[str, Any]:
        fn: FunctionDeclNode = self._ast[index]
        env = dict(top_consts)
        for pos, param in enumerate(fn.params):
            env.pop(param.name, None)
            if is_entry and pos < len(context.args):
                env[param.name] = context.args[pos]
            elif param.default is not None:
                value = self._literal(param.default)
                if value is not _UNRESOLVED:
                    env[param.name] = value
        local = self._constant_vars(fn.body)
        for name in self.declared_vars(fn.body):
            env.pop(name, None)
        env.update(local)
        return env

    def _constant_vars(self, index: int) -> Dict[str, Any]:
        """Variables bound exactly once, by a var with a literal initializer."""
        bindings: Dict[str, int] = {}
        values: Dict[str, Any] = {}
        for i in self._walk(index):
            node = self._ast[i]
            if isinstance(node, VarDeclNode):
                for d in node.declarations:
                    bindings[d.name] = bindings.get(d.name, 0) + 1
                    values[d.name] = self._literal(d.init) if d.init is not None else _UNRESOLVED
            elif isinstance(node, (AssignmentNode, UpdateNode)):
                target = self._ast[node.target if isinstance(node, AssignmentNode) else node.argument]
                if isinstance(target, IdentifierNode):
                    bindings[target.name] = bindings.get(target.name, 0) + 1
        return {
            name: values[name] for name, count in bindings.items()
            if count == 1 and name in values and values[name] is not _UNRESOLVED
        }

    def _literal(self, index: int) -> Any:
        node = self._ast[index]
        if isinstance(node, LiteralNode) and node.kind in ("number", "string"):
            return node.value
        if (isinstance(node, UnaryNode) and node.op == "-"
                and isinstance(self._ast[node.operand], LiteralNode)
                and self._ast[node.operand].kind == "number"):
            return -self._ast[node.operand].value
        return _UNRESOLVED

    def _resolve(self, index: int, env: Dict[str, Any]) -> Tuple[Any, bool]:
        value = self._literal(index)
        if value is not _UNRESOLVED:
            return value, False
        node = self._ast[index]
        if isinstance(node, IdentifierNode) and node.name in env:
            return env[node.name], True
        return _UNRESOLVED, False


def parse_signature(ast: Ast, start_node_index: int = 0) -> Signature:
    return Analyzer(ast).parse_signature(start_node_index)


def trace_dependencies(ast: Ast, context: Optional[RunContext] = None) -> Dependencies:
    return Analyzer(ast).trace_dependencies(context)


def check_identifiers(ast: Ast, names: Iterable[str] = ()) -> None:
    """Raise UnboundIdentifierError for the first identifier bound nowhere in scope."""
    Analyzer(ast).check_identifiers(names)
