"""
SnippetJS - Tree-Walking Interpreter
Evaluates an arena AST against a RunContext under a gas budget.

Statements produce a Completion(signal, value); expressions produce a JSValue.
All arrays and objects of a call live in that call's Heap and die with it.
"""

import logging
from collections import namedtuple
from enum import Enum, auto
from typing import Callable, Dict, List, Optional, Tuple

from .analyzer import Analyzer, BUILTINS, EXECUTE_TOKEN, format_address
from .ast_nodes import (
    Ast, ASTNode, FunctionDeclNode, VarDeclNode, BlockNode, IfNode, ForNode,
    WhileNode, ReturnNode, ExpressionStatementNode, BinaryNode, LogicalNode,
    UnaryNode, UpdateNode, AssignmentNode, ConditionalNode, SequenceNode,
    CallNode, MemberNode, ArrayLiteralNode, ObjectLiteralNode, IdentifierNode,
    LiteralNode,
)
from .context import RunContext, TokenExecutor, ContractCaller
from .decimal_math import FixedDecimal, NAN, ONE
from .errors import SnippetError, RangeError, ResourceExhausted, ExternalCallError
from .meter import Meter, DEFAULT_GAS_LIMIT
from .stack import call_deep
from .values import (
    JSValue, ValueType, Heap, JS_UNDEFINED, JS_NULL, JS_NAN,
    to_number, to_js_string, truthy, typeof, array_index, property_key,
    strict_equals, loose_equals, from_host, to_host,
)

logger = logging.getLogger(__name__)


class Signal(Enum):
    NORMAL   = auto()
    RETURN   = auto()
    BREAK    = auto()
    CONTINUE = auto()


Completion = namedtuple("Completion", "signal value")

NORMAL = Completion(Signal.NORMAL, JS_UNDEFINED)
BREAK = Completion(Signal.BREAK, JS_UNDEFINED)
CONTINUE = Completion(Signal.CONTINUE, JS_UNDEFINED)

_UINT32 = 1 << 32
_UINT64 = 1 << 64


def _to_int32(value: JSValue) -> int:
    n = to_number(value).truncate() % _UINT32
    return n - _UINT32 if n >= 1 << 31 else n


def _num(n) -> JSValue:
    if isinstance(n, int):
        n = FixedDecimal.from_int(n)
    return JSValue(ValueType.NUMBER, n)


# ── Binary operators ──────────────────────────────────────────────────────────

def _arith(fn: Callable[[FixedDecimal, FixedDecimal], FixedDecimal]):
    return lambda a, b, heap: _num(fn(to_number(a), to_number(b)))


def _int32_op(fn: Callable[[int, int], int]):
    def op(a, b, heap):
        return _num(_to_int32(_num(fn(_to_int32(a), _to_int32(b)))))
    return op


def _add(a: JSValue, b: JSValue, heap: Heap) -> JSValue:
    if a.type == ValueType.OBJECT or b.type == ValueType.OBJECT:
        return JS_NAN
    concat = (ValueType.STRING, ValueType.ARRAY, ValueType.BOOLEAN)
    if a.type in concat or b.type in concat:
        return JSValue.string(to_js_string(a, heap) + to_js_string(b, heap))
    return _num(to_number(a) + to_number(b))


def _unsigned_shift(a: JSValue, b: JSValue, heap: Heap) -> JSValue:
    left = to_number(a).truncate() % _UINT64
    return _num(left >> (to_number(b).truncate() & 63))


def _relational(test: Callable[[int], bool]):
    def op(a, b, heap):
        if a.type == ValueType.STRING and b.type == ValueType.STRING:
            x, y = a.payload, b.payload
            return JSValue.boolean(test((x > y) - (x < y)))
        cmp = to_number(a).compare(to_number(b))
        return JSValue.boolean(cmp is not None and test(cmp))
    return op


BINARY_OPS: Dict[str, Callable[[JSValue, JSValue, Heap], JSValue]] = {
    "+":   _add,
    "-":   _arith(lambda x, y: x - y),
    "*":   _arith(lambda x, y: x * y),
    "/":   _arith(lambda x, y: x / y),
    "%":   _arith(lambda x, y: x % y),
    "**":  _arith(lambda x, y: x ** y),
    "&":   _int32_op(lambda x, y: x & y),
    "|":   _int32_op(lambda x, y: x | y),
    "^":   _int32_op(lambda x, y: x ^ y),
    "<<":  _int32_op(lambda x, y: x << (y & 31)),
    ">>":  _int32_op(lambda x, y: x >> (y & 31)),
    ">>>": _unsigned_shift,
    "<":   _relational(lambda c: c < 0),
    ">":   _relational(lambda c: c > 0),
    "<=":  _relational(lambda c: c <= 0),
    ">=":  _relational(lambda c: c >= 0),
    "==":  lambda a, b, heap: JSValue.boolean(loose_equals(a, b, heap)),
    "!=":  lambda a, b, heap: JSValue.boolean(not loose_equals(a, b, heap)),
    "===": lambda a, b, heap: JSValue.boolean(strict_equals(a, b)),
    "!==": lambda a, b, heap: JSValue.boolean(not strict_equals(a, b)),
}


# ── Interpreter ───────────────────────────────────────────────────────────────

class Interpreter:
    def __init__(
        self,
        ast: Ast,
        gas_limit: int = DEFAULT_GAS_LIMIT,
        meter: Optional[Meter] = None,
        token_executor: Optional[TokenExecutor] = None,
        contract_caller: Optional[ContractCaller] = None,
    ):
        self.ast = ast
        self.meter = meter if meter is not None else Meter(gas_limit)
        self.heap = Heap(self.meter)
        self.token_executor = token_executor
        self.contract_caller = contract_caller

        analyzer = Analyzer(ast)
        self._analyzer = analyzer
        self._functions: Dict[str, int] = analyzer.functions()
        self._hoisted: Dict[int, List[str]] = {}
        self._globals: Dict[str, JSValue] = {}
        self._frames: List[Dict[str, JSValue]] = []

    # ------------------------------------------------------------------ entry

    def run(self, context: Optional[RunContext] = None) -> JSValue:
        return call_deep(self._run, context or RunContext())

    def _run(self, context: RunContext) -> JSValue:
        body = self.ast.program.body
        start = context.start_node_index

        try:
            self._analyzer.check_identifiers(context.identifiers.keys())
            if not body:
                return JS_UNDEFINED
            if not 0 <= start < len(body):
                raise RangeError(f"start node index {start} out of range", 1)

            for name, value in context.identifiers.items():
                self._globals[name] = from_host(value, self.heap)
            self._frames = [self._new_frame(self.ast.root)]

            entry = self.ast[body[start]]
            if isinstance(entry, FunctionDeclNode):
                args = [from_host(a, self.heap) for a in context.args]
                result = self._call_function(body[start], args, entry.line)
            else:
                result = JS_UNDEFINED
                for stmt in body[start:]:
                    completion = self._exec(stmt)
                    if completion.signal == Signal.RETURN:
                        result = completion.value
                        break
        except RecursionError:
            raise ResourceExhausted("maximum call depth exceeded") from None

        logger.debug("run finished: %s", self.meter)
        return result

    # ------------------------------------------------------------------ frames

    def _new_frame(self, index: int) -> Dict[str, JSValue]:
        if index not in self._hoisted:
            self._hoisted[index] = sorted(self._analyzer.declared_vars(index))
        return dict.fromkeys(self._hoisted[index], JS_UNDEFINED)

    def _lookup(self, name: str, line: int) -> JSValue:
        frame = self._frames[-1]
        if name in frame:
            return frame[name]
        if name in self._frames[0]:
            return self._frames[0][name]
        if name in self._globals:
            return self._globals[name]
        # function names and builtins have no value form
        return JS_UNDEFINED

    def _store(self, name: str, value: JSValue) -> None:
        frame = self._frames[-1]
        if name not in frame and name in self._frames[0]:
            frame = self._frames[0]
        frame[name] = value

    def _call_function(self, index: int, args: List[JSValue], line: int) -> JSValue:
        fn: FunctionDeclNode = self.ast[index]
        self.meter.charge(1, line)
        frame = self._new_frame(fn.body)
        self._frames.append(frame)
        try:
            for pos, param in enumerate(fn.params):
                if pos < len(args) and args[pos].type != ValueType.UNDEFINED:
                    frame[param.name] = args[pos]
                elif param.default is not None:
                    # defaults see the parameters bound before them
                    frame[param.name] = self._eval(param.default)
                else:
                    frame[param.name] = JS_UNDEFINED
            completion = self._exec(fn.body)
        finally:
            self._frames.pop()
        if completion.signal == Signal.RETURN:
            return completion.value
        return JS_UNDEFINED

    # ------------------------------------------------------------------ statements

    def _exec(self, index: int) -> Completion:
        node = self.ast[index]
        self.meter.charge(1, node.line)
        method = getattr(self, f"_exec_{type(node).__name__}", None)
        if method is None:
            self._eval_node(node)
            return NORMAL
        return method(node)

    def _exec_FunctionDeclNode(self, node: FunctionDeclNode) -> Completion:
        return NORMAL

    def _exec_EmptyNode(self, node) -> Completion:
        return NORMAL

    def _exec_VarDeclNode(self, node: VarDeclNode) -> Completion:
        for decl in node.declarations:
            if decl.init is not None:
                self._store(decl.name, self._eval(decl.init))
        return NORMAL

    def _exec_BlockNode(self, node: BlockNode) -> Completion:
        for stmt in node.body:
            completion = self._exec(stmt)
            if completion.signal != Signal.NORMAL:
                return completion
        return NORMAL

    def _exec_ExpressionStatementNode(self, node: ExpressionStatementNode) -> Completion:
        self._eval(node.expression)
        return NORMAL

    def _exec_IfNode(self, node: IfNode) -> Completion:
        if truthy(self._eval(node.test)):
            return self._exec(node.consequent)
        if node.alternate is not None:
            return self._exec(node.alternate)
        return NORMAL

    def _loop_body(self, index: int) -> Optional[Completion]:
        """Run one iteration; a Completion means the loop must stop with it."""
        completion = self._exec(index)
        if completion.signal == Signal.BREAK:
            return NORMAL
        if completion.signal == Signal.RETURN:
            return completion
        return None

    def _exec_ForNode(self, node: ForNode) -> Completion:
        if node.init is not None:
            self._exec(node.init)
        while node.test is None or truthy(self._eval(node.test)):
            stop = self._loop_body(node.body)
            if stop is not None:
                return stop
            if node.update is not None:
                self._eval(node.update)
        return NORMAL

    def _exec_WhileNode(self, node: WhileNode) -> Completion:
        while truthy(self._eval(node.test)):
            stop = self._loop_body(node.body)
            if stop is not None:
                return stop
        return NORMAL

    def _exec_BreakNode(self, node) -> Completion:
        return BREAK

    def _exec_ContinueNode(self, node) -> Completion:
        return CONTINUE

    def _exec_ReturnNode(self, node: ReturnNode) -> Completion:
        value = JS_UNDEFINED if node.argument is None else self._eval(node.argument)
        return Completion(Signal.RETURN, value)

    # ------------------------------------------------------------------ expressions

    def _eval(self, index: int) -> JSValue:
        node = self.ast[index]
        self.meter.charge(1, node.line)
        return self._eval_node(node)

    def _eval_node(self, node: ASTNode) -> JSValue:
        return getattr(self, f"_eval_{type(node).__name__}")(node)

    def _eval_LiteralNode(self, node: LiteralNode) -> JSValue:
        kind = node.kind
        if kind == "number":
            return JSValue(ValueType.NUMBER, node.value)
        if kind in ("string", "regex"):
            return JSValue.string(node.value)
        if kind == "boolean":
            return JSValue.boolean(node.value)
        if kind == "null":
            return JS_NULL
        return JS_UNDEFINED

    def _eval_IdentifierNode(self, node: IdentifierNode) -> JSValue:
        return self._lookup(node.name, node.line)

    def _eval_ArrayLiteralNode(self, node: ArrayLiteralNode) -> JSValue:
        elements = [self._eval(e) for e in node.elements]
        return self.heap.new_array(elements, node.line)

    def _eval_ObjectLiteralNode(self, node: ObjectLiteralNode) -> JSValue:
        pairs = [(p.key, self._eval(p.value)) for p in node.properties]
        return self.heap.new_object(pairs, node.line)

    def _eval_SequenceNode(self, node: SequenceNode) -> JSValue:
        value = JS_UNDEFINED
        for expr in node.expressions:
            value = self._eval(expr)
        return value

    def _eval_ConditionalNode(self, node: ConditionalNode) -> JSValue:
        if truthy(self._eval(node.test)):
            return self._eval(node.consequent)
        return self._eval(node.alternate)

    def _eval_LogicalNode(self, node: LogicalNode) -> JSValue:
        left = self._eval(node.left)
        if node.op == "&&":
            return self._eval(node.right) if truthy(left) else left
        if node.op == "||":
            return left if truthy(left) else self._eval(node.right)
        return self._eval(node.right) if left.is_nullish else left  # ??

    def _eval_BinaryNode(self, node: BinaryNode) -> JSValue:
        left = self._eval(node.left)
        right = self._eval(node.right)
        return BINARY_OPS[node.op](left, right, self.heap)

    def _eval_UnaryNode(self, node: UnaryNode) -> JSValue:
        value = self._eval(node.operand)
        op = node.op
        if op == "-":
            return _num(-to_number(value))
        if op == "+":
            return _num(to_number(value))
        if op == "!":
            return JSValue.boolean(not truthy(value))
        if op == "~":
            return _num(~_to_int32(value))
        if op == "typeof":
            return JSValue.string(typeof(value))
        return JS_UNDEFINED  # void

    # ------------------------------------------------------------------ references

    def _reference(self, index: int) -> Tuple:
        """Resolve an assignment target once: ('name', name) or ('member', obj, key)."""
        node = self.ast[index]
        if isinstance(node, IdentifierNode):
            return ("name", node.name, node.line)
        obj = self._eval(node.object)
        key = self._eval(node.property) if node.computed else JSValue.string(node.name)
        return ("member", obj, key, node.line)

    def _read(self, ref: Tuple) -> JSValue:
        if ref[0] == "name":
            return self._lookup(ref[1], ref[2])
        return self._get_member(ref[1], ref[2], ref[3])

    def _write(self, ref: Tuple, value: JSValue) -> None:
        if ref[0] == "name":
            self._store(ref[1], value)
            return
        _, obj, key, line = ref
        if obj.type == ValueType.ARRAY:
            self.heap.set_index(obj, array_index(key), value, line)
        elif obj.type == ValueType.OBJECT:
            self.heap.set_property(obj, property_key(key, self.heap), value, line)
        # writes to primitives are ignored

    def _get_member(self, obj: JSValue, key: JSValue, line: int) -> JSValue:
        if obj.type == ValueType.ARRAY:
            if key.type == ValueType.STRING:
                if key.payload == "length":
                    return _num(self.heap.length(obj))
                if not key.payload.strip() or to_number(key).nan:
                    return JS_UNDEFINED
            return self.heap.get_index(obj, array_index(key), line)
        if obj.type == ValueType.OBJECT:
            return self.heap.get_property(obj, property_key(key, self.heap))
        if obj.type == ValueType.STRING:
            text = obj.payload
            if key.type == ValueType.STRING and key.payload == "length":
                return _num(len(text))
            index = array_index(key)
            if index is not None and 0 <= index < len(text):
                return JSValue.string(text[index])
        return JS_UNDEFINED

    def _eval_MemberNode(self, node: MemberNode) -> JSValue:
        obj = self._eval(node.object)
        key = self._eval(node.property) if node.computed else JSValue.string(node.name)
        return self._get_member(obj, key, node.line)

    def _eval_AssignmentNode(self, node: AssignmentNode) -> JSValue:
        ref = self._reference(node.target)
        if node.op == "=":
            value = self._eval(node.value)
        else:
            current = self._read(ref)
            value = BINARY_OPS[node.op[:-1]](current, self._eval(node.value), self.heap)
        self._write(ref, value)
        return value

    def _eval_UpdateNode(self, node: UpdateNode) -> JSValue:
        target = node.argument
        if isinstance(self.ast[target], UpdateNode):
            # ++++c: run the inner update, then step its target again
            self._eval(target)
            while isinstance(self.ast[target], UpdateNode):
                target = self.ast[target].argument
        ref = self._reference(target)
        old = to_number(self._read(ref))
        new = old + ONE if node.op == "++" else old - ONE
        self._write(ref, _num(new))
        return _num(new if node.prefix else old)

    # ------------------------------------------------------------------ calls

    def _eval_CallNode(self, node: CallNode) -> JSValue:
        callee = self.ast[node.callee]

        if isinstance(callee, IdentifierNode):
            args = [self._eval(a) for a in node.arguments]
            name = callee.name
            if name in BUILTINS:
                return self._call_builtin(name, args, node.line)
            if name in self._functions:
                return self._call_function(self._functions[name], args, node.line)
            return JS_UNDEFINED

        if isinstance(callee, MemberNode):
            obj = self._eval(callee.object)
            key = self._eval(callee.property) if callee.computed else JSValue.string(callee.name)
            args = [self._eval(a) for a in node.arguments]
            if obj.type == ValueType.ARRAY and key.type == ValueType.STRING and key.payload == "push":
                return _num(self.heap.push(obj, args, node.line))
            return JS_UNDEFINED

        self._eval(node.callee)
        for a in node.arguments:
            self._eval(a)
        return JS_UNDEFINED

    def _call_builtin(self, name: str, args: List[JSValue], line: int) -> JSValue:
        if name == EXECUTE_TOKEN:
            if self.token_executor is None:
                raise ExternalCallError("executeToken called without a token executor", line)
            token_id = to_number(args[0]) if args else NAN
            if not token_id.is_integer:
                raise ExternalCallError("executeToken needs an integer token id", line)
            host_args = [to_host(a, self.heap) for a in args[1:]]
            call = lambda: self.token_executor.execute_token(token_id.truncate(), host_args, self.meter)
        else:
            if self.contract_caller is None:
                raise ExternalCallError("staticcallContract called without a contract caller", line)
            if len(args) < 3:
                raise ExternalCallError("staticcallContract needs address, signature and return type", line)
            address = args[0]
            if address.type == ValueType.NUMBER:
                address = format_address(address.payload)
            else:
                address = to_js_string(address, self.heap)
            signature = to_js_string(args[1], self.heap)
            return_type = to_host(args[2], self.heap)
            host_args = [to_host(a, self.heap) for a in args[3:]]
            call = lambda: self.contract_caller.staticcall(address, signature, return_type, host_args)

        logger.debug("%s on line %d", name, line)
        try:
            result = call()
        except SnippetError:
            raise
        except Exception as e:
            raise ExternalCallError(f"{name} failed: {e}", line) from e
        return from_host(result, self.heap)


def interpret_with_state(
    ast: Ast,
    context: Optional[RunContext] = None,
    *,
    gas_limit: int = DEFAULT_GAS_LIMIT,
    meter: Optional[Meter] = None,
    token_executor: Optional[TokenExecutor] = None,
    contract_caller: Optional[ContractCaller] = None,
) -> JSValue:
    """
    Run `ast` once. Array and object results are handles into a heap that is
    discarded with the call; use Interpreter directly to keep it.
    """
    interp = Interpreter(
        ast,
        gas_limit=gas_limit,
        meter=meter,
        token_executor=token_executor,
        contract_caller=contract_caller,
    )
    return interp.run(context)
