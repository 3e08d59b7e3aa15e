"""
SnippetJS - Test Suite
Tests for Lexer, DecimalMath, Parser, Value Model, Interpreter, Analyzer,
Pipeline and CLI.
"""

import sys
import os
import io
import json
import tempfile
import unittest
from contextlib import redirect_stdout, redirect_stderr

# Allow running from project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from snippetjs.lexer import tokenize, TokenType
from snippetjs.parser import build
from snippetjs.ast_nodes import (
    ProgramNode, VarDeclNode, BinaryNode, IfNode, ReturnNode, FunctionDeclNode,
    ObjectLiteralNode, ArrayLiteralNode, UpdateNode, ExpressionStatementNode,
)
from snippetjs.decimal_math import FixedDecimal, ZERO, ONE, NAN
from snippetjs.errors import (
    LexError, ParseError, UnboundIdentifierError, RangeError,
    ResourceExhausted, ExternalCallError,
)
from snippetjs.values import (
    Heap, JSValue, JS_NULL, JS_UNDEFINED, JS_TRUE, UNDEFINED,
    to_js_string, to_display, loose_equals, strict_equals, typeof, to_host,
)
from snippetjs.meter import Meter
from snippetjs.context import RunContext, SnippetTokenExecutor
from snippetjs.analyzer import parse_signature, check_identifiers
from snippetjs.interpreter import Interpreter, interpret_with_state
from snippetjs.pipeline import (
    parse, interpret_to_string, interpret_file, signature_of, dependencies_of,
    ast_to_json, tokens_to_json,
)
from snippetjs import cli


# ═══════════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════════

def run(source: str, *args, **kwargs) -> str:
    context = kwargs.pop("context", None) or RunContext(args=list(args))
    return interpret_to_string(source.strip(), context, **kwargs)


def ret(expr: str) -> str:
    """Evaluate a single expression inside a function body."""
    return run(f"function func() {{ return {expr}; }}")


def token_types(source: str):
    return [t.type for t in tokenize(source) if t.type != TokenType.EOF]


def dec(text: str) -> FixedDecimal:
    return FixedDecimal.parse(text)


class FakeTokenExecutor:
    def __init__(self, result=None, error=None):
        self.calls = []
        self.result = result
        self.error = error

    def execute_token(self, token_id, args, meter):
        self.calls.append((token_id, args))
        if self.error is not None:
            raise self.error
        return self.result


class FakeContractCaller:
    def __init__(self, result=None):
        self.calls = []
        self.result = result

    def staticcall(self, address, signature, return_type, args):
        self.calls.append((address, signature, return_type, args))
        return self.result


# ═══════════════════════════════════════════════════════════════════════════════
# Lexer Tests
# ═══════════════════════════════════════════════════════════════════════════════

class TestLexer(unittest.TestCase):

    def test_number_integer(self):
        toks = tokenize("42")
        self.assertEqual(toks[0].type, TokenType.NUMBER)
        self.assertEqual(toks[0].value, "42")
        self.assertEqual(toks[0].number.to_string(), "42")

    def test_number_truncated_to_18_digits(self):
        toks = tokenize("1.1234567890123456789")
        self.assertEqual(toks[0].number.to_string(), "1.123456789012345678")

    def test_leading_dot_and_exponent(self):
        self.assertEqual(tokenize(".5")[0].number.to_string(), "0.5")
        self.assertEqual(tokenize("5e-2")[0].number.to_string(), "0.05")
        self.assertEqual(tokenize("3e10")[0].number.to_string(), "30000000000")

    def test_radix_literals(self):
        self.assertEqual(tokenize("0x1F")[0].number.to_string(), "31")
        self.assertEqual(tokenize("0b101")[0].number.to_string(), "5")
        self.assertEqual(tokenize("0o17")[0].number.to_string(), "15")
        self.assertEqual(tokenize("017")[0].number.to_string(), "15")

    def test_radix_literal_stops_at_foreign_char(self):
        toks = tokenize("0xFG")
        self.assertEqual(toks[0].number.to_string(), "15")
        self.assertEqual(toks[1].type, TokenType.IDENTIFIER)
        self.assertEqual(toks[1].value, "G")

    def test_bigint(self):
        toks = tokenize("12n")
        self.assertEqual(toks[0].type, TokenType.BIGINT)
        self.assertEqual(toks[0].number.to_string(), "12")

    def test_invalid_binary(self):
        with self.assertRaises(LexError) as cm:
            tokenize("0b102")
        self.assertIn("invalid binary", str(cm.exception))

    def test_invalid_octal(self):
        with self.assertRaises(LexError) as cm:
            tokenize("0o8")
        self.assertIn("invalid octal", str(cm.exception))

    def test_invalid_hex(self):
        with self.assertRaises(LexError):
            tokenize("0x")

    def test_exponent_must_be_integer(self):
        for src in ("1e", "1e5.5", "2e3n"):
            with self.assertRaises(LexError) as cm:
                tokenize(src)
            self.assertIn("exponent must be integer", str(cm.exception))

    def test_string_escapes_kept_verbatim(self):
        toks = tokenize(r"'a\'b\n'")
        self.assertEqual(toks[0].type, TokenType.STRING)
        self.assertEqual(toks[0].value, r"a\'b\n")

    def test_unterminated_string(self):
        for src in ("'abc", "'a\nb'"):
            with self.assertRaises(LexError) as cm:
                tokenize(src)
            self.assertIn("unterminated string", str(cm.exception))

    def test_non_ascii_rejected(self):
        for src in ("'é'", "// é", "var é = 1"):
            with self.assertRaises(LexError) as cm:
                tokenize(src)
            self.assertIn("unknown char", str(cm.exception))

    def test_unknown_ascii_char(self):
        with self.assertRaises(LexError):
            tokenize("a # b")

    def test_comments_ignored(self):
        types = token_types("a // one\n/* two\n */ b")
        self.assertEqual(types, [TokenType.IDENTIFIER, TokenType.IDENTIFIER])

    def test_unterminated_comment(self):
        with self.assertRaises(LexError) as cm:
            tokenize("a /* b")
        self.assertIn("unterminated comment", str(cm.exception))

    def test_maximal_munch(self):
        toks = tokenize("a >>>= b >>> c >> d > e")
        ops = [t.value for t in toks if t.type == TokenType.OPERATOR]
        self.assertEqual(ops, [">>>=", ">>>", ">>", ">"])

    def test_regex_after_operator(self):
        toks = tokenize("x = /ab+c/g")
        self.assertEqual(toks[2].type, TokenType.REGEX)
        self.assertEqual(toks[2].value, "ab+c")
        self.assertEqual(toks[2].flags, "g")

    def test_division_after_identifier(self):
        types = token_types("a / b / c")
        self.assertNotIn(TokenType.REGEX, types)

    def test_keywords(self):
        toks = tokenize("function var typeof foo")
        self.assertEqual([t.type for t in toks[:4]],
                         [TokenType.KEYWORD] * 3 + [TokenType.IDENTIFIER])

    def test_line_tracking(self):
        toks = tokenize("a\nb\n\nc")
        self.assertEqual([t.line for t in toks[:3]], [1, 2, 4])

    def test_eof_sentinel(self):
        toks = tokenize("")
        self.assertEqual(len(toks), 1)
        self.assertEqual(toks[0].type, TokenType.EOF)


# ═══════════════════════════════════════════════════════════════════════════════
# DecimalMath Tests
# ═══════════════════════════════════════════════════════════════════════════════

class TestDecimalMath(unittest.TestCase):

    def test_add_sub(self):
        self.assertEqual((dec("1.23") + dec("2.01")).to_string(), "3.24")
        self.assertEqual((dec("0.01") - dec("2")).to_string(), "-1.99")

    def test_mul_truncates(self):
        self.assertEqual((dec("0.000000000000000001") * dec("0.5")).to_string(), "0")
        self.assertEqual((dec("-1e-10") * dec("9e9")).to_string(), "-0.9")

    def test_div_truncates_toward_zero(self):
        self.assertEqual((ONE / FixedDecimal.from_int(3)).to_string(), "0.333333333333333333")
        self.assertEqual((-ONE / FixedDecimal.from_int(3)).to_string(), "-0.333333333333333333")

    def test_div_and_mod_by_zero_are_nan(self):
        self.assertTrue((ONE / ZERO).nan)
        self.assertTrue((ONE % ZERO).nan)

    def test_mod_follows_dividend_sign(self):
        self.assertEqual((FixedDecimal.from_int(-7) % FixedDecimal.from_int(3)).to_string(), "-1")
        self.assertEqual((FixedDecimal.from_int(7) % FixedDecimal.from_int(-3)).to_string(), "1")

    def test_integer_pow(self):
        two = FixedDecimal.from_int(2)
        self.assertEqual((two ** FixedDecimal.from_int(10)).to_string(), "1024")
        self.assertEqual((two ** FixedDecimal.from_int(-1)).to_string(), "0.5")
        self.assertEqual((two ** ZERO).to_string(), "1")

    def test_fractional_pow(self):
        self.assertEqual((FixedDecimal.from_int(4) ** dec("0.5")).to_string(), "2")
        self.assertTrue((FixedDecimal.from_int(-8) ** dec("0.5")).nan)

    def test_zero_to_negative_power_is_nan(self):
        self.assertTrue((ZERO ** FixedDecimal.from_int(-1)).nan)

    def test_nan_propagates(self):
        self.assertTrue((NAN + ONE).nan)
        self.assertTrue((ONE * NAN).nan)
        self.assertIsNone(NAN.compare(ONE))
        self.assertEqual(NAN.to_string(), "NaN")

    def test_negative_zero_collapses(self):
        self.assertEqual((-ZERO).to_string(), "0")
        self.assertEqual(dec("-0.0").to_string(), "0")

    def test_parse_strings(self):
        self.assertEqual(dec("  12  ").to_string(), "12")
        self.assertEqual(dec("").to_string(), "0")
        self.assertEqual(dec("0x10").to_string(), "16")
        self.assertEqual(dec("017").to_string(), "15")
        self.assertEqual(dec("-5").to_string(), "-5")
        self.assertEqual(dec("1e3").to_string(), "1000")
        self.assertTrue(dec("abc").nan)
        self.assertTrue(dec("1.2.3").nan)

    def test_from_host(self):
        self.assertEqual(FixedDecimal.from_host(1.5).to_string(), "1.5")
        self.assertEqual(FixedDecimal.from_host(True), ONE)
        self.assertEqual(FixedDecimal.from_host(-3).to_string(), "-3")

    def test_compare_and_truncate(self):
        self.assertEqual(dec("1.5").compare(dec("2")), -1)
        self.assertEqual(dec("-1.9").truncate(), -1)
        self.assertEqual(NAN.truncate(), 0)


# ═══════════════════════════════════════════════════════════════════════════════
# Parser Tests
# ═══════════════════════════════════════════════════════════════════════════════

def parse_(source: str):
    return build(tokenize(source.strip()))


class TestParser(unittest.TestCase):

    def test_program_root(self):
        ast = parse_("var a = 1;")
        self.assertIsInstance(ast.program, ProgramNode)
        self.assertIsInstance(ast[ast.program.body[0]], VarDeclNode)

    def test_precedence(self):
        ast = parse_("var a = 1 + 2 * 3;")
        decl = ast[ast.program.body[0]].declarations[0]
        add = ast[decl.init]
        self.assertIsInstance(add, BinaryNode)
        self.assertEqual(add.op, "+")
        self.assertEqual(ast[add.right].op, "*")

    def test_exponent_right_associative(self):
        ast = parse_("2 ** 3 ** 2")
        expr = ast[ast[ast.program.body[0]].expression]
        self.assertEqual(expr.op, "**")
        self.assertIsInstance(ast[expr.right], BinaryNode)

    def test_multiple_declarators(self):
        ast = parse_("let a = 1, b, c = 3;")
        decl = ast[ast.program.body[0]]
        self.assertEqual(decl.kind, "let")
        self.assertEqual([d.name for d in decl.declarations], ["a", "b", "c"])
        self.assertIsNone(decl.declarations[1].init)

    def test_optional_semicolons(self):
        ast = parse_("var c = [1]; c[0] = 2 return c[0];")
        self.assertEqual(len(ast.program.body), 3)
        self.assertIsInstance(ast[ast.program.body[2]], ReturnNode)

    def test_else_if_nests(self):
        ast = parse_("if (a) b; else if (c) d; else e;")
        outer = ast[ast.program.body[0]]
        self.assertIsInstance(ast[outer.alternate], IfNode)

    def test_function_defaults(self):
        ast = parse_("function func(a, b = 2) { return a; }")
        fn = ast[ast.program.body[0]]
        self.assertIsInstance(fn, FunctionDeclNode)
        self.assertEqual([p.name for p in fn.params], ["a", "b"])
        self.assertIsNone(fn.params[0].default)
        self.assertIsNotNone(fn.params[1].default)

    def test_bare_return(self):
        ast = parse_("function f() { return }")
        body = ast[ast[ast.program.body[0]].body]
        self.assertIsNone(ast[body.body[0]].argument)

    def test_array_holes_dropped(self):
        ast = parse_("[1,,2,]")
        arr = ast[ast[ast.program.body[0]].expression]
        self.assertIsInstance(arr, ArrayLiteralNode)
        self.assertEqual(len(arr.elements), 2)

    def test_object_keys(self):
        ast = parse_("x = {int: 1, 'a': 2, 3: 4, if: 5}")
        assign = ast[ast[ast.program.body[0]].expression]
        obj = ast[assign.value]
        self.assertIsInstance(obj, ObjectLiteralNode)
        self.assertEqual([p.key for p in obj.properties], ["int", "a", "3", "if"])

    def test_prefix_update_of_update(self):
        ast = parse_("++++c")
        outer = ast[ast[ast.program.body[0]].expression]
        self.assertIsInstance(outer, UpdateNode)
        self.assertIsInstance(ast[outer.argument], UpdateNode)

    def test_postfix_needs_assignable_operand(self):
        for src in ("1++ x", "(a + b)--", "f()++"):
            with self.assertRaises(ParseError) as cm:
                parse_(src)
            self.assertIn("Invalid operand for postfix", str(cm.exception))

    def test_postfix_not_across_line_break(self):
        ast = parse_("a\n++b")
        self.assertEqual(len(ast.program.body), 2)
        second = ast[ast[ast.program.body[1]].expression]
        self.assertIsInstance(second, UpdateNode)
        self.assertTrue(second.prefix)

    def test_deep_nesting_parses(self):
        depth = 60
        ast = parse_("(" * depth + "1" + ")" * depth)
        self.assertEqual(len(ast.program.body), 1)
        ast = parse_("[" * depth + "1" + "]" * depth)
        self.assertIsInstance(ast[ast[ast.program.body[0]].expression], ArrayLiteralNode)

    def test_runaway_nesting_is_parse_error(self):
        depth = 20_000
        with self.assertRaises(ParseError) as cm:
            parse_("(" * depth + "1" + ")" * depth)
        self.assertIn("nesting too deep", str(cm.exception))

    def test_children_in_source_order(self):
        ast = parse_("a + b")
        stmt = ast.program.body[0]
        self.assertIsInstance(ast[stmt], ExpressionStatementNode)
        binary = ast[stmt].expression
        left, right = ast.children(binary)
        self.assertEqual((ast[left].name, ast[right].name), ("a", "b"))

    def test_parse_errors(self):
        for src in ("var = 1;", "function f( {", "{ var a = 1;", "1 = 2", "a +", "(1"):
            with self.assertRaises(ParseError, msg=src):
                parse_(src)

    def test_lex_error_propagates(self):
        with self.assertRaises(LexError):
            parse("var a = 'open")


# ═══════════════════════════════════════════════════════════════════════════════
# Value Model Tests
# ═══════════════════════════════════════════════════════════════════════════════

class TestValues(unittest.TestCase):

    def setUp(self):
        self.heap = Heap()

    def test_duplicate_keys_keep_last_value_first_position(self):
        obj = self.heap.new_object([("int", JSValue.number(1)), ("b", JS_TRUE),
                                    ("int", JSValue.number(99))])
        self.assertEqual([p.key for p in self.heap.properties(obj)], ["int", "b"])
        self.assertEqual(to_display(obj, self.heap), '{"int":99,"b":true}')

    def test_index_out_of_range(self):
        arr = self.heap.new_array([JSValue.number(0)])
        for index in (1, -1, None):
            with self.assertRaises(RangeError):
                self.heap.get_index(arr, index)
            with self.assertRaises(RangeError):
                self.heap.set_index(arr, index, JS_NULL)

    def test_aliasing(self):
        inner = self.heap.new_array([JSValue.number(1)])
        outer = self.heap.new_array([inner])
        self.heap.set_index(inner, 0, JSValue.number(9))
        nested = self.heap.get_index(outer, 0)
        self.assertEqual(to_display(self.heap.get_index(nested, 0), self.heap), "9")

    def test_array_to_string(self):
        arr = self.heap.new_array([JSValue.number(1), JS_NULL, JSValue.string("a")])
        self.assertEqual(to_js_string(arr, self.heap), "1,,a")

    def test_display_quotes_nested_strings(self):
        arr = self.heap.new_array([JSValue.string("a"), JS_UNDEFINED])
        self.assertEqual(to_display(arr, self.heap), '["a",undefined]')
        self.assertEqual(to_display(JSValue.string("a"), self.heap), "a")

    def test_equality(self):
        one, one_str = JSValue.number(1), JSValue.string("1")
        self.assertTrue(loose_equals(one, one_str, self.heap))
        self.assertFalse(strict_equals(one, one_str))
        self.assertTrue(loose_equals(JS_NULL, JS_UNDEFINED, self.heap))
        self.assertFalse(loose_equals(JS_NULL, JSValue.number(0), self.heap))
        self.assertTrue(loose_equals(JS_TRUE, one, self.heap))
        nan = JSValue.number(NAN)
        self.assertFalse(strict_equals(nan, nan))

    def test_typeof(self):
        self.assertEqual(typeof(JS_NULL), "object")
        self.assertEqual(typeof(self.heap.new_array()), "object")
        self.assertEqual(typeof(JS_UNDEFINED), "undefined")
        self.assertEqual(typeof(JSValue.string("")), "string")

    def test_to_host_preserves_cycles(self):
        arr = self.heap.new_array()
        self.heap.push(arr, [arr])
        host = to_host(arr, self.heap)
        self.assertIs(host[0], host)
        self.assertEqual(to_display(arr, self.heap), "[[Circular]]")

    def test_to_host_undefined(self):
        self.assertIs(to_host(JS_UNDEFINED, self.heap), UNDEFINED)
        self.assertIsNone(to_host(JS_NULL, self.heap))

    def test_allocation_is_metered(self):
        heap = Heap(Meter(3))
        with self.assertRaises(ResourceExhausted):
            heap.new_array([JS_NULL, JS_NULL, JS_NULL])


# ═══════════════════════════════════════════════════════════════════════════════
# Interpreter Tests
# ═══════════════════════════════════════════════════════════════════════════════

class TestInterpreterOperators(unittest.TestCase):

    def test_addition(self):
        self.assertEqual(ret("18446744073709551614 + 1"), "18446744073709551615")
        self.assertEqual(ret("(-1e-10) + 9e9"), "8999999999.9999999999")
        self.assertEqual(ret("1.123456789012345678 + 1.0000000000000000001"), "2.123456789012345678")

    def test_string_concatenation(self):
        self.assertEqual(ret("'a' + 2"), "a2")
        self.assertEqual(ret("2 + 'a'"), "2a")
        self.assertEqual(ret("'str1' + true"), "str1true")
        self.assertEqual(ret("'str1' + [1,2]"), "str11,2")
        self.assertEqual(ret("'-1' + (-2)"), "-1-2")

    def test_nan_results(self):
        for expr in ("'s' - 2", "'s' * 2", "'s' / 2", "'s' % 2", "'s' + {int:1}",
                     "0e-0 / (-0e0)", "5 % 0"):
            self.assertEqual(ret(expr), "NaN", msg=expr)

    def test_numeric_strings_coerce(self):
        self.assertEqual(ret("'123' - '-23'"), "146")
        self.assertEqual(ret("'123' - true"), "122")
        self.assertEqual(ret("false - '123'"), "-123")
        self.assertEqual(ret("'0x10' * 1"), "16")

    def test_division_and_remainder(self):
        self.assertEqual(ret("3e10 / 4e11"), "0.075")
        self.assertEqual(ret("(-1e-10) % 9e9"), "-0.0000000001")

    def test_exponent(self):
        self.assertEqual(ret("2 ** 3 ** 2"), "512")
        self.assertEqual(ret("5 ** null"), "1")

    def test_bitwise(self):
        self.assertEqual(ret("5 & 3"), "1")
        self.assertEqual(ret("5 | 3"), "7")
        self.assertEqual(ret("5 ^ 3"), "6")
        self.assertEqual(ret("~5"), "-6")
        self.assertEqual(ret("1 << 31"), "-2147483648")
        self.assertEqual(ret("-8 >> 1"), "-4")
        self.assertEqual(ret("'a' | 0"), "0")

    def test_unsigned_shift_is_64_bit(self):
        self.assertEqual(ret("-1 >>> 1"), "9223372036854775807")

    def test_comparisons(self):
        self.assertEqual(ret("'b' > 'a'"), "true")
        self.assertEqual(ret("'10' < '9'"), "true")
        self.assertEqual(ret("'10' < 9"), "false")
        self.assertEqual(ret("1 < 'x'"), "false")

    def test_equality(self):
        self.assertEqual(ret("1 == '1'"), "true")
        self.assertEqual(ret("1 === '1'"), "false")
        self.assertEqual(ret("null == undefined"), "true")
        self.assertEqual(ret("[1] === [1]"), "false")

    def test_logical_operators_return_operands(self):
        self.assertEqual(ret("0 || 'x'"), "x")
        self.assertEqual(ret("1 && 2"), "2")
        self.assertEqual(ret("null ?? 5"), "5")
        self.assertEqual(ret("!''"), "true")
        self.assertEqual(ret("1 ? 'y' : 'n'"), "y")

    def test_typeof_and_void(self):
        self.assertEqual(ret("typeof null"), "object")
        self.assertEqual(ret("typeof [1]"), "object")
        self.assertEqual(ret("typeof 'a'"), "string")
        self.assertEqual(ret("typeof undefined"), "undefined")
        self.assertEqual(ret("void 1"), "undefined")

    def test_regex_literal_is_string(self):
        self.assertEqual(ret("/ab+c/g"), "/ab+c/g")

    def test_sequence(self):
        self.assertEqual(ret("(1, 2, 3)"), "3")


class TestInterpreterStatements(unittest.TestCase):

    def test_precision_truncated(self):
        self.assertEqual(ret("1.1234567890123456789"), "1.123456789012345678")

    def test_array_aliasing(self):
        src = "function func() { var v = [1]; var a = [v]; v[0] = 9; return a[0][0]; }"
        self.assertEqual(run(src), "9")

    def test_array_out_of_range(self):
        for body in ("var arr = [0]; return arr[1];",
                     "var arr = [0]; return arr[-1];",
                     "var arr = [0]; arr[1] = 2;",
                     "var arr = [0]; arr[-1] = 2;",
                     "var arr = [0]; return arr[0.5];"):
            with self.assertRaises(RangeError, msg=body) as cm:
                run(f"function func() {{ {body} }}")
            self.assertIn("out of range", str(cm.exception))

    def test_array_push_and_length(self):
        src = "function func() { var a = []; var n = a.push(1, 2); return n + ':' + a.length; }"
        self.assertEqual(run(src), "2:2")

    def test_array_assign_without_semicolon(self):
        self.assertEqual(run("function func() { var c = [1]; c[0] = [2,3] return c[0]; }"), "[2,3]")

    def test_string_length_and_index(self):
        self.assertEqual(ret("'abc'.length"), "3")
        self.assertEqual(ret("'abc'[1]"), "b")

    def test_object_duplicate_keys(self):
        self.assertEqual(ret("{int:1,int:99}"), '{"int":99}')

    def test_object_members(self):
        src = "function func() { var o = {a: 1}; o.b = 2; o['a'] = 3; return o; }"
        self.assertEqual(run(src), '{"a":3,"b":2}')
        self.assertEqual(ret("{a: 1}.missing"), "undefined")

    def test_recursion(self):
        src = """
        function func(count = 0, res = '') {
            if (count > 3) return res;
            return func(count + 1, res + count);
        }"""
        self.assertEqual(run(src), "0123")

    def test_recursion_with_update_arguments(self):
        src = """
        function func(count = 0, res = '') {
            if (count > 3) return res;
            res+=count;
            return func(++count,res);
        }"""
        self.assertEqual(run(src), "0123")

    def test_default_sees_earlier_param(self):
        self.assertEqual(run("function f(a, b = a * 2) { return b; }", 4), "8")
        self.assertEqual(run("function f(a, b = a * 2) { return b; }", 4, 1), "1")

    def test_update_operators(self):
        self.assertEqual(run("function func() { var c = [1]; ++++c[0]; return c[0]; }"), "3")
        self.assertEqual(run("function func() { var c = -1; ++++c; return c; }"), "1")
        self.assertEqual(run("function func() { var c = 1; ----c; return c; }"), "-1")
        self.assertEqual(run("function func() { var c = 5; var d = c++; return d + ',' + c; }"), "5,6")

    def test_compound_assignment(self):
        self.assertEqual(run("function func() { var a = 10; a -= 3; a *= 2; a **= 2; return a; }"), "196")

    def test_for_break_continue(self):
        src = """
        function func() {
            var s = 0;
            for (var i = 0; i < 10; i++) {
                if (i == 5) break;
                if (i % 2 == 0) continue;
                s += i;
            }
            return s;
        }"""
        self.assertEqual(run(src), "4")

    def test_while(self):
        self.assertEqual(run("function func() { var i = 0; while (i < 3) { i++; } return i; }"), "3")

    def test_script_mode(self):
        self.assertEqual(run("var a = 2; return a * 3;"), "6")

    def test_start_node_index(self):
        src = "function a() { return 1; } function b() { return 2; }"
        self.assertEqual(run(src, context=RunContext(start_node_index=1)), "2")

    def test_injected_identifiers(self):
        ctx = RunContext(identifiers=[("tokenAttributes", {"name": "x"})])
        self.assertEqual(run("function f() { return tokenAttributes.name; }", context=ctx), "x")

    def test_undefined_identifier(self):
        for body in ("return truefalse;", "return 0xFG;"):
            with self.assertRaises(UnboundIdentifierError) as cm:
                run(f"function func() {{ {body} }}")
            self.assertIn("undefined identifier", str(cm.exception))

    def test_deterministic(self):
        src = "function f(n) { var a = []; for (var i = 0; i < n; i++) a.push(i / 7); return a; }"
        self.assertEqual(run(src, 5), run(src, 5))

    def test_interpret_with_state_returns_value(self):
        value = interpret_with_state(parse("function f(a) { return a + 1; }"), RunContext(args=[1]))
        self.assertEqual(value, JSValue.number(2))


class TestInterpreterLimits(unittest.TestCase):

    def test_gas_exhausted(self):
        with self.assertRaises(ResourceExhausted):
            run("function f() { while (true) {} }", gas_limit=1000)

    def test_deep_recursion_is_resource_exhausted(self):
        with self.assertRaises(ResourceExhausted):
            run("function f(n) { return f(n + 1); }", 0)

    def test_runaway_recursion_stops_on_gas(self):
        interp = Interpreter(parse("function f(n) { return f(n + 1); }"), gas_limit=20_000)
        with self.assertRaises(ResourceExhausted) as cm:
            interp.run(RunContext(args=[0]))
        self.assertIn("gas limit", str(cm.exception))
        self.assertGreater(interp.meter.used, interp.meter.limit)

    def test_finite_recursion_within_budget(self):
        src = "function f(n){ if(n==0){return 0;} return 1+f(n-1);}"
        self.assertEqual(run(src, 200), "200")
        self.assertEqual(run(src, 2000), "2000")

    def test_deep_nesting_evaluates(self):
        depth = 60
        self.assertEqual(ret("(" * depth + "1" + ")" * depth), "1")
        self.assertEqual(ret("[" * depth + "1" + "]" * depth), "[" * depth + "1" + "]" * depth)

    def test_gas_is_counted(self):
        interp = Interpreter(parse("function f() { return 1 + 2; }"))
        interp.run()
        self.assertGreater(interp.meter.used, 0)


class TestInterpreterCollaborators(unittest.TestCase):

    def test_execute_token_without_executor(self):
        with self.assertRaises(ExternalCallError):
            run("function f() { return executeToken(1); }")

    def test_execute_token_passes_host_values(self):
        executor = FakeTokenExecutor(result=[1, "x"])
        out = run("function f() { return executeToken(7, 1, 'a'); }", token_executor=executor)
        self.assertEqual(out, '[1,"x"]')
        token_id, args = executor.calls[0]
        self.assertEqual(token_id, 7)
        self.assertEqual(args, [FixedDecimal.from_int(1), "a"])

    def test_collaborator_failure(self):
        executor = FakeTokenExecutor(error=ValueError("boom"))
        with self.assertRaises(ExternalCallError) as cm:
            run("function f() { return executeToken(7); }", token_executor=executor)
        self.assertIn("boom", str(cm.exception))

    def test_snippet_token_executor(self):
        executor = SnippetTokenExecutor({5: "function t(x) { return x * 2; }"})
        out = run("function f() { return executeToken(5, 21); }", token_executor=executor)
        self.assertEqual(out, "42")

    def test_nested_tokens_share_the_meter(self):
        executor = SnippetTokenExecutor({5: "function t() { while (true) {} }"})
        with self.assertRaises(ResourceExhausted):
            run("function f() { return executeToken(5); }", token_executor=executor, gas_limit=5000)

    def test_unregistered_token(self):
        with self.assertRaises(ExternalCallError):
            run("function f() { return executeToken(3); }", token_executor=SnippetTokenExecutor())

    def test_staticcall_contract(self):
        caller = FakeContractCaller(result=7)
        src = """
        function f() {
            return staticcallContract('0xabc', 'get(uint256)', {type: 'uint256'}, 5);
        }"""
        self.assertEqual(run(src, contract_caller=caller), "7")
        self.assertEqual(caller.calls[0],
                         ("0xabc", "get(uint256)", {"type": "uint256"}, [FixedDecimal.from_int(5)]))

    def test_staticcall_without_caller(self):
        with self.assertRaises(ExternalCallError):
            run("function f() { return staticcallContract('0x1', 'f()', undefined); }")


# ═══════════════════════════════════════════════════════════════════════════════
# Analyzer Tests
# ═══════════════════════════════════════════════════════════════════════════════

class TestAnalyzer(unittest.TestCase):

    def test_signature(self):
        self.assertEqual(signature_of("function func() {}").args, [])
        sig = signature_of("function func(arg1, arg2) {}")
        self.assertEqual(sig.name, "func")
        self.assertEqual(sig.args, ["arg1", "arg2"])
        self.assertEqual(signature_of("function func(arg1=1, arg2=2) {}").args, ["arg1", "arg2"])

    def test_signature_without_function(self):
        with self.assertRaises(ParseError):
            parse_signature(parse("var a = 1;"))

    def test_no_dependencies(self):
        deps = dependencies_of("function func() {}")
        self.assertEqual((deps.contract_dependees, deps.exe_token_dependees), ([], []))

    def test_token_dependencies(self):
        deps = dependencies_of("function func() { executeToken(10); executeToken(99, 2); }")
        self.assertEqual(deps.exe_token_dependees, [10, 99])
        self.assertEqual(deps.contract_dependees, [])

    def test_contract_dependencies(self):
        src = """
        function snippetJS(code="function run() { return 'SnippetJS'; }") {
            var a = staticcallContract('0x4ed7c70F96B99c776995fB64377f0d4aB3B0e1C1',
                'interpretToString(string)', { type: "string" }, code);
            var b = staticcallContract('0x322813Fd9A801c5507c9de605d63CEA4f2CE6c44',
                'interpretToString(string)', { type: "string" }, code);
        }"""
        deps = dependencies_of(src)
        self.assertEqual(deps.contract_dependees, [
            "0x4ed7c70F96B99c776995fB64377f0d4aB3B0e1C1",
            "0x322813Fd9A801c5507c9de605d63CEA4f2CE6c44",
        ])

    def test_literal_sites_come_before_resolved_ones(self):
        src = """
        function func() {
            var tokenId = 1;
            executeToken(tokenId);
            executeToken(0);
            var addr = '0x4ed7c70F96B99c776995fB64377f0d4aB3B0e1C1';
            staticcallContract(addr, 'interpretToString(string)', { type: "string" }, '');
            staticcallContract('0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0', 'returnToken()', undefined);
        }"""
        deps = dependencies_of(src)
        self.assertEqual(deps.exe_token_dependees, [0, 1])
        self.assertEqual(deps.contract_dependees, [
            "0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0",
            "0x4ed7c70F96B99c776995fB64377f0d4aB3B0e1C1",
        ])

    def test_duplicates_removed(self):
        src = "function func() { var tokenId = 1; executeToken(tokenId); executeToken(1); }"
        self.assertEqual(dependencies_of(src).exe_token_dependees, [1])

    def test_parameter_resolved_from_context(self):
        deps = dependencies_of("function f(id) { executeToken(id); }", RunContext(args=[42]))
        self.assertEqual(deps.exe_token_dependees, [42])

    def test_unresolvable_site_skipped(self):
        src = "function f() { executeToken(g()); } function g() { return 1; }"
        self.assertEqual(dependencies_of(src).exe_token_dependees, [])

    def test_reassigned_variable_is_not_resolved(self):
        src = "function f() { var t = 1; t = 2; executeToken(t); }"
        self.assertEqual(dependencies_of(src).exe_token_dependees, [])

    def test_check_identifiers(self):
        check_identifiers(parse("function f(a) { var b = a; return g(b); } function g(x) { return x; }"))
        with self.assertRaises(UnboundIdentifierError):
            check_identifiers(parse("function f() { return nope; }"))
        check_identifiers(parse("function f() { return injected; }"), ["injected"])

    def test_params_are_not_visible_in_other_functions(self):
        with self.assertRaises(UnboundIdentifierError):
            check_identifiers(parse("function f(a) { return 1; } function g() { return a; }"))


# ═══════════════════════════════════════════════════════════════════════════════
# Pipeline Tests
# ═══════════════════════════════════════════════════════════════════════════════

class TestPipeline(unittest.TestCase):

    def test_ast_json(self):
        parsed = json.loads(ast_to_json(parse("var a = 1.5;")))
        root = parsed["nodes"][parsed["root"]]
        self.assertEqual(root["_type"], "ProgramNode")
        literal = [n for n in parsed["nodes"] if n["_type"] == "LiteralNode"][0]
        self.assertEqual(literal["value"], "1.5")

    def test_tokens_json(self):
        parsed = json.loads(tokens_to_json(tokenize("a + 1")))
        self.assertEqual([t["type"] for t in parsed], ["IDENTIFIER", "OPERATOR", "NUMBER", "EOF"])

    def test_interpret_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "snippet.js")
            with open(path, "w", encoding="utf-8") as f:
                f.write("function f(a) { return a + 1; }")
            self.assertEqual(interpret_file(path, RunContext(args=[41])), "42")

    def test_phases_logged_at_debug(self):
        with self.assertLogs("snippetjs.pipeline", level="DEBUG") as cm:
            interpret_to_string("function f() { return 1; }")
        self.assertTrue(any("Phase 1" in line for line in cm.output))


# ═══════════════════════════════════════════════════════════════════════════════
# CLI Tests
# ═══════════════════════════════════════════════════════════════════════════════

class TestCli(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = self._tmp.name

    def tearDown(self):
        self._tmp.cleanup()

    def _write(self, name, text):
        path = os.path.join(self.tmp, name)
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        return path

    def _main(self, *argv):
        out = io.StringIO()
        with redirect_stdout(out):
            cli.main(list(argv))
        return out.getvalue().strip()

    def test_run_with_args(self):
        path = self._write("a.js", "function f(a, b) { return a * b; }")
        self.assertEqual(self._main(path, "--arg", "6", "--arg", "7"), "42")

    def test_context_file(self):
        path = self._write("a.js", "function f() { return attrs.level; }")
        ctx = self._write("ctx.json", json.dumps({"identifiers": [["attrs", {"level": 3}]]}))
        self.assertEqual(self._main(path, "--context", ctx), "3")

    def test_token_registration(self):
        token = self._write("t.js", "function t(x) { return x + 1; }")
        path = self._write("a.js", "function f() { return executeToken(4, 1); }")
        self.assertEqual(self._main(path, "--token", f"4={token}"), "2")

    def test_signature_and_trace(self):
        path = self._write("a.js", "function func(a1) { executeToken(10); }")
        self.assertEqual(json.loads(self._main(path, "--signature")), {"name": "func", "args": ["a1"]})
        self.assertEqual(json.loads(self._main(path, "--trace")),
                         {"contractDependees": [], "exeTokenDependees": [10]})

    def test_output_file(self):
        path = self._write("a.js", "function f() { return 'hi'; }")
        out = os.path.join(self.tmp, "out.txt")
        with redirect_stderr(io.StringIO()):
            self._main(path, "-o", out)
        with open(out, encoding="utf-8") as f:
            self.assertEqual(f.read().strip(), "hi")

    def test_error_exits_1(self):
        path = self._write("a.js", "function f() { return [0][1]; }")
        err = io.StringIO()
        with redirect_stderr(err), self.assertRaises(SystemExit) as cm:
            self._main(path)
        self.assertEqual(cm.exception.code, 1)
        self.assertIn("[RangeError]", err.getvalue())

    def test_missing_file(self):
        with redirect_stderr(io.StringIO()), self.assertRaises(SystemExit):
            self._main(os.path.join(self.tmp, "nope.js"))


if __name__ == "__main__":
    unittest.main(verbosity=2)
