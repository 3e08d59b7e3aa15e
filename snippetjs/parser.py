"""
SnippetJS - Recursive Descent Parser
Converts a token stream into an arena-indexed AST.
"""

from typing import List, Optional
from .lexer import Token, TokenType
from .errors import ParseError
from .stack import call_deep
from .ast_nodes import (
    Ast, ASTNode, Param, Declarator, PropertyDef,
    ProgramNode, FunctionDeclNode, VarDeclNode, BlockNode, IfNode, ForNode,
    WhileNode, BreakNode, ContinueNode, ReturnNode, ExpressionStatementNode,
    EmptyNode, BinaryNode, LogicalNode, UnaryNode, UpdateNode, AssignmentNode,
    ConditionalNode, SequenceNode, CallNode, MemberNode, ArrayLiteralNode,
    ObjectLiteralNode, IdentifierNode, LiteralNode,
)

ASSIGNMENT_OPS = {
    "=", "+=", "-=", "*=", "/=", "%=", "**=",
    "<<=", ">>=", ">>>=", "&=", "|=", "^=",
}

# Binary precedence levels, lowest first. Each entry is (node type, operators).
_BINARY_LEVELS = [
    (LogicalNode, ("??",)),
    (LogicalNode, ("||",)),
    (LogicalNode, ("&&",)),
    (BinaryNode,  ("|",)),
    (BinaryNode,  ("^",)),
    (BinaryNode,  ("&",)),
    (BinaryNode,  ("==", "!=", "===", "!==")),
    (BinaryNode,  ("<", ">", "<=", ">=")),
    (BinaryNode,  ("<<", ">>", ">>>")),
    (BinaryNode,  ("+", "-")),
    (BinaryNode,  ("*", "/", "%")),
]

_UNARY_OPS = ("+", "-", "!", "~")
_UNARY_KEYWORDS = ("typeof", "void")
_DECL_KEYWORDS = ("var", "let", "const")


class Parser:
    def __init__(self, tokens: List[Token]):
        self._tokens = tokens
        self._pos = 0
        self._ast = Ast()

    # ------------------------------------------------------------------ helpers

    def _peek(self) -> Token:
        return self._tokens[self._pos]

    def _peek2(self) -> Optional[Token]:
        if self._pos + 1 < len(self._tokens):
            return self._tokens[self._pos + 1]
        return None

    def _advance(self) -> Token:
        tok = self._tokens[self._pos]
        if tok.type != TokenType.EOF:
            self._pos += 1
        return tok

    def _check(self, ttype: TokenType, value: Optional[str] = None) -> bool:
        tok = self._peek()
        return tok.type == ttype and (value is None or tok.value == value)

    def _punct(self, value: str) -> bool:
        return self._check(TokenType.PUNCTUATION, value)

    def _op(self, *values: str) -> bool:
        tok = self._peek()
        return tok.type == TokenType.OPERATOR and tok.value in values

    def _keyword(self, *values: str) -> bool:
        tok = self._peek()
        return tok.type == TokenType.KEYWORD and tok.value in values

    def _expect(self, ttype: TokenType, value: Optional[str] = None) -> Token:
        tok = self._peek()
        if not self._check(ttype, value):
            wanted = repr(value) if value is not None else ttype.name
            if tok.type == TokenType.EOF:
                raise ParseError(f"Expected {wanted} but reached end of input", tok.line)
            raise ParseError(f"Expected {wanted} but got unexpected token {tok.value!r}", tok.line)
        return self._advance()

    def _unexpected(self, tok: Token):
        if tok.type == TokenType.EOF:
            raise ParseError("Unexpected end of input", tok.line)
        raise ParseError(f"Unexpected token {tok.type.name} ({tok.value!r})", tok.line)

    def _node(self, node: ASTNode, line: int) -> int:
        node.line = line
        return self._ast.add(node)

    def _consume_semicolon(self):
        # statement terminators are optional
        if self._punct(";"):
            self._advance()

    # ------------------------------------------------------------------ public

    def parse(self) -> Ast:
        body = []
        while not self._check(TokenType.EOF):
            body.append(self._parse_statement())
        self._ast.root = self._node(ProgramNode(body=body), 1)
        return self._ast

    # ------------------------------------------------------------------ statements

    def _parse_statement(self) -> int:
        tok = self._peek()

        if tok.type == TokenType.KEYWORD:
            if tok.value == "function":
                return self._parse_function()
            if tok.value in _DECL_KEYWORDS:
                node = self._parse_var_decl()
                self._consume_semicolon()
                return node
            if tok.value == "if":
                return self._parse_if()
            if tok.value == "for":
                return self._parse_for()
            if tok.value == "while":
                return self._parse_while()
            if tok.value == "break":
                self._advance()
                self._consume_semicolon()
                return self._node(BreakNode(), tok.line)
            if tok.value == "continue":
                self._advance()
                self._consume_semicolon()
                return self._node(ContinueNode(), tok.line)
            if tok.value == "return":
                return self._parse_return()

        if tok.type == TokenType.PUNCTUATION:
            if tok.value == "{":
                return self._parse_block()
            if tok.value == ";":
                self._advance()
                return self._node(EmptyNode(), tok.line)

        expr = self._parse_expression()
        self._consume_semicolon()
        return self._node(ExpressionStatementNode(expression=expr), tok.line)

    def _parse_function(self) -> int:
        fn_tok = self._advance()  # consume 'function'
        name_tok = self._expect(TokenType.IDENTIFIER)
        self._expect(TokenType.PUNCTUATION, "(")
        params: List[Param] = []
        if not self._punct(")"):
            while True:
                p_tok = self._expect(TokenType.IDENTIFIER)
                default = None
                if self._op("="):
                    self._advance()
                    default = self._parse_assignment()
                params.append(Param(name=p_tok.value, default=default))
                if not self._punct(","):
                    break
                self._advance()
        self._expect(TokenType.PUNCTUATION, ")")
        body = self._parse_block()
        return self._node(FunctionDeclNode(name=name_tok.value, params=params, body=body), fn_tok.line)

    def _parse_var_decl(self) -> int:
        kw_tok = self._advance()  # var / let / const
        decls: List[Declarator] = []
        while True:
            name_tok = self._expect(TokenType.IDENTIFIER)
            init = None
            if self._op("="):
                self._advance()
                init = self._parse_assignment()
            decls.append(Declarator(name=name_tok.value, init=init))
            if not self._punct(","):
                break
            self._advance()
        return self._node(VarDeclNode(kind=kw_tok.value, declarations=decls), kw_tok.line)

    def _parse_block(self) -> int:
        open_tok = self._expect(TokenType.PUNCTUATION, "{")
        body = []
        while not self._punct("}"):
            if self._check(TokenType.EOF):
                raise ParseError("Unterminated block: expected '}'", open_tok.line)
            body.append(self._parse_statement())
        self._advance()
        return self._node(BlockNode(body=body), open_tok.line)

    def _parse_paren_expression(self) -> int:
        self._expect(TokenType.PUNCTUATION, "(")
        expr = self._parse_expression()
        self._expect(TokenType.PUNCTUATION, ")")
        return expr

    def _parse_if(self) -> int:
        if_tok = self._advance()
        test = self._parse_paren_expression()
        consequent = self._parse_statement()
        alternate = None
        if self._keyword("else"):
            self._advance()
            alternate = self._parse_statement()  # 'else if' is an IfNode here
        return self._node(IfNode(test=test, consequent=consequent, alternate=alternate), if_tok.line)

    def _parse_for(self) -> int:
        for_tok = self._advance()
        self._expect(TokenType.PUNCTUATION, "(")

        init = None
        if not self._punct(";"):
            if self._keyword(*_DECL_KEYWORDS):
                init = self._parse_var_decl()
            else:
                init = self._parse_expression()
        self._expect(TokenType.PUNCTUATION, ";")

        test = None if self._punct(";") else self._parse_expression()
        self._expect(TokenType.PUNCTUATION, ";")

        update = None if self._punct(")") else self._parse_expression()
        self._expect(TokenType.PUNCTUATION, ")")

        body = self._parse_statement()
        return self._node(ForNode(init=init, test=test, update=update, body=body), for_tok.line)

    def _parse_while(self) -> int:
        while_tok = self._advance()
        test = self._parse_paren_expression()
        body = self._parse_statement()
        return self._node(WhileNode(test=test, body=body), while_tok.line)

    def _parse_return(self) -> int:
        ret_tok = self._advance()
        argument = None
        if not (self._punct(";") or self._punct("}") or self._check(TokenType.EOF)):
            argument = self._parse_expression()
        self._consume_semicolon()
        return self._node(ReturnNode(argument=argument), ret_tok.line)

    # ------------------------------------------------------------------ expressions

    def _parse_expression(self) -> int:
        first_tok = self._peek()
        expr = self._parse_assignment()
        if not self._punct(","):
            return expr
        exprs = [expr]
        while self._punct(","):
            self._advance()
            exprs.append(self._parse_assignment())
        return self._node(SequenceNode(expressions=exprs), first_tok.line)

    def _parse_assignment(self) -> int:
        target = self._parse_conditional()
        tok = self._peek()
        if tok.type == TokenType.OPERATOR and tok.value in ASSIGNMENT_OPS:
            if not isinstance(self._ast[target], (IdentifierNode, MemberNode)):
                raise ParseError("Invalid assignment target", tok.line)
            self._advance()
            value = self._parse_assignment()  # right-associative
            return self._node(AssignmentNode(op=tok.value, target=target, value=value), tok.line)
        return target

    def _parse_conditional(self) -> int:
        test = self._parse_binary(0)
        if not self._op("?"):
            return test
        q_tok = self._advance()
        consequent = self._parse_assignment()
        self._expect(TokenType.PUNCTUATION, ":")
        alternate = self._parse_assignment()
        return self._node(ConditionalNode(test=test, consequent=consequent, alternate=alternate), q_tok.line)

    def _parse_binary(self, level: int) -> int:
        if level == len(_BINARY_LEVELS):
            return self._parse_exponent()
        node_type, ops = _BINARY_LEVELS[level]
        left = self._parse_binary(level + 1)
        while self._op(*ops):
            op_tok = self._advance()
            right = self._parse_binary(level + 1)
            left = self._node(node_type(op=op_tok.value, left=left, right=right), op_tok.line)
        return left

    def _parse_exponent(self) -> int:
        base = self._parse_unary()
        if self._op("**"):
            op_tok = self._advance()
            exponent = self._parse_exponent()  # right-associative
            return self._node(BinaryNode(op="**", left=base, right=exponent), op_tok.line)
        return base

    def _parse_unary(self) -> int:
        tok = self._peek()
        if tok.type == TokenType.OPERATOR and tok.value in ("++", "--"):
            self._advance()
            argument = self._parse_unary()
            if not isinstance(self._ast[argument], (IdentifierNode, MemberNode, UpdateNode)):
                raise ParseError(f"Invalid operand for prefix {tok.value}", tok.line)
            return self._node(UpdateNode(op=tok.value, prefix=True, argument=argument), tok.line)
        if (tok.type == TokenType.OPERATOR and tok.value in _UNARY_OPS) or \
                (tok.type == TokenType.KEYWORD and tok.value in _UNARY_KEYWORDS):
            self._advance()
            operand = self._parse_unary()
            return self._node(UnaryNode(op=tok.value, operand=operand), tok.line)
        return self._parse_postfix()

    def _parse_postfix(self) -> int:
        expr = self._parse_call_member()
        # no line break is allowed before a postfix operator
        if self._op("++", "--") and self._peek().line == self._tokens[self._pos - 1].line:
            op_tok = self._advance()
            if not isinstance(self._ast[expr], (IdentifierNode, MemberNode)):
                raise ParseError(f"Invalid operand for postfix {op_tok.value}", op_tok.line)
            return self._node(UpdateNode(op=op_tok.value, prefix=False, argument=expr), op_tok.line)
        return expr

    def _parse_call_member(self) -> int:
        expr = self._parse_primary()
        while True:
            tok = self._peek()
            if self._punct("."):
                self._advance()
                name_tok = self._peek()
                if name_tok.type not in (TokenType.IDENTIFIER, TokenType.KEYWORD):
                    self._unexpected(name_tok)
                self._advance()
                expr = self._node(MemberNode(object=expr, name=name_tok.value), tok.line)
            elif self._punct("["):
                self._advance()
                prop = self._parse_expression()
                self._expect(TokenType.PUNCTUATION, "]")
                expr = self._node(MemberNode(object=expr, property=prop, computed=True), tok.line)
            elif self._punct("("):
                self._advance()
                args = []
                if not self._punct(")"):
                    args.append(self._parse_assignment())
                    while self._punct(","):
                        self._advance()
                        if self._punct(")"):
                            break
                        args.append(self._parse_assignment())
                self._expect(TokenType.PUNCTUATION, ")")
                expr = self._node(CallNode(callee=expr, arguments=args), tok.line)
            else:
                return expr

    def _parse_primary(self) -> int:
        tok = self._peek()

        if tok.type in (TokenType.NUMBER, TokenType.BIGINT):
            self._advance()
            return self._node(LiteralNode(kind="number", value=tok.number), tok.line)

        if tok.type == TokenType.STRING:
            self._advance()
            return self._node(LiteralNode(kind="string", value=tok.value), tok.line)

        if tok.type == TokenType.REGEX:
            self._advance()
            return self._node(LiteralNode(kind="regex", value=f"/{tok.value}/{tok.flags}"), tok.line)

        if tok.type == TokenType.IDENTIFIER:
            self._advance()
            return self._node(IdentifierNode(name=tok.value), tok.line)

        if tok.type == TokenType.KEYWORD:
            if tok.value in ("true", "false"):
                self._advance()
                return self._node(LiteralNode(kind="boolean", value=tok.value == "true"), tok.line)
            if tok.value == "null":
                self._advance()
                return self._node(LiteralNode(kind="null"), tok.line)
            if tok.value == "undefined":
                self._advance()
                return self._node(LiteralNode(kind="undefined"), tok.line)

        if tok.type == TokenType.PUNCTUATION:
            if tok.value == "(":
                return self._parse_paren_expression()
            if tok.value == "[":
                return self._parse_array()
            if tok.value == "{":
                return self._parse_object()

        self._unexpected(tok)

    def _parse_array(self) -> int:
        open_tok = self._expect(TokenType.PUNCTUATION, "[")
        elements = []
        while not self._punct("]"):
            if self._punct(","):
                # hole: dropped
                self._advance()
                continue
            elements.append(self._parse_assignment())
            if not self._punct("]"):
                self._expect(TokenType.PUNCTUATION, ",")
        self._advance()
        return self._node(ArrayLiteralNode(elements=elements), open_tok.line)

    def _parse_object(self) -> int:
        open_tok = self._expect(TokenType.PUNCTUATION, "{")
        props: List[PropertyDef] = []
        while not self._punct("}"):
            key_tok = self._peek()
            if key_tok.type in (TokenType.IDENTIFIER, TokenType.KEYWORD, TokenType.STRING):
                key = key_tok.value
            elif key_tok.type in (TokenType.NUMBER, TokenType.BIGINT):
                key = key_tok.number.to_string()
            else:
                self._unexpected(key_tok)
            self._advance()
            self._expect(TokenType.PUNCTUATION, ":")
            value = self._parse_assignment()
            props.append(PropertyDef(key=key, value=value))
            if not self._punct("}"):
                self._expect(TokenType.PUNCTUATION, ",")
        self._advance()
        return self._node(ObjectLiteralNode(properties=props), open_tok.line)


def build(tokens: List[Token]) -> Ast:
    """Parse a token list into an Ast whose `root` is the Program node."""
    parser = Parser(tokens)
    try:
        return call_deep(parser.parse)
    except RecursionError:
        raise ParseError("nesting too deep", parser._peek().line) from None
