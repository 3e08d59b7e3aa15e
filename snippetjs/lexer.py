"""
SnippetJS - Lexer
Tokenizes JavaScript snippet source into a flat token stream.
"""

import re
from dataclasses import dataclass
from typing import List, Optional
from enum import Enum, auto

from .decimal_math import FixedDecimal
from .errors import LexError


class TokenType(Enum):
    KEYWORD     = auto()
    PUNCTUATION = auto()   # ( ) { } [ ] , ; : .
    OPERATOR    = auto()
    IDENTIFIER  = auto()
    NUMBER      = auto()
    BIGINT      = auto()   # 12n
    STRING      = auto()
    REGEX       = auto()
    # Sentinel
    EOF         = auto()


KEYWORDS = {
    "break", "case", "catch", "class", "const", "continue", "default",
    "delete", "do", "else", "false", "for", "function", "if", "in",
    "instanceof", "let", "new", "null", "return", "switch", "this", "throw",
    "true", "try", "typeof", "undefined", "var", "void", "while",
}

# Keywords after which a '/' begins a regex literal rather than a division.
REGEX_PREFIX_KEYWORDS = {
    "return", "typeof", "void", "case", "else", "in", "instanceof",
    "delete", "new", "do", "throw",
}

# Longest first: maximal munch relies on this ordering.
OPERATORS = sorted([
    ">>>=", "===", "!==", "**=", "<<=", ">>=", ">>>",
    "==", "!=", "<=", ">=", "&&", "||", "??", "++", "--",
    "+=", "-=", "*=", "/=", "%=", "&=", "|=", "^=", "**", "<<", ">>",
    "=", "+", "-", "*", "/", "%", "<", ">", "!", "~", "&", "|", "^", "?",
], key=len, reverse=True)

PUNCTUATION = set("(){}[],;:.")


@dataclass
class Token:
    type: TokenType
    value: str
    line: int
    start: int = 0
    end: int = 0
    number: Optional[FixedDecimal] = None
    flags: str = ""
    allow_regex_after: bool = False

    def __repr__(self):
        return f"Token({self.type.name}, {self.value!r}, line={self.line})"


_WHITESPACE = " \t\r\n\f\v"
_IDENT_RE   = re.compile(r'[A-Za-z_$][A-Za-z0-9_$]*', re.ASCII)
_DIGITS_RE  = re.compile(r'[0-9]*', re.ASCII)
_HEX_RE     = re.compile(r'[0-9a-fA-F]*', re.ASCII)
_DECIMAL_RE = re.compile(r'(\d*)(?:\.(\d*))?', re.ASCII)
_EXPONENT_RE = re.compile(r'[eE]([+-]?)(\d*)', re.ASCII)


def _allows_regex(tok: Optional[Token]) -> bool:
    if tok is None:
        return True
    if tok.type == TokenType.OPERATOR:
        return tok.value not in ("++", "--")
    if tok.type == TokenType.PUNCTUATION:
        return tok.value not in (")", "]", "}")
    if tok.type == TokenType.KEYWORD:
        return tok.value in REGEX_PREFIX_KEYWORDS
    return False


class Lexer:
    def __init__(self, source: str):
        self._src = source
        self._pos = 0
        self._line = 1
        self._tokens: List[Token] = []

    # ------------------------------------------------------------------ helpers

    def _peek(self, offset: int = 0) -> str:
        i = self._pos + offset
        return self._src[i] if i < len(self._src) else ""

    def _error(self, message: str):
        raise LexError(message, self._line)

    def _emit(self, ttype: TokenType, value: str, start: int, **extra) -> Token:
        tok = Token(ttype, value, self._line, start, self._pos, **extra)
        tok.allow_regex_after = _allows_regex(tok)
        self._tokens.append(tok)
        return tok

    def _last(self) -> Optional[Token]:
        return self._tokens[-1] if self._tokens else None

    # ------------------------------------------------------------------ public

    def tokenize(self) -> List[Token]:
        src = self._src
        while self._pos < len(src):
            ch = src[self._pos]

            if ord(ch) > 0x7F:
                self._error(f"unknown char {ch!r}")

            if ch in _WHITESPACE:
                if ch == "\n":
                    self._line += 1
                self._pos += 1
                continue

            if ch == "/" and self._peek(1) == "/":
                self._skip_line_comment()
                continue
            if ch == "/" and self._peek(1) == "*":
                self._skip_block_comment()
                continue

            if ch in ("'", '"'):
                self._read_string(ch)
            elif ch.isdigit() or (ch == "." and self._peek(1).isdigit()):
                self._read_number()
            elif _IDENT_RE.match(src, self._pos):
                self._read_word()
            elif ch == "/" and _allows_regex(self._last()):
                self._read_regex()
            elif ch in PUNCTUATION:
                start = self._pos
                self._pos += 1
                self._emit(TokenType.PUNCTUATION, ch, start)
            else:
                self._read_operator()

        self._tokens.append(Token(TokenType.EOF, "", self._line, self._pos, self._pos))
        return self._tokens

    # ------------------------------------------------------------------ scanners

    def _skip_line_comment(self):
        end = self._src.find("\n", self._pos)
        end = len(self._src) if end < 0 else end
        self._check_ascii(self._src[self._pos:end])
        self._pos = end

    def _skip_block_comment(self):
        end = self._src.find("*/", self._pos + 2)
        if end < 0:
            self._error("unterminated comment")
        body = self._src[self._pos:end + 2]
        self._check_ascii(body)
        self._line += body.count("\n")
        self._pos = end + 2

    def _check_ascii(self, text: str):
        for ch in text:
            if ord(ch) > 0x7F:
                self._error(f"unknown char {ch!r}")

    def _read_string(self, quote: str):
        start = self._pos
        self._pos += 1
        chars = []
        while True:
            ch = self._peek()
            if ch == "" or ch == "\n":
                self._error("unterminated string")
            if ord(ch) > 0x7F:
                self._error(f"unknown char {ch!r}")
            if ch == quote:
                self._pos += 1
                break
            if ch == "\\":
                nxt = self._peek(1)
                if nxt == "" or nxt == "\n":
                    self._error("unterminated string")
                if ord(nxt) > 0x7F:
                    self._error(f"unknown char {nxt!r}")
                # escapes are kept verbatim in the value
                chars.append(ch + nxt)
                self._pos += 2
                continue
            chars.append(ch)
            self._pos += 1
        self._emit(TokenType.STRING, "".join(chars), start)

    def _read_number(self):
        src = self._src
        start = self._pos
        ch, nxt = self._peek(), self._peek(1).lower()

        if ch == "0" and nxt in ("x", "o", "b"):
            self._pos += 2
            if nxt == "x":
                digits = _HEX_RE.match(src, self._pos).group(0)
                if not digits:
                    self._error("invalid hex")
                base = 16
            else:
                digits = _DIGITS_RE.match(src, self._pos).group(0)
                base = 8 if nxt == "o" else 2
                allowed = "01234567" if base == 8 else "01"
                if not digits or any(d not in allowed for d in digits):
                    self._error("invalid octal" if base == 8 else "invalid binary")
            self._pos += len(digits)
            value = FixedDecimal.from_radix(digits, base)
            self._finish_number(start, value, integral=True)
            return

        m = _DECIMAL_RE.match(src, self._pos)
        int_digits, frac_digits = m.group(1), m.group(2)
        self._pos = m.end()
        exponent = 0

        m = _EXPONENT_RE.match(src, self._pos)
        if m:
            if not m.group(2):
                self._error("exponent must be integer")
            self._pos = m.end()
            if self._peek() in (".", "n"):
                self._error("exponent must be integer")
            exponent = int(m.group(2))
            if m.group(1) == "-":
                exponent = -exponent

        if (frac_digits is None and exponent == 0 and m is None
                and len(int_digits) > 1 and int_digits[0] == "0"
                and all(d in "01234567" for d in int_digits)):
            # legacy octal literal: 017
            value = FixedDecimal.from_radix(int_digits, 8)
        else:
            value = FixedDecimal.from_literal(int_digits, frac_digits or "", exponent)
        integral = frac_digits is None and m is None
        self._finish_number(start, value, integral=integral)

    def _finish_number(self, start: int, value: FixedDecimal, integral: bool):
        if self._peek() == "n" and integral:
            self._pos += 1
            self._emit(TokenType.BIGINT, self._src[start:self._pos], start, number=value)
            return
        self._emit(TokenType.NUMBER, self._src[start:self._pos], start, number=value)

    def _read_word(self):
        start = self._pos
        word = _IDENT_RE.match(self._src, self._pos).group(0)
        self._pos += len(word)
        ttype = TokenType.KEYWORD if word in KEYWORDS else TokenType.IDENTIFIER
        self._emit(ttype, word, start)

    def _read_regex(self):
        start = self._pos
        self._pos += 1
        in_class = False
        body = []
        while True:
            ch = self._peek()
            if ch == "" or ch == "\n":
                self._error("unterminated regex")
            if ord(ch) > 0x7F:
                self._error(f"unknown char {ch!r}")
            if ch == "\\":
                body.append(ch + self._peek(1))
                self._pos += 2
                continue
            if ch == "[":
                in_class = True
            elif ch == "]":
                in_class = False
            elif ch == "/" and not in_class:
                self._pos += 1
                break
            body.append(ch)
            self._pos += 1
        flags = re.match(r'[A-Za-z]*', self._src[self._pos:]).group(0)
        self._pos += len(flags)
        self._emit(TokenType.REGEX, "".join(body), start, flags=flags)

    def _read_operator(self):
        start = self._pos
        for op in OPERATORS:
            if self._src.startswith(op, self._pos):
                self._pos += len(op)
                self._emit(TokenType.OPERATOR, op, start)
                return
        self._error(f"unknown char {self._peek()!r}")


def tokenize(source: str) -> List[Token]:
    """
    Convert snippet source into a list of Tokens ending with an EOF token.
    Raises LexError on malformed input.
    """
    return Lexer(source).tokenize()
