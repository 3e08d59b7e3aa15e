"""
SnippetJS - a metered, deterministic interpreter for a subset of JavaScript
with 18-digit fixed-point arithmetic.
"""

from .errors import (
    SnippetError, LexError, ParseError, UnboundIdentifierError, RangeError,
    ResourceExhausted, ExternalCallError,
)
from .decimal_math import FixedDecimal
from .lexer import tokenize, Token, TokenType
from .parser import build
from .ast_nodes import Ast
from .values import JSValue, ValueType, UNDEFINED
from .meter import Meter, DEFAULT_GAS_LIMIT
from .context import RunContext, TokenExecutor, ContractCaller, SnippetTokenExecutor
from .analyzer import Signature, Dependencies, parse_signature, trace_dependencies
from .interpreter import Interpreter, interpret_with_state
from .pipeline import parse, interpret_to_string, interpret_file

__version__ = "0.1.0"
