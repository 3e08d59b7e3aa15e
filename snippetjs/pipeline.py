"""
SnippetJS - Pipeline Orchestrator
Runs the phases in sequence: tokenize, build, check, interpret, display.
"""

import json
import logging
from typing import List, Optional

from .lexer import tokenize, Token
from .parser import build
from .ast_nodes import Ast
from .analyzer import Signature, Dependencies, parse_signature, trace_dependencies
from .context import RunContext, TokenExecutor, ContractCaller
from .decimal_math import FixedDecimal
from .interpreter import Interpreter
from .meter import DEFAULT_GAS_LIMIT
from .stack import call_deep
from .values import to_display

logger = logging.getLogger(__name__)


def parse(source: str) -> Ast:
    """Tokenize and build `source`. LexError and ParseError propagate."""
    # ── Phase 1: Lexical Analysis ─────────────────────────────────────────────
    logger.debug("Phase 1: Lexical analysis")
    tokens = tokenize(source)
    logger.debug("  %d tokens produced", len(tokens) - 1)

    # ── Phase 2: AST construction ─────────────────────────────────────────────
    logger.debug("Phase 2: Parsing")
    ast = build(tokens)
    logger.debug("  %d top-level statements, %d nodes", len(ast.program.body), len(ast))
    return ast


def interpret_to_string(
    source: str,
    context: Optional[RunContext] = None,
    *,
    gas_limit: int = DEFAULT_GAS_LIMIT,
    token_executor: Optional[TokenExecutor] = None,
    contract_caller: Optional[ContractCaller] = None,
) -> str:
    """
    Run snippet source text and return its result in display form.

    Parameters
    ----------
    source          : snippet source code string
    context         : entry point, arguments and injected identifiers
    gas_limit       : budget for the whole call, nested token calls included
    token_executor  : collaborator behind executeToken
    contract_caller : collaborator behind staticcallContract

    Raises
    ------
    SnippetError (or a subclass) on any phase failure
    """
    ast = parse(source)

    # ── Phase 3: Evaluation ───────────────────────────────────────────────────
    logger.debug("Phase 3: Evaluation (gas limit %d)", gas_limit)
    interp = Interpreter(
        ast,
        gas_limit=gas_limit,
        token_executor=token_executor,
        contract_caller=contract_caller,
    )
    value = interp.run(context)

    # ── Phase 4: Display ──────────────────────────────────────────────────────
    result = call_deep(to_display, value, interp.heap)
    logger.debug("  result %r, %d gas used", result, interp.meter.used)
    return result


def interpret_file(path: str, context: Optional[RunContext] = None, **kwargs) -> str:
    """Read a snippet file and interpret it."""
    with open(path, "r", encoding="utf-8") as f:
        source = f.read()
    return interpret_to_string(source, context, **kwargs)


def signature_of(source: str) -> Signature:
    return parse_signature(parse(source))


def dependencies_of(source: str, context: Optional[RunContext] = None) -> Dependencies:
    return trace_dependencies(parse(source), context)


# ── Serialization (for --emit-tokens / --emit-ast) ────────────────────────────

def tokens_to_json(tokens: List[Token]) -> str:
    out = []
    for tok in tokens:
        d = {"type": tok.type.name, "value": tok.value, "line": tok.line}
        if tok.number is not None:
            d["number"] = tok.number.to_string()
        if tok.flags:
            d["flags"] = tok.flags
        out.append(d)
    return json.dumps(out, indent=2)


def ast_to_json(ast: Ast) -> str:
    return json.dumps(
        {"root": ast.root, "nodes": [_node_to_dict(n) for n in ast.nodes]},
        indent=2,
    )


def _node_to_dict(node):
    if node is None:
        return None
    if isinstance(node, list):
        return [_node_to_dict(n) for n in node]
    if isinstance(node, FixedDecimal):
        return node.to_string()
    if not hasattr(node, '__dataclass_fields__'):
        return node  # primitive or child index
    d = {"_type": type(node).__name__}
    for field_name in node.__dataclass_fields__:
        val = getattr(node, field_name)
        d[field_name] = _node_to_dict(val)
    return d
