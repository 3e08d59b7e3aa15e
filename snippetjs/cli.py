"""
SnippetJS - Command Line Interface

Usage:
    snippetjs snippet.js [--context ctx.json] [--arg VALUE ...] [--token ID=FILE ...]
                         [--gas-limit N] [--emit-tokens | --emit-ast | --signature | --trace]
                         [-o OUT] [--debug]
    python -m snippetjs snippet.js
"""

import sys
import argparse
import json
import logging


def _parse_arg(text: str):
    """--arg values are JSON when they parse as JSON, plain strings otherwise."""
    try:
        return json.loads(text)
    except ValueError:
        return text


def _parse_token(text: str):
    token_id, sep, path = text.partition("=")
    if not sep or not token_id.strip().isdigit():
        raise argparse.ArgumentTypeError(f"expected ID=FILE, got {text!r}")
    return int(token_id), path


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="snippetjs",
        description="SnippetJS - metered interpreter for a JavaScript subset",
    )
    parser.add_argument("input", help="Path to the snippet source file")
    parser.add_argument("-o", "--output", help="Write the result here instead of stdout")
    parser.add_argument(
        "--context",
        help="JSON file with start_node_index, args and identifiers",
    )
    parser.add_argument(
        "--arg",
        action="append",
        default=[],
        dest="args",
        type=_parse_arg,
        help="Positional argument for the entry function (repeatable, JSON or string)",
    )
    parser.add_argument(
        "--token",
        action="append",
        default=[],
        dest="tokens",
        type=_parse_token,
        help="Register a snippet file as the body of executeToken(ID) (repeatable)",
    )
    parser.add_argument(
        "--gas-limit",
        type=int,
        default=None,
        dest="gas_limit",
        help="Gas budget for the call (default: 10000000)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--emit-tokens", action="store_true", dest="emit_tokens",
                      help="Emit the token stream as JSON instead of running")
    mode.add_argument("--emit-ast", action="store_true", dest="emit_ast",
                      help="Emit the parsed AST as JSON instead of running")
    mode.add_argument("--signature", action="store_true",
                      help="Print the entry function's name and parameters")
    mode.add_argument("--trace", action="store_true",
                      help="Print the token ids and contracts the snippet depends on")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log pipeline phase info to stderr",
    )
    return parser


def _load_context(args):
    from .context import RunContext

    if args.context:
        with open(args.context, "r", encoding="utf-8") as f:
            context = RunContext.from_dict(json.load(f))
    else:
        context = RunContext()
    if args.args:
        context.args = list(args.args)
    return context


def _run(args) -> str:
    from .context import SnippetTokenExecutor
    from .lexer import tokenize
    from .meter import DEFAULT_GAS_LIMIT
    from .pipeline import (
        interpret_to_string, parse, signature_of, dependencies_of,
        tokens_to_json, ast_to_json,
    )

    with open(args.input, "r", encoding="utf-8") as f:
        source = f.read()

    if args.emit_tokens:
        return tokens_to_json(tokenize(source))
    if args.emit_ast:
        return ast_to_json(parse(source))

    context = _load_context(args)
    if args.signature:
        sig = signature_of(source)
        return json.dumps({"name": sig.name, "args": sig.args})
    if args.trace:
        deps = dependencies_of(source, context)
        return json.dumps({
            "contractDependees": deps.contract_dependees,
            "exeTokenDependees": deps.exe_token_dependees,
        })

    executor = SnippetTokenExecutor()
    for token_id, path in args.tokens:
        with open(path, "r", encoding="utf-8") as f:
            executor.register(token_id, f.read())

    return interpret_to_string(
        source,
        context,
        gas_limit=args.gas_limit if args.gas_limit is not None else DEFAULT_GAS_LIMIT,
        token_executor=executor,
    )


def main(argv=None):
    args = _build_parser().parse_args(argv)

    if args.debug:
        logging.basicConfig(
            level=logging.DEBUG,
            format="[snippetjs] %(name)s: %(message)s",
            stream=sys.stderr,
        )

    from .errors import SnippetError

    try:
        result = _run(args)
    except FileNotFoundError as e:
        print(f"[snippetjs] Error: File not found: {e.filename!r}", file=sys.stderr)
        sys.exit(1)
    except SnippetError as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(result + "\n")
        print(f"[snippetjs] Wrote {args.output!r}", file=sys.stderr)
    else:
        print(result)


if __name__ == "__main__":
    main()
