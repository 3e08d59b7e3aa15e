"""
SnippetJS - Error Types
Every failure the pipeline can raise. Coercion problems are not errors:
they degrade to NaN / undefined inside the interpreter.
"""


class SnippetError(Exception):
    """Base class for all pipeline failures."""
    kind = "SnippetError"

    def __init__(self, message: str, line: int = 0):
        super().__init__(f"[{self.kind}] Line {line}: {message}")
        self.message = message
        self.line = line


class LexError(SnippetError):
    kind = "LexError"


class ParseError(SnippetError):
    kind = "ParseError"


class UnboundIdentifierError(SnippetError):
    """An identifier that is not bound anywhere in scope."""
    kind = "ReferenceError"


class RangeError(SnippetError):
    """Array index read or write outside [0, length)."""
    kind = "RangeError"


class ResourceExhausted(SnippetError):
    """The per-call gas budget ran out."""
    kind = "ResourceExhausted"


class ExternalCallError(SnippetError):
    """executeToken / staticcallContract had no collaborator, or it failed."""
    kind = "ExternalCallError"
