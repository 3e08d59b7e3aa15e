"""
SnippetJS - AST Node Definitions
Nodes live in a flat arena (Ast.nodes) and refer to their children by
integer index, so the tree has no object cycles by construction.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Any


@dataclass
class ASTNode:
    """Base class for all AST nodes."""
    line: int = 0


# ── Records held inside nodes (not arena entries) ─────────────────────────────

@dataclass
class Param:
    name: str = ""
    default: Optional[int] = None


@dataclass
class Declarator:
    name: str = ""
    init: Optional[int] = None


@dataclass
class PropertyDef:
    key: str = ""
    value: int = 0


# ── Statements ────────────────────────────────────────────────────────────────

@dataclass
class ProgramNode(ASTNode):
    """Root node of the program."""
    body: List[int] = field(default_factory=list)


@dataclass
class FunctionDeclNode(ASTNode):
    """function name(p1, p2 = default) { body }"""
    name: str = ""
    params: List[Param] = field(default_factory=list)
    body: int = 0


@dataclass
class VarDeclNode(ASTNode):
    """var a = 1, b"""
    kind: str = "var"
    declarations: List[Declarator] = field(default_factory=list)


@dataclass
class BlockNode(ASTNode):
    body: List[int] = field(default_factory=list)


@dataclass
class IfNode(ASTNode):
    """if (test) consequent else alternate; else-if chains nest in alternate."""
    test: int = 0
    consequent: int = 0
    alternate: Optional[int] = None


@dataclass
class ForNode(ASTNode):
    init: Optional[int] = None
    test: Optional[int] = None
    update: Optional[int] = None
    body: int = 0


@dataclass
class WhileNode(ASTNode):
    test: int = 0
    body: int = 0


@dataclass
class BreakNode(ASTNode):
    pass


@dataclass
class ContinueNode(ASTNode):
    pass


@dataclass
class ReturnNode(ASTNode):
    argument: Optional[int] = None


@dataclass
class ExpressionStatementNode(ASTNode):
    expression: int = 0


@dataclass
class EmptyNode(ASTNode):
    """A stray ';'."""


# ── Expressions ───────────────────────────────────────────────────────────────

@dataclass
class BinaryNode(ASTNode):
    op: str = ""
    left: int = 0
    right: int = 0


@dataclass
class LogicalNode(ASTNode):
    """&& || ??, short-circuiting."""
    op: str = ""
    left: int = 0
    right: int = 0


@dataclass
class UnaryNode(ASTNode):
    op: str = ""
    operand: int = 0


@dataclass
class UpdateNode(ASTNode):
    """++x, x++, --x, x--"""
    op: str = ""
    prefix: bool = True
    argument: int = 0


@dataclass
class AssignmentNode(ASTNode):
    """target op value, op being '=' or a compound operator such as '+='."""
    op: str = "="
    target: int = 0
    value: int = 0


@dataclass
class ConditionalNode(ASTNode):
    test: int = 0
    consequent: int = 0
    alternate: int = 0


@dataclass
class SequenceNode(ASTNode):
    expressions: List[int] = field(default_factory=list)


@dataclass
class CallNode(ASTNode):
    callee: int = 0
    arguments: List[int] = field(default_factory=list)


@dataclass
class MemberNode(ASTNode):
    """obj.name (computed=False) or obj[property] (computed=True)."""
    object: int = 0
    name: str = ""
    property: Optional[int] = None
    computed: bool = False


@dataclass
class ArrayLiteralNode(ASTNode):
    """[e1, e2, ...]; elided elements are not stored."""
    elements: List[int] = field(default_factory=list)


@dataclass
class ObjectLiteralNode(ASTNode):
    """{k1: v1, ...}; duplicate keys are kept here, resolved at evaluation."""
    properties: List[PropertyDef] = field(default_factory=list)


@dataclass
class IdentifierNode(ASTNode):
    """A variable reference."""
    name: str = ""


@dataclass
class LiteralNode(ASTNode):
    """kind is one of number, string, boolean, null, undefined, regex."""
    kind: str = ""
    value: Any = None


# ── Arena ─────────────────────────────────────────────────────────────────────

class Ast:
    """Index-addressed node arena. `root` is the Program node's index."""

    def __init__(self):
        self.nodes: List[ASTNode] = []
        self.root: int = -1

    def add(self, node: ASTNode) -> int:
        self.nodes.append(node)
        return len(self.nodes) - 1

    def __getitem__(self, index: int) -> ASTNode:
        return self.nodes[index]

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def program(self) -> ProgramNode:
        return self.nodes[self.root]

    def children(self, index: int) -> List[int]:
        """Indices of the direct children of a node, in source order."""
        node = self.nodes[index]
        out: List[int] = []
        for name in _CHILD_FIELDS.get(type(node), ()):
            value = getattr(node, name)
            if value is None:
                continue
            if isinstance(value, list):
                for item in value:
                    if isinstance(item, Param):
                        item = item.default
                    elif isinstance(item, Declarator):
                        item = item.init
                    elif isinstance(item, PropertyDef):
                        item = item.value
                    if item is not None:
                        out.append(item)
            else:
                out.append(value)
        return out


# Child-bearing fields per node type, in source order.
_CHILD_FIELDS = {
    ProgramNode: ("body",),
    FunctionDeclNode: ("params", "body"),
    VarDeclNode: ("declarations",),
    BlockNode: ("body",),
    IfNode: ("test", "consequent", "alternate"),
    ForNode: ("init", "test", "update", "body"),
    WhileNode: ("test", "body"),
    ReturnNode: ("argument",),
    ExpressionStatementNode: ("expression",),
    BinaryNode: ("left", "right"),
    LogicalNode: ("left", "right"),
    UnaryNode: ("operand",),
    UpdateNode: ("argument",),
    AssignmentNode: ("target", "value"),
    ConditionalNode: ("test", "consequent", "alternate"),
    SequenceNode: ("expressions",),
    CallNode: ("callee", "arguments"),
    MemberNode: ("object", "property"),
    ArrayLiteralNode: ("elements",),
    ObjectLiteralNode: ("properties",),
}
