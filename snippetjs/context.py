"""
SnippetJS - Run Context and External Collaborators
What a single call receives from its host: the entry point, positional
arguments, injected identifiers, and the executors for executeToken and
staticcallContract.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .errors import ExternalCallError
from .meter import Meter

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """
    start_node_index : index of the top-level statement to start from
    args             : positional arguments for the entry function
    identifiers      : read-only globals, as a dict or a list of (name, value)
    """
    start_node_index: int = 0
    args: List[Any] = field(default_factory=list)
    identifiers: Union[Dict[str, Any], List[Tuple[str, Any]]] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.identifiers, dict):
            self.identifiers = dict(self.identifiers)
        self.args = list(self.args)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RunContext":
        """Build from the JSON shape used by the CLI --context file."""
        identifiers = data.get("identifiers", {})
        if isinstance(identifiers, list):
            identifiers = [(pair[0], pair[1]) for pair in identifiers]
        return cls(
            start_node_index=int(data.get("start_node_index", data.get("startNodeIndex", 0))),
            args=data.get("args", []),
            identifiers=identifiers,
        )


class TokenExecutor:
    """Runs the snippet behind a token id. Host values in, host value out."""

    def execute_token(self, token_id: int, args: List[Any], meter: Meter) -> Any:
        raise NotImplementedError


class ContractCaller:
    """ABI-encodes args, makes a read-only call and decodes the return value."""

    def staticcall(self, address: str, signature: str, return_type: Any, args: List[Any]) -> Any:
        raise NotImplementedError


class SnippetTokenExecutor(TokenExecutor):
    """
    TokenExecutor backed by snippet sources registered per token id.
    Each token runs through the full pipeline and charges the caller's meter.
    """

    def __init__(self, sources: Optional[Dict[int, str]] = None,
                 contract_caller: Optional[ContractCaller] = None):
        self._sources: Dict[int, str] = dict(sources or {})
        self._asts: Dict[int, Any] = {}
        self.contract_caller = contract_caller

    def register(self, token_id: int, source: str) -> None:
        self._sources[token_id] = source
        self._asts.pop(token_id, None)

    def token_ids(self) -> Iterable[int]:
        return self._sources.keys()

    def _ast_for(self, token_id: int):
        from .lexer import tokenize
        from .parser import build

        if token_id not in self._sources:
            raise ExternalCallError(f"no snippet registered for token {token_id}")
        if token_id not in self._asts:
            self._asts[token_id] = build(tokenize(self._sources[token_id]))
        return self._asts[token_id]

    def execute_token(self, token_id: int, args: List[Any], meter: Meter) -> Any:
        from .interpreter import Interpreter
        from .values import to_host

        ast = self._ast_for(token_id)
        logger.debug("executing token %d with %d args", token_id, len(args))
        interp = Interpreter(
            ast,
            meter=meter,
            token_executor=self,
            contract_caller=self.contract_caller,
        )
        value = interp.run(RunContext(args=args))
        return to_host(value, interp.heap)
