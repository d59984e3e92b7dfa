"""Dependency graph for configuration documents.

Resource blocks reference each other with ``${type.name.attribute}`` (or
``${data.type.name.attribute}``) expressions inside string values, and may
list explicit ``depends_on`` addresses. Both become edges of a networkx
DiGraph pointing from the dependency to the dependent, so that the
topological generations of the graph are the batches which can be applied
concurrently.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Set

import networkx as nx

from ..config.models import ConfigurationDocument
from ..exceptions import PlanError
from ..schema import UNKNOWN
from .state import MODE_DATA, MODE_MANAGED, make_address

logger = logging.getLogger(__name__)

REFERENCE_PATTERN = re.compile(
    r"\$\{((?:data\.)?[A-Za-z][A-Za-z0-9_]*\.[A-Za-z_][A-Za-z0-9_-]*)\.([A-Za-z0-9_.]+)\}"
)

META_ARGUMENTS = ("depends_on", "timeouts")


@dataclass
class BlockNode:
    """A resource or data block of the configuration document."""

    address: str
    mode: str
    type: str
    name: str
    config: Dict[str, Any]
    depends_on: List[str] = field(default_factory=list)
    timeouts: Dict[str, Any] = field(default_factory=dict)


def split_meta_arguments(block: Dict[str, Any]) -> tuple:
    """Separate ``depends_on`` and ``timeouts`` from the handler's attributes."""
    config = {k: v for k, v in block.items() if k not in META_ARGUMENTS}
    depends_on = block.get("depends_on") or []
    timeouts = block.get("timeouts") or {}
    if isinstance(timeouts, list):
        timeouts = timeouts[0] if timeouts else {}
    return config, list(depends_on), dict(timeouts)


def find_references(value: Any) -> Set[str]:
    """Addresses referenced anywhere inside ``value``."""
    found: Set[str] = set()
    if isinstance(value, str):
        for match in REFERENCE_PATTERN.finditer(value):
            found.add(match.group(1))
    elif isinstance(value, dict):
        for item in value.values():
            found |= find_references(item)
    elif isinstance(value, list):
        for item in value:
            found |= find_references(item)
    return found


def interpolate(value: Any, lookup: Callable[[str, str], Any]) -> Any:
    """Replace references in ``value`` using ``lookup(address, attribute_path)``.

    A string which is exactly one reference takes the referenced value with
    its type; references embedded in longer strings are substituted as text.
    Any reference to a value which is not known yet makes the whole string
    UNKNOWN.
    """
    if isinstance(value, dict):
        return {k: interpolate(v, lookup) for k, v in value.items()}
    if isinstance(value, list):
        return [interpolate(v, lookup) for v in value]
    if not isinstance(value, str) or "${" not in value:
        return value

    whole = REFERENCE_PATTERN.fullmatch(value)
    if whole:
        return lookup(whole.group(1), whole.group(2))

    unknown = False

    def substitute(match: "re.Match[str]") -> str:
        nonlocal unknown
        resolved = lookup(match.group(1), match.group(2))
        if resolved is UNKNOWN:
            unknown = True
            return ""
        return str(resolved)

    result = REFERENCE_PATTERN.sub(substitute, value)
    return UNKNOWN if unknown else result


def lookup_path(values: Dict[str, Any], path: str) -> Any:
    """Walk a dotted attribute path such as ``os_disk.0.name``.

    Raises:
        KeyError: If the path does not exist
    """
    current: Any = values
    for part in path.split("."):
        if current is UNKNOWN:
            return UNKNOWN
        if isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                raise KeyError(path)
            current = current[index]
        elif isinstance(current, dict) and part in current:
            current = current[part]
        else:
            raise KeyError(path)
    return current


class DependencyGraph:
    """The blocks of a configuration document and their dependencies."""

    def __init__(self, document: ConfigurationDocument) -> None:
        self.graph = nx.DiGraph()
        self.nodes: Dict[str, BlockNode] = {}

        for mode, blocks in ((MODE_MANAGED, document.resource), (MODE_DATA, document.data)):
            for resource_type, named in blocks.items():
                for name, block in named.items():
                    config, depends_on, timeouts = split_meta_arguments(block or {})
                    address = make_address(resource_type, name, mode)
                    self.nodes[address] = BlockNode(
                        address=address,
                        mode=mode,
                        type=resource_type,
                        name=name,
                        config=config,
                        depends_on=depends_on,
                        timeouts=timeouts,
                    )
                    self.graph.add_node(address)

        for address, node in self.nodes.items():
            for dependency in sorted(find_references(node.config) | set(node.depends_on)):
                if dependency not in self.nodes:
                    raise PlanError(
                        f"Reference to undeclared resource {dependency!r}", address=address
                    )
                if dependency == address:
                    raise PlanError("A resource cannot reference itself", address=address)
                self.graph.add_edge(dependency, address)

        if not nx.is_directed_acyclic_graph(self.graph):
            cycle = nx.find_cycle(self.graph)
            path = " -> ".join([edge[0] for edge in cycle] + [cycle[0][0]])
            raise PlanError(f"Cycle between resources: {path}")

        logger.debug(
            f"Built dependency graph with {self.graph.number_of_nodes()} block(s) and "
            f"{self.graph.number_of_edges()} edge(s)"
        )

    def generations(self) -> List[List[str]]:
        """Batches of addresses in dependency order; each batch is independent."""
        return [sorted(generation) for generation in nx.topological_generations(self.graph)]

    def dependencies(self, address: str) -> List[str]:
        return sorted(self.graph.predecessors(address))

    def __contains__(self, address: str) -> bool:
        return address in self.nodes

    def __getitem__(self, address: str) -> BlockNode:
        return self.nodes[address]
