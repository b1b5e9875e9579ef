"""
Dependency Graph - Discovers the scripts reachable through <Include> tags
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .document_store import CancellationToken, ScriptReader
from .exceptions import ScriptReadError
from .tag_scanner import include_directives
from .utils import normalize_path, resolve_path, script_dir

logger = logging.getLogger(__name__)

@dataclass
class DependencyGraph:
    """Represents the include closure of one root script"""
    root: Optional[str]
    members: Dict[str, None] = field(default_factory=dict)          # FileIds in discovery order
    include_graph: Dict[str, List[str]] = field(default_factory=dict)  # Direct include edges
    unreadable: List[str] = field(default_factory=list)             # Discovered but could not be read
    texts: Dict[str, str] = field(default_factory=dict, repr=False)  # Snapshot taken during this request

    def __contains__(self, file_id: str) -> bool:
        return file_id in self.members

    def __iter__(self):
        return iter(self.members)

    def __len__(self) -> int:
        return len(self.members)

    @property
    def files(self) -> List[str]:
        return list(self.members)

    def add_member(self, file_id: str) -> bool:
        """Record file_id; False if it was already discovered"""
        if file_id in self.members:
            return False
        self.members[file_id] = None
        return True

    def add_edge(self, source: str, target: str):
        targets = self.include_graph.setdefault(source, [])
        if target not in targets:
            targets.append(target)

    def get_dependencies(self, file_id: str, transitive: bool = False) -> List[str]:
        """Files included by file_id, directly or through other includes"""
        if not transitive:
            return list(self.include_graph.get(file_id, []))

        visited = {file_id}
        dependencies = []
        pending = list(self.include_graph.get(file_id, []))
        while pending:
            current = pending.pop(0)
            if current in visited:
                continue
            visited.add(current)
            dependencies.append(current)
            pending.extend(self.include_graph.get(current, []))
        return dependencies

    def to_dict(self) -> Dict:
        return {
            'root': self.root,
            'members': self.files,
            'include_graph': self.include_graph,
            'unreadable': self.unreadable
        }

    def serialize_to_json(self, output_path: str):
        """Save dependency graph to JSON file"""
        with open(output_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load_from_json(cls, input_path: str) -> 'DependencyGraph':
        """Load dependency graph from JSON file"""
        with open(input_path, 'r') as f:
            graph_dict = json.load(f)

        return cls(
            root=graph_dict['root'],
            members=dict.fromkeys(graph_dict['members']),
            include_graph=graph_dict['include_graph'],
            unreadable=graph_dict.get('unreadable', [])
        )

class DependencyResolver:
    """Builds include graphs by breadth-first expansion over a ScriptReader"""

    def __init__(self, reader: ScriptReader):
        self.reader = reader

    async def _read(self, file_id: str) -> Optional[str]:
        try:
            return await self.reader.read_text(file_id)
        except ScriptReadError as e:
            logger.warning(f"Could not read file: {e.path} ({e.message})")
            return None

    async def resolve(self, root: str, token: Optional[CancellationToken] = None,
                      root_text: Optional[str] = None) -> DependencyGraph:
        """Return the root script plus every script it transitively includes.

        Each breadth-first level is read concurrently. A file is marked as
        discovered when its read is issued, so two siblings that include the
        same script never both expand it. Cancellation yields an empty graph.
        """
        token = token or CancellationToken()
        root = normalize_path(root)
        graph = DependencyGraph(root=root)
        graph.add_member(root)
        if root_text is not None:
            graph.texts[root] = root_text

        frontier = [root]
        while frontier:
            if token.is_cancellation_requested:
                return DependencyGraph(root=None)

            pending = [f for f in frontier if f not in graph.texts]
            texts = await asyncio.gather(*(self._read(f) for f in pending))
            if token.is_cancellation_requested:
                return DependencyGraph(root=None)

            for file_id, text in zip(pending, texts):
                if text is None:
                    graph.unreadable.append(file_id)
                else:
                    graph.texts[file_id] = text

            next_frontier = []
            for file_id in frontier:
                text = graph.texts.get(file_id)
                if text is None:
                    continue
                base_dir = script_dir(file_id)
                for include in include_directives(text):
                    target = resolve_path(base_dir, include.path)
                    graph.add_edge(file_id, target)
                    if graph.add_member(target):
                        next_frontier.append(target)
            frontier = next_frontier

        logger.debug(f"Resolved {len(graph)} dependencies for {root}")
        return graph

    async def direct_includes(self, file_id: str, text: Optional[str] = None) -> List[str]:
        """FileIds named by the Include tags of one script, without recursion"""
        file_id = normalize_path(file_id)
        if text is None:
            text = await self._read(file_id)
            if text is None:
                return []

        base_dir = script_dir(file_id)
        targets = []
        for include in include_directives(text):
            target = resolve_path(base_dir, include.path)
            if target not in targets:
                targets.append(target)
        return targets
