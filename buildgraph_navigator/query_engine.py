"""
Query Engine - Go to definition, hover and outline queries for BuildGraph scripts
"""
import logging
import os
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .dependency_graph import DependencyGraph, DependencyResolver
from .document_store import CancellationToken, Document, ScriptReader
from .exceptions import IncludeNotFoundError, ScriptReadError
from .references import (DEFAULT_SEARCH_SCOPES, ExpandReference, IncludeReference,
                         Reference, ReferenceKind, SearchScope, TagReference,
                         VariableReference, candidate_references,
                         classify_reference)
from .symbol_table import Symbol, build_outline
from .tag_scanner import OpenTag, hash_tags, open_tags
from .utils import SourceSpan, line_span, resolve_path, script_dir

logger = logging.getLogger(__name__)

DEFINITION_PREVIEW = 'definitionPreview'
INCLUDE_PREVIEW = 'includePreview'

@dataclass(frozen=True)
class Definition:
    """Resolved location of a reference"""
    target_file: str
    target_span: SourceSpan         # Defining tag, #Tag token, or first line of an include
    selection_span: SourceSpan      # Narrow name inside target_span
    preview_line: str               # Trimmed text of the line target_span starts on
    origin: SourceSpan              # What was under the cursor
    reference: Reference

    def to_dict(self, target_text: Optional[str] = None) -> Dict:
        result = {
            'kind': self.reference.kind.value,
            'target_file': self.target_file,
            'target_span': [self.target_span.start, self.target_span.end],
            'selection_span': [self.selection_span.start, self.selection_span.end],
            'preview_line': self.preview_line,
            'origin': [self.origin.start, self.origin.end],
        }
        if target_text is not None:
            (line, character), _ = self.target_span.to_range(target_text)
            result['line'] = line
            result['character'] = character
        return result

@dataclass(frozen=True)
class HoverInfo:
    """Hover tooltip content in markdown"""
    kind: str
    contents: str
    origin: SourceSpan

def _preview(text: str, offset: int) -> str:
    span = line_span(text, offset)
    return text[span.start:span.end].strip()

def _tag_definition(file_id: str, text: str, tag: OpenTag, name_span: SourceSpan,
                    reference: Reference) -> Definition:
    return Definition(
        target_file=file_id,
        target_span=tag.span,
        selection_span=name_span,
        preview_line=_preview(text, tag.span.start),
        origin=reference.origin,
        reference=reference
    )

def find_macro_definition(file_id: str, text: str, reference: ExpandReference) -> Optional[Definition]:
    """<Macro Name="X"> whose name matches exactly"""
    for tag in open_tags(text, 'Macro'):
        name = tag.get('Name')
        if name is not None and name.value == reference.macro_name:
            return _tag_definition(file_id, text, tag, name.value_span, reference)
    return None

def find_produces_definition(file_id: str, text: str, reference: TagReference) -> Optional[Definition]:
    """<Node Produces="..."> listing the exact #Tag token"""
    for tag in open_tags(text, 'Node'):
        produces = tag.get('Produces')
        if produces is None:
            continue
        for token, span in hash_tags(produces.value, produces.value_span.start):
            if token != reference.tag_name:
                continue
            return Definition(
                target_file=file_id,
                target_span=span,
                selection_span=SourceSpan(span.start + 1, span.end),
                preview_line=_preview(text, span.start),
                origin=reference.origin,
                reference=reference
            )
    return None

def find_variable_definition(file_id: str, text: str, reference: VariableReference) -> Optional[Definition]:
    """Any tag carrying Name="X", except <Expand> whose Name is itself a reference"""
    wanted = reference.variable_name.lower()
    for tag in open_tags(text):
        if tag.is_tag('Expand'):
            continue
        name = tag.get('Name')
        if name is not None and name.value.lower() == wanted:
            return _tag_definition(file_id, text, tag, name.value_span, reference)
    return None

_DEFINITION_FINDERS = {
    ReferenceKind.EXPAND: find_macro_definition,
    ReferenceKind.TAG: find_produces_definition,
    ReferenceKind.VARIABLE: find_variable_definition,
}

class QueryEngine:
    """Answers structural queries about BuildGraph scripts.

    Dependency sets are rebuilt for every request since open documents may
    change between calls.
    """

    def __init__(self, reader: ScriptReader,
                 on_warning: Optional[Callable[[str], None]] = None,
                 search_scopes: Optional[Dict[ReferenceKind, SearchScope]] = None,
                 warn_on_missing_include: bool = True):
        self.reader = reader
        self.resolver = DependencyResolver(reader)
        self.search_scopes = dict(DEFAULT_SEARCH_SCOPES)
        if search_scopes:
            self.search_scopes.update(search_scopes)
        self.warn_on_missing_include = warn_on_missing_include
        self.warnings: List[str] = []
        self._on_warning = on_warning

    def warn(self, message: str):
        """Surface a message the user has to see"""
        logger.warning(message)
        self.warnings.append(message)
        if self._on_warning is not None:
            self._on_warning(message)

    def build_outline(self, document: Document) -> List[Symbol]:
        return build_outline(document.text)

    def classify_reference(self, document: Document, offset: int) -> Optional[Reference]:
        return classify_reference(document.text, offset)

    async def resolve_at(self, document: Document, offset: int,
                         token: Optional[CancellationToken] = None) -> Optional[Definition]:
        """Definition of the reference under offset, or None.

        Overlapping candidates are tried in dispatch order. A missing include
        is only reported when no other candidate resolves.
        """
        token = token or CancellationToken()
        definition, missing = await self._resolve_candidates(document, offset, token)
        if definition is None and missing is not None and self.warn_on_missing_include:
            self.warn(str(missing))
        return definition

    async def _resolve_candidates(self, document: Document, offset: int, token: CancellationToken):
        missing = None
        for reference in candidate_references(document.text, offset):
            if token.is_cancellation_requested:
                return None, None
            try:
                definition = await self._resolve(document, reference, token)
            except IncludeNotFoundError as e:
                missing = missing or e
                continue
            if definition is not None:
                return definition, None
        if token.is_cancellation_requested:
            return None, None
        return None, missing

    async def resolve_reference(self, document: Document, reference: Reference,
                                token: Optional[CancellationToken] = None,
                                warn: bool = True) -> Optional[Definition]:
        token = token or CancellationToken()
        try:
            return await self._resolve(document, reference, token)
        except IncludeNotFoundError as e:
            if warn and self.warn_on_missing_include:
                self.warn(str(e))
            return None

    async def _resolve(self, document: Document, reference: Reference,
                       token: CancellationToken) -> Optional[Definition]:
        if isinstance(reference, IncludeReference):
            return await self.find_include_definition(document, reference)

        find_definition = _DEFINITION_FINDERS[reference.kind]
        scope = self.search_scopes[reference.kind]
        logger.debug(f"Searching for {reference.kind.value} reference {reference!r} ({scope.value})")

        graph = await self.files_in_scope(document, scope, token)
        if token.is_cancellation_requested:
            return None
        logger.debug(f"Searching in {len(graph)} relevant files...")

        for file_id in graph:
            if token.is_cancellation_requested:
                return None
            text = await self._text_for(file_id, graph)
            if text is None:
                continue
            definition = find_definition(file_id, text, reference)
            if definition is not None:
                logger.debug(f"Definition found in: {file_id}")
                return definition

        logger.debug(f"No definition found for {reference!r} in relevant files.")
        return None

    async def files_in_scope(self, document: Document, scope: SearchScope,
                             token: Optional[CancellationToken] = None) -> DependencyGraph:
        """Files a reference is allowed to search, in search order"""
        token = token or CancellationToken()
        if scope is SearchScope.TRANSITIVE:
            return await self.resolver.resolve(document.file_id, token, root_text=document.text)

        graph = DependencyGraph(root=document.file_id)
        graph.add_member(document.file_id)
        graph.texts[document.file_id] = document.text
        if scope is SearchScope.DIRECT_INCLUDES:
            for target in await self.resolver.direct_includes(document.file_id, document.text):
                graph.add_edge(document.file_id, target)
                graph.add_member(target)
        return graph

    async def _text_for(self, file_id: str, graph: DependencyGraph) -> Optional[str]:
        if file_id in graph.texts:
            return graph.texts[file_id]
        # Already reported while the graph was built
        if file_id in graph.unreadable:
            return None
        try:
            return await self.reader.read_text(file_id)
        except ScriptReadError as e:
            logger.warning(f"Could not read file: {e.path} ({e.message})")
            return None

    async def find_include_definition(self, document: Document,
                                      reference: IncludeReference) -> Definition:
        """First line of the included script; IncludeNotFoundError if it is missing"""
        include_path = resolve_path(script_dir(document.file_id), reference.path)
        if not await self.reader.exists(include_path):
            raise IncludeNotFoundError(include_path, document.file_id)

        try:
            text = await self.reader.read_text(include_path)
        except ScriptReadError as e:
            raise IncludeNotFoundError(include_path, document.file_id) from e

        first_line = line_span(text, 0)
        return Definition(
            target_file=include_path,
            target_span=first_line,
            selection_span=first_line,
            preview_line=text[first_line.start:first_line.end].strip(),
            origin=reference.origin,
            reference=reference
        )

    async def classify_hover(self, document: Document, offset: int,
                             token: Optional[CancellationToken] = None) -> Optional[HoverInfo]:
        """Hover tooltip for the reference under offset, or None"""
        token = token or CancellationToken()
        definition, _ = await self._resolve_candidates(document, offset, token)
        if definition is None:
            return None

        if isinstance(definition.reference, IncludeReference):
            filename = os.path.basename(definition.target_file)
            return HoverInfo(INCLUDE_PREVIEW, f"*(include)*\n```xml\n{filename}\n```",
                             definition.origin)
        return HoverInfo(DEFINITION_PREVIEW, f"```xml\n{definition.preview_line}\n```",
                         definition.origin)

