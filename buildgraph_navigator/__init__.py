"""
BuildGraph Navigator - Structural navigation for BuildGraph XML build scripts

This package scans BuildGraph scripts (Agents, Nodes, Macros, Properties,
Includes, Produces tags) without requiring them to be well-formed, follows
<Include> chains across files, and answers editor-style queries.

Main Components:
- tag_scanner: Tolerant tag/attribute/comment event scanner
- DependencyResolver: Transitive <Include> closure of a script
- build_outline: Nested symbol outline of a script
- QueryEngine: Go to definition / hover for Expand, Include, #Tag and $(Variable)
- MCPServer: MCP server for editor and LLM integration

Usage:
    import asyncio
    from buildgraph_navigator import DocumentStore, QueryEngine

    store = DocumentStore()
    engine = QueryEngine(store)

    document = asyncio.run(store.load("Engine/Build/InstalledEngineBuild.xml"))
    definition = asyncio.run(engine.resolve_at(document, document.offset_at(42, 17)))
    outline = engine.build_outline(document)
"""

__version__ = "0.1.0"
__author__ = "BuildGraph Navigator Development Team"

# Core components
from .utils import (
    SourceSpan,
    normalize_path,
    resolve_path,
    offset_to_position,
    position_to_offset,
    line_text_at
)
from .tag_scanner import (
    Attribute,
    OpenTag,
    CloseTag,
    CommentStart,
    CommentEnd,
    scan,
    structural_events,
    include_directives
)
from .document_store import Document, DocumentStore, FileSystemReader, ScriptReader, CancellationToken
from .dependency_graph import DependencyGraph, DependencyResolver
from .symbol_table import Symbol, SymbolCategory, build_outline
from .references import (
    Reference,
    ExpandReference,
    IncludeReference,
    TagReference,
    VariableReference,
    ReferenceKind,
    SearchScope,
    candidate_references,
    classify_reference
)
from .query_engine import QueryEngine, Definition, HoverInfo
from .semantic_tokens import SemanticToken, collect_tokens, encode_tokens
from .uat_output import ListOutput, parse_list_output
from .config import NavigatorConfig, load_config, setup_logging
from .exceptions import (
    BuildGraphNavigatorError,
    ScriptReadError,
    IncludeNotFoundError,
    InvalidPositionError,
    ConfigurationError,
    ToolCallError
)
from .mcp_server import MCPServer

__all__ = [
    # Positions and paths
    'SourceSpan',
    'normalize_path',
    'resolve_path',
    'offset_to_position',
    'position_to_offset',
    'line_text_at',

    # Scanner
    'Attribute',
    'OpenTag',
    'CloseTag',
    'CommentStart',
    'CommentEnd',
    'scan',
    'structural_events',
    'include_directives',

    # Documents and dependencies
    'Document',
    'DocumentStore',
    'FileSystemReader',
    'ScriptReader',
    'CancellationToken',
    'DependencyGraph',
    'DependencyResolver',

    # Outline
    'Symbol',
    'SymbolCategory',
    'build_outline',

    # References and queries
    'Reference',
    'ExpandReference',
    'IncludeReference',
    'TagReference',
    'VariableReference',
    'ReferenceKind',
    'SearchScope',
    'candidate_references',
    'classify_reference',
    'QueryEngine',
    'Definition',
    'HoverInfo',

    # Supplementary
    'SemanticToken',
    'collect_tokens',
    'encode_tokens',
    'ListOutput',
    'parse_list_output',
    'NavigatorConfig',
    'load_config',
    'setup_logging',

    # Exceptions
    'BuildGraphNavigatorError',
    'ScriptReadError',
    'IncludeNotFoundError',
    'InvalidPositionError',
    'ConfigurationError',
    'ToolCallError',

    'MCPServer',
]
