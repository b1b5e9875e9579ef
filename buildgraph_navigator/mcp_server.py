"""
MCP Server - Model Context Protocol server for editor and LLM integration
"""
import asyncio
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from .config import NavigatorConfig, load_config, setup_logging
from .document_store import DocumentStore, FileSystemReader
from .exceptions import ToolCallError
from .query_engine import QueryEngine
from .semantic_tokens import collect_tokens, encode_tokens, legend, token_positions
from .uat_output import parse_list_output
from .utils import normalize_path

logger = logging.getLogger(__name__)

def _position_schema(description: str) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "file_path": {
                "type": "string",
                "description": "Path to the BuildGraph script, absolute or relative to the workspace"
            },
            "line": {"type": "integer", "description": "0-based line"},
            "character": {"type": "integer", "description": "0-based character within the line"}
        },
        "required": ["file_path", "line", "character"],
        "description": description
    }

class MCPServer:
    """MCP Server for BuildGraph Navigator"""

    def __init__(self, config: Optional[NavigatorConfig] = None):
        """Initialize MCP server"""
        self.config = config or NavigatorConfig()
        self.workspace_dir = self.config.workspace_dir

        # Initialize components
        self.store = DocumentStore(FileSystemReader(self.config.encoding))
        self.query_engine = QueryEngine(
            self.store,
            warn_on_missing_include=self.config.warn_on_missing_include
        )

        # MCP tool definitions
        self.tools = self._define_tools()

    def _define_tools(self) -> List[Dict[str, Any]]:
        """Define available MCP tools"""
        return [
            {
                "name": "find_definition",
                "description": "Go to the definition of the Expand, Include, #Tag or $(Variable) reference at a position",
                "inputSchema": _position_schema("Cursor position")
            },
            {
                "name": "hover",
                "description": "Preview of what the reference at a position points to",
                "inputSchema": _position_schema("Cursor position")
            },
            {
                "name": "document_outline",
                "description": "Hierarchical symbol outline (Agents, Nodes, Macros, Variables, Includes) of a script",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "file_path": {"type": "string", "description": "Path to the BuildGraph script"}
                    },
                    "required": ["file_path"]
                }
            },
            {
                "name": "get_dependencies",
                "description": "Scripts reachable from a script through <Include> tags",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "file_path": {"type": "string", "description": "Path to the root script"},
                        "include_transitive": {
                            "type": "boolean",
                            "description": "Follow includes of included scripts",
                            "default": True
                        }
                    },
                    "required": ["file_path"]
                }
            },
            {
                "name": "semantic_tokens",
                "description": "Highlighting tokens for $(Variables) and #Tags",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "file_path": {"type": "string", "description": "Path to the BuildGraph script"},
                        "encoded": {
                            "type": "boolean",
                            "description": "Return LSP relative integer encoding instead of readable rows",
                            "default": False
                        }
                    },
                    "required": ["file_path"]
                }
            },
            {
                "name": "parse_uat_output",
                "description": "Extract options, nodes and aggregates from BuildGraph -ListOnly output",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "output": {"type": "string", "description": "Captured console output"}
                    },
                    "required": ["output"]
                }
            },
            {
                "name": "open_document",
                "description": "Register unsaved editor text for a script so queries see it instead of the file",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "file_path": {"type": "string"},
                        "text": {"type": "string"}
                    },
                    "required": ["file_path", "text"]
                }
            },
            {
                "name": "close_document",
                "description": "Forget unsaved text registered with open_document",
                "inputSchema": {
                    "type": "object",
                    "properties": {"file_path": {"type": "string"}},
                    "required": ["file_path"]
                }
            }
        ]

    async def handle_tool_call(self, tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Handle MCP tool calls"""
        try:
            if tool_name == "find_definition":
                return await self._handle_find_definition(arguments)
            elif tool_name == "hover":
                return await self._handle_hover(arguments)
            elif tool_name == "document_outline":
                return await self._handle_document_outline(arguments)
            elif tool_name == "get_dependencies":
                return await self._handle_get_dependencies(arguments)
            elif tool_name == "semantic_tokens":
                return await self._handle_semantic_tokens(arguments)
            elif tool_name == "parse_uat_output":
                return self._handle_parse_uat_output(arguments)
            elif tool_name == "open_document":
                return self._handle_open_document(arguments)
            elif tool_name == "close_document":
                return self._handle_close_document(arguments)
            else:
                return {
                    "error": f"Unknown tool: {tool_name}",
                    "success": False
                }
        except Exception as e:
            logger.debug(f"Tool {tool_name} failed", exc_info=True)
            return {
                "error": str(e),
                "success": False,
                "error_type": type(e).__name__
            }

    def _resolve_script_path(self, file_path: str) -> str:
        """Resolve a script path relative to the workspace directory"""
        if os.path.isabs(file_path):
            return normalize_path(file_path)
        return normalize_path(os.path.join(self.workspace_dir, file_path))

    def _require(self, arguments: Dict[str, Any], name: str):
        if name not in arguments:
            raise ToolCallError("argument validation", f"missing required argument '{name}'")
        return arguments[name]

    async def _load(self, arguments: Dict[str, Any]):
        return await self.store.load(self._resolve_script_path(self._require(arguments, "file_path")))

    async def _handle_find_definition(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Handle find_definition tool call"""
        document = await self._load(arguments)
        offset = document.offset_at(int(self._require(arguments, "line")),
                                    int(self._require(arguments, "character")))

        warnings_before = len(self.query_engine.warnings)
        definition = await self.query_engine.resolve_at(document, offset)
        warnings = self.query_engine.warnings[warnings_before:]

        if definition is None:
            return {
                "success": True,
                "found": False,
                "file_path": document.file_id,
                "warnings": warnings
            }

        target_text = await self.store.read_text(definition.target_file)
        return {
            "success": True,
            "found": True,
            "file_path": document.file_id,
            "definition": definition.to_dict(target_text),
            "warnings": warnings
        }

    async def _handle_hover(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Handle hover tool call"""
        document = await self._load(arguments)
        offset = document.offset_at(int(self._require(arguments, "line")),
                                    int(self._require(arguments, "character")))

        hover = await self.query_engine.classify_hover(document, offset)
        if hover is None:
            return {"success": True, "found": False}

        return {
            "success": True,
            "found": True,
            "kind": hover.kind,
            "contents": hover.contents,
            "origin": [hover.origin.start, hover.origin.end]
        }

    async def _handle_document_outline(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Handle document_outline tool call"""
        document = await self._load(arguments)
        symbols = self.query_engine.build_outline(document)

        return {
            "success": True,
            "file_path": document.file_id,
            "symbols": [symbol.to_dict() for symbol in symbols],
            "count": sum(1 for root in symbols for _ in root.walk())
        }

    async def _handle_get_dependencies(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Handle get_dependencies tool call"""
        document = await self._load(arguments)
        include_transitive = arguments.get("include_transitive", True)

        if include_transitive:
            graph = await self.query_engine.resolver.resolve(document.file_id, root_text=document.text)
            return {
                "success": True,
                "file_path": document.file_id,
                "dependencies": graph.files,
                "include_graph": graph.include_graph,
                "unreadable": graph.unreadable,
                "count": len(graph)
            }

        includes = await self.query_engine.resolver.direct_includes(document.file_id, document.text)
        return {
            "success": True,
            "file_path": document.file_id,
            "dependencies": includes,
            "count": len(includes)
        }

    async def _handle_semantic_tokens(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Handle semantic_tokens tool call"""
        document = await self._load(arguments)
        tokens = collect_tokens(document.text)

        if arguments.get("encoded", False):
            return {
                "success": True,
                "legend": legend(),
                "data": encode_tokens(document.text, tokens)
            }
        return {
            "success": True,
            "tokens": token_positions(document.text, tokens),
            "count": len(tokens)
        }

    def _handle_parse_uat_output(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Handle parse_uat_output tool call"""
        listing = parse_list_output(self._require(arguments, "output"))
        return {"success": True, **listing.to_dict()}

    def _handle_open_document(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Handle open_document tool call"""
        path = self._resolve_script_path(self._require(arguments, "file_path"))
        document = self.store.open_document(path, self._require(arguments, "text"))
        return {"success": True, "file_path": document.file_id}

    def _handle_close_document(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Handle close_document tool call"""
        path = self._resolve_script_path(self._require(arguments, "file_path"))
        return {"success": True, "closed": self.store.close_document(path)}

    def handle_request(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Answer one JSON-RPC 2.0 request"""
        method = request.get("method")
        if method == "tools/list":
            response = {"tools": self.tools}
        elif method == "tools/call":
            tool_name = request["params"]["name"]
            arguments = request["params"].get("arguments", {})
            response = asyncio.run(self.handle_tool_call(tool_name, arguments))
        else:
            return {
                "jsonrpc": "2.0",
                "id": request.get("id"),
                "error": {"code": -32601, "message": f"Method not found: {method}"}
            }

        return {
            "jsonrpc": "2.0",
            "id": request.get("id"),
            "result": response
        }

def run_mcp_server(config: NavigatorConfig):
    """Run MCP server reading newline-delimited JSON-RPC requests from stdin"""
    server = MCPServer(config)
    logger.info(f"BuildGraph Navigator MCP server started for {server.workspace_dir}")

    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue

        request = None
        try:
            request = json.loads(line)
            result = server.handle_request(request)
        except Exception as e:
            result = {
                "jsonrpc": "2.0",
                "id": request.get("id") if isinstance(request, dict) else None,
                "error": {
                    "code": -32603,
                    "message": str(e)
                }
            }
        print(json.dumps(result), flush=True)

def main(argv=None):
    import argparse

    parser = argparse.ArgumentParser(description="BuildGraph Navigator MCP Server")
    parser.add_argument("--workspace", help="Workspace directory")
    parser.add_argument("--env-file", help="Path to a .env file with BUILDGRAPH_* settings")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    args = parser.parse_args(argv)
    config = load_config(args.env_file, workspace_dir=args.workspace)

    # basicConfig logs to stderr, stdout carries the protocol
    setup_logging(config, args.verbose)
    run_mcp_server(config)

if __name__ == "__main__":
    main()
