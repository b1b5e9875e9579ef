#!/usr/bin/env python3
"""
BuildGraph Search Tool

Command line front end for BuildGraph Navigator: go to definition, hover,
outline, include dependencies and highlighting tokens for BuildGraph XML
scripts, plus a scraper for BuildGraph -ListOnly output.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from buildgraph_navigator.config import load_config, setup_logging
from buildgraph_navigator.document_store import DocumentStore, FileSystemReader
from buildgraph_navigator.exceptions import BuildGraphNavigatorError
from buildgraph_navigator.query_engine import QueryEngine
from buildgraph_navigator.semantic_tokens import collect_tokens, token_positions
from buildgraph_navigator.uat_output import parse_list_output
from buildgraph_navigator.utils import line_starts, offset_to_position


def print_symbols(text, symbols, indent=0, starts=None):
    """Print an outline as an indented tree"""
    if starts is None:
        starts = line_starts(text)
    for symbol in symbols:
        line, character = offset_to_position(text, symbol.full_range.start, starts)
        print(f"{'  ' * indent}{symbol.category.value:<9} {symbol.name}  ({line + 1}:{character + 1})")
        print_symbols(text, symbol.children, indent + 1, starts)


async def run_command(args, engine, store):
    """Execute one subcommand and return (exit code, JSON-able result)"""
    if args.command == 'parse-output':
        listing = parse_list_output(Path(args.file).read_text(encoding='utf-8', errors='ignore'))
        if not args.json:
            print("Options:")
            for option in listing.options:
                print(f"  {option.name}")
            print("Nodes:")
            for node in listing.nodes:
                print(f"  {node}")
            print("Aggregates:")
            for aggregate in listing.aggregates:
                print(f"  {aggregate}")
        return 0, listing.to_dict()

    document = await store.load(args.file)

    if args.command in ('definition', 'hover'):
        offset = document.offset_at(args.line - 1, args.column - 1)

        if args.command == 'hover':
            hover = await engine.classify_hover(document, offset)
            if hover is None:
                if not args.json:
                    print("Nothing to show at this position")
                return 1, {'found': False}
            if not args.json:
                print(hover.contents)
            return 0, {'found': True, 'kind': hover.kind, 'contents': hover.contents}

        definition = await engine.resolve_at(document, offset)
        if definition is None:
            if not args.json:
                print("No definition found")
            return 1, {'found': False, 'warnings': engine.warnings}
        target_text = await store.read_text(definition.target_file)
        result = definition.to_dict(target_text)
        if not args.json:
            print(f"{definition.target_file}:{result['line'] + 1}:{result['character'] + 1}")
            print(f"  {definition.preview_line}")
        return 0, {'found': True, 'definition': result}

    if args.command == 'outline':
        symbols = engine.build_outline(document)
        if not args.json:
            print_symbols(document.text, symbols)
        return 0, [symbol.to_dict() for symbol in symbols]

    if args.command == 'deps':
        graph = await engine.resolver.resolve(document.file_id, root_text=document.text)
        if args.graph_json:
            graph.serialize_to_json(args.graph_json)
            logging.info(f"Dependency graph written to {args.graph_json}")
        if not args.json:
            print(f"Dependencies of {document.file_id}:")
            for file_id in graph:
                marker = '  (unreadable)' if file_id in graph.unreadable else ''
                print(f"  {file_id}{marker}")
        return 0, graph.to_dict()

    if args.command == 'tokens':
        tokens = token_positions(document.text, collect_tokens(document.text))
        if not args.json:
            for row in tokens:
                modifiers = f" [{', '.join(row['modifiers'])}]" if row['modifiers'] else ''
                print(f"{row['line'] + 1}:{row['character'] + 1}  {row['type']}{modifiers}")
        return 0, tokens

    raise ValueError(f"Unknown command: {args.command}")


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='BuildGraph Search Tool - Navigate BuildGraph XML scripts',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Jump from <Expand Name="..."> on line 42, column 20 to its <Macro>
  %(prog)s definition Build/InstalledBuild.xml 42 20

  # Print the outline of a script
  %(prog)s outline Build/InstalledBuild.xml

  # List every script reachable through <Include>
  %(prog)s deps Build/InstalledBuild.xml --graph-json deps.json

  # Scrape the output of RunUAT BuildGraph -ListOnly
  %(prog)s parse-output listonly.log
        """
    )

    parser.add_argument('--env-file',
                       help='Path to a .env file with BUILDGRAPH_* settings')

    parser.add_argument('--json',
                       action='store_true',
                       help='Output in JSON format')

    parser.add_argument('--verbose', '-v',
                       action='store_true',
                       help='Enable verbose logging for debugging')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    for name, help_text in (('definition', 'Go to definition of the reference at LINE COLUMN'),
                            ('hover', 'Show the hover preview for the reference at LINE COLUMN')):
        position_parser = subparsers.add_parser(name, help=help_text)
        position_parser.add_argument('file', help='BuildGraph script')
        position_parser.add_argument('line', type=int, help='1-based line')
        position_parser.add_argument('column', type=int, help='1-based column')

    outline_parser = subparsers.add_parser('outline', help='Print the symbol outline of a script')
    outline_parser.add_argument('file', help='BuildGraph script')

    deps_parser = subparsers.add_parser('deps', help='List scripts reachable through <Include>')
    deps_parser.add_argument('file', help='BuildGraph script')
    deps_parser.add_argument('--graph-json',
                             help='Write the include graph to a JSON file')

    tokens_parser = subparsers.add_parser('tokens', help='List $(Variable) and #Tag tokens')
    tokens_parser.add_argument('file', help='BuildGraph script')

    output_parser = subparsers.add_parser('parse-output',
                                          help='Scrape BuildGraph -ListOnly console output')
    output_parser.add_argument('file', help='Captured output file')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 2

    # Configure logging
    config = load_config(args.env_file)
    setup_logging(config, args.verbose)

    store = DocumentStore(FileSystemReader(config.encoding))
    engine = QueryEngine(store, warn_on_missing_include=config.warn_on_missing_include)

    try:
        exit_code, result = asyncio.run(run_command(args, engine, store))
    except (BuildGraphNavigatorError, OSError) as e:
        logging.error(str(e))
        return 1

    if args.json:
        print(json.dumps(result, indent=2))
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
