"""
Symbol Table - Rebuilds a document outline from the flat tag event stream

BuildGraph scripts are not required to be well-formed, so nesting is
reconstructed with an explicit stack of open elements instead of a parser:
close tags that do not match the innermost open element are ignored.
"""
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .tag_scanner import (CloseTag, CommentEnd, CommentStart, OpenTag,
                          hash_tags, include_directives, scan)
from .utils import SourceSpan

VARIABLES_GROUP = 'Variables'

class SymbolCategory(str, Enum):
    AGENT = 'Agent'
    NODE = 'Node'
    MACRO = 'Macro'
    PROPERTY = 'Property'
    OPTION = 'Option'
    ENV_VAR = 'EnvVar'
    PRODUCES = 'Produces'
    INCLUDE = 'Include'
    GROUP = 'Group'

    @property
    def is_value(self) -> bool:
        return self in (SymbolCategory.PROPERTY, SymbolCategory.OPTION, SymbolCategory.ENV_VAR)

# LSP SymbolKind numbers
_LSP_KINDS = {
    SymbolCategory.AGENT: 2,        # Module
    SymbolCategory.NODE: 5,         # Class
    SymbolCategory.MACRO: 12,       # Function
    SymbolCategory.PROPERTY: 7,     # Property
    SymbolCategory.OPTION: 22,      # EnumMember
    SymbolCategory.ENV_VAR: 13,     # Variable
    SymbolCategory.PRODUCES: 20,    # Key
    SymbolCategory.INCLUDE: 1,      # File
    SymbolCategory.GROUP: 3,        # Namespace
}

# Tags that open an outline entry, keyed by lower-cased tag name
OUTLINE_TAGS = {
    'agent': SymbolCategory.AGENT,
    'node': SymbolCategory.NODE,
    'macro': SymbolCategory.MACRO,
    'property': SymbolCategory.PROPERTY,
    'option': SymbolCategory.OPTION,
    'envvar': SymbolCategory.ENV_VAR,
}

@dataclass
class Symbol:
    """One outline entry"""
    name: str
    category: SymbolCategory
    full_range: SourceSpan          # Whole element, open tag through close tag
    name_range: SourceSpan          # Identifying name only
    detail: str = ''                # Tag name as written in the script
    children: List['Symbol'] = field(default_factory=list)

    @property
    def lsp_kind(self) -> int:
        return _LSP_KINDS[self.category]

    def walk(self):
        """Depth-first iteration over this symbol and its descendants"""
        yield self
        for child in self.children:
            yield from child.walk()

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'category': self.category.value,
            'kind': self.lsp_kind,
            'detail': self.detail,
            'full_range': [self.full_range.start, self.full_range.end],
            'name_range': [self.name_range.start, self.name_range.end],
            'children': [child.to_dict() for child in self.children],
        }

@dataclass
class _OpenElement:
    tag_name: str
    symbol: Symbol

def _symbol_from_tag(tag: OpenTag, category: SymbolCategory) -> Symbol:
    name_attribute = tag.get('Name')
    if name_attribute is not None and name_attribute.value:
        name, name_range = name_attribute.value, name_attribute.value_span
    else:
        name, name_range = tag.name, tag.name_span

    symbol = Symbol(name=name, category=category, full_range=tag.span,
                    name_range=name_range, detail=tag.name)

    if category is SymbolCategory.NODE:
        produces = tag.get('Produces')
        if produces is not None:
            for token, span in hash_tags(produces.value, produces.value_span.start):
                symbol.children.append(Symbol(
                    name=token,
                    category=SymbolCategory.PRODUCES,
                    full_range=span,
                    name_range=SourceSpan(span.start + 1, span.end),
                    detail=produces.name
                ))
    return symbol

def _extend_end(symbol: Symbol, end: int):
    if end > symbol.full_range.end:
        symbol.full_range = SourceSpan(symbol.full_range.start, end)

def _sort(symbols: List[Symbol]) -> List[Symbol]:
    symbols.sort(key=lambda s: s.full_range.start)
    for symbol in symbols:
        _sort(symbol.children)
    return symbols

def _include_symbols(text: str) -> List[Symbol]:
    symbols = []
    for include in include_directives(text):
        normalized = include.path.replace('\\', '/').rstrip('/')
        symbols.append(Symbol(
            name=os.path.basename(normalized) or include.path,
            category=SymbolCategory.INCLUDE,
            full_range=include.tag.span,
            name_range=include.value_span,
            detail=include.tag.name
        ))
    return symbols

def build_outline(text: str) -> List[Symbol]:
    """Build the outline of one script, sorted by start offset at every level"""
    roots: List[Symbol] = []
    variables: List[Symbol] = []
    stack: List[_OpenElement] = []
    in_comment = False

    for event in scan(text):
        if isinstance(event, CommentStart):
            in_comment = True
            continue
        if isinstance(event, CommentEnd):
            in_comment = False
            continue
        if in_comment:
            continue

        if isinstance(event, OpenTag):
            category = OUTLINE_TAGS.get(event.name.lower())
            if category is None:
                continue
            symbol = _symbol_from_tag(event, category)
            if stack:
                stack[-1].symbol.children.append(symbol)
            elif category.is_value:
                variables.append(symbol)
            else:
                roots.append(symbol)
            if not event.self_closing:
                stack.append(_OpenElement(event.name, symbol))

        elif isinstance(event, CloseTag):
            if stack and stack[-1].tag_name.lower() == event.name.lower():
                _extend_end(stack.pop().symbol, event.span.end)

    # Elements never closed still have to enclose whatever was nested in them
    while stack:
        symbol = stack.pop().symbol
        for child in symbol.children:
            _extend_end(symbol, child.full_range.end)

    if variables:
        first = variables[0]
        roots.append(Symbol(
            name=VARIABLES_GROUP,
            category=SymbolCategory.GROUP,
            full_range=SourceSpan(first.full_range.start,
                                  max(v.full_range.end for v in variables)),
            name_range=first.name_range,
            children=variables
        ))

    roots.extend(_include_symbols(text))
    return _sort(roots)

def find_symbols(symbols: List[Symbol], name: str,
                 category: Optional[SymbolCategory] = None) -> List[Symbol]:
    """All symbols in an outline with the given name, depth-first"""
    matches = []
    for root in symbols:
        for symbol in root.walk():
            if symbol.name == name and (category is None or symbol.category is category):
                matches.append(symbol)
    return matches
