"""
References - Works out what kind of reference sits under a cursor

Four kinds are recognised, tried in this order:
    <Expand Name="X">        macro expansion, cursor on X
    <Include Script="P">     file inclusion, cursor on P
    #Tag                     free-text tag reference
    $(Name)                  variable reference, cursor between the parentheses
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .tag_scanner import in_comment, open_tags
from .utils import SourceSpan, line_bounds

class ReferenceKind(str, Enum):
    EXPAND = 'expand'
    INCLUDE = 'include'
    TAG = 'tag'
    VARIABLE = 'variable'

class SearchScope(str, Enum):
    DOCUMENT = 'document'                   # The current script only
    DIRECT_INCLUDES = 'direct_includes'     # Current script plus the scripts it includes itself
    TRANSITIVE = 'transitive'               # Every script reachable through includes

DEFAULT_SEARCH_SCOPES: Dict[ReferenceKind, SearchScope] = {
    ReferenceKind.EXPAND: SearchScope.TRANSITIVE,
    ReferenceKind.INCLUDE: SearchScope.DOCUMENT,
    ReferenceKind.TAG: SearchScope.DIRECT_INCLUDES,
    ReferenceKind.VARIABLE: SearchScope.TRANSITIVE,
}

_TAG_REFERENCE_RE = re.compile(r'#\w+')
_VARIABLE_PREFIX_RE = re.compile(r'\$\(([^()]*)$')
_VARIABLE_SUFFIX_RE = re.compile(r'^([^()]*)\)')

@dataclass(frozen=True)
class Reference:
    origin: SourceSpan

    kind = None

@dataclass(frozen=True)
class ExpandReference(Reference):
    macro_name: str = ''

    kind = ReferenceKind.EXPAND

@dataclass(frozen=True)
class IncludeReference(Reference):
    path: str = ''

    kind = ReferenceKind.INCLUDE

@dataclass(frozen=True)
class TagReference(Reference):
    tag_name: str = ''          # Includes the leading '#'

    kind = ReferenceKind.TAG

@dataclass(frozen=True)
class VariableReference(Reference):
    variable_name: str = ''

    kind = ReferenceKind.VARIABLE

def _attribute_reference(text: str, offset: int, tag_name: str, attribute_name: str):
    for tag in open_tags(text, tag_name):
        if tag.span.start > offset:
            break
        attribute = tag.get(attribute_name)
        if attribute is not None and attribute.value and attribute.value_span.contains(offset):
            return attribute
    return None

def find_expand_reference(text: str, offset: int) -> Optional[ExpandReference]:
    attribute = _attribute_reference(text, offset, 'Expand', 'Name')
    if attribute is None:
        return None
    return ExpandReference(origin=attribute.value_span, macro_name=attribute.value)

def find_include_reference(text: str, offset: int) -> Optional[IncludeReference]:
    attribute = _attribute_reference(text, offset, 'Include', 'Script')
    if attribute is None:
        return None
    return IncludeReference(origin=attribute.value_span, path=attribute.value)

def find_tag_reference(text: str, offset: int) -> Optional[TagReference]:
    line_start, line_end = line_bounds(text, offset)
    for match in _TAG_REFERENCE_RE.finditer(text, line_start, line_end):
        span = SourceSpan(match.start(), match.end())
        if span.contains(offset):
            return TagReference(origin=span, tag_name=match.group(0))
    return None

def find_variable_reference(text: str, offset: int) -> Optional[VariableReference]:
    """The cursor may sit anywhere between '$(' and ')', even mid-name"""
    line_start, line_end = line_bounds(text, offset)
    prefix_match = _VARIABLE_PREFIX_RE.search(text[line_start:offset])
    suffix_match = _VARIABLE_SUFFIX_RE.match(text[offset:line_end])
    if prefix_match is None or suffix_match is None:
        return None

    variable_name = prefix_match.group(1) + suffix_match.group(1)
    if not variable_name.strip():
        return None

    origin = SourceSpan(line_start + prefix_match.start(), offset + suffix_match.end())
    return VariableReference(origin=origin, variable_name=variable_name.strip())

_FINDERS = (
    find_expand_reference,
    find_include_reference,
    find_tag_reference,
    find_variable_reference,
)

def candidate_references(text: str, offset: int) -> List[Reference]:
    """Every reference under offset, in dispatch order.

    Forms can overlap, e.g. $(RootDir) written inside an Include Script value,
    so callers try each candidate until one resolves. Nothing inside a comment
    is ever treated as a reference.
    """
    if offset < 0 or offset > len(text) or in_comment(text, offset):
        return []
    candidates = []
    for finder in _FINDERS:
        reference = finder(text, offset)
        if reference is not None:
            candidates.append(reference)
    return candidates

def classify_reference(text: str, offset: int) -> Optional[Reference]:
    """Return the first reference under offset, or None"""
    candidates = candidate_references(text, offset)
    return candidates[0] if candidates else None
