"""
Tag Scanner - Tolerant lexical scan of BuildGraph XML scripts

The scanner never validates: a '<' that does not start a well-formed tag is
skipped and scanning carries on after it. Comment delimiters are reported as
events of their own, and tags written inside a comment are still reported
between them so that consumers decide what to suppress.
"""
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .utils import SourceSpan

COMMENT_OPEN = '<!--'
COMMENT_CLOSE = '-->'

# '<' and '>' may only appear inside quoted attribute values
_TAG_RE = re.compile(
    r'<(?P<close>/)?'
    r'(?P<name>[A-Za-z_][\w.:-]*)'
    r'(?P<body>(?:[^<>"\']|"[^"]*"|\'[^\']*\')*)'
    r'>'
)

_ATTRIBUTE_RE = re.compile(
    r'(?P<name>[A-Za-z_][\w.:-]*)\s*=\s*(?:"(?P<dq>[^"]*)"|\'(?P<sq>[^\']*)\')'
)

_HASH_TAG_RE = re.compile(r'#\w+')

@dataclass(frozen=True)
class Attribute:
    """A single Name="value" pair inside an opening tag"""
    name: str
    value: str
    span: SourceSpan            # Whole Name="value" text
    value_span: SourceSpan      # Value only, quotes excluded

@dataclass(frozen=True)
class OpenTag:
    name: str
    attributes: Dict[str, Attribute]    # Keyed by lower-cased attribute name
    self_closing: bool
    span: SourceSpan
    name_span: SourceSpan

    def get(self, attribute_name: str) -> Optional[Attribute]:
        """Case-insensitive attribute lookup"""
        return self.attributes.get(attribute_name.lower())

    def is_tag(self, tag_name: str) -> bool:
        return self.name.lower() == tag_name.lower()

@dataclass(frozen=True)
class CloseTag:
    name: str
    span: SourceSpan

    def is_tag(self, tag_name: str) -> bool:
        return self.name.lower() == tag_name.lower()

@dataclass(frozen=True)
class CommentStart:
    span: SourceSpan

@dataclass(frozen=True)
class CommentEnd:
    span: SourceSpan

TagEvent = Union[OpenTag, CloseTag, CommentStart, CommentEnd]

@dataclass(frozen=True)
class IncludeDirective:
    """Script path written in an <Include Script="..."> tag"""
    path: str
    value_span: SourceSpan
    tag: OpenTag = field(repr=False)

def parse_attributes(body: str, body_offset: int) -> Dict[str, Attribute]:
    """Extract attributes from the text between the tag name and '>'.

    The first occurrence of a duplicated attribute wins.
    """
    attributes = {}
    for match in _ATTRIBUTE_RE.finditer(body):
        value_group = 'dq' if match.group('dq') is not None else 'sq'
        key = match.group('name').lower()
        if key in attributes:
            continue
        attributes[key] = Attribute(
            name=match.group('name'),
            value=match.group(value_group),
            span=SourceSpan(body_offset + match.start(), body_offset + match.end()),
            value_span=SourceSpan(body_offset + match.start(value_group),
                                  body_offset + match.end(value_group))
        )
    return attributes

def _scan_tags(text: str, start: int, end: int) -> Iterator[TagEvent]:
    for match in _TAG_RE.finditer(text, start, end):
        span = SourceSpan(match.start(), match.end())
        if match.group('close'):
            yield CloseTag(name=match.group('name'), span=span)
            continue

        body = match.group('body')
        yield OpenTag(
            name=match.group('name'),
            attributes=parse_attributes(body, match.start('body')),
            self_closing=body.rstrip().endswith('/'),
            span=span,
            name_span=SourceSpan(match.start('name'), match.end('name'))
        )

def scan(text: str) -> Iterator[TagEvent]:
    """Lazily produce tag events in document order.

    Restartable: calling scan() again on the same text yields equal events.
    An unterminated comment runs to the end of the text without a CommentEnd.
    """
    position = 0
    length = len(text)
    while position <= length:
        comment_at = text.find(COMMENT_OPEN, position)
        region_end = comment_at if comment_at != -1 else length
        yield from _scan_tags(text, position, region_end)
        if comment_at == -1:
            return

        content_start = comment_at + len(COMMENT_OPEN)
        yield CommentStart(SourceSpan(comment_at, content_start))

        close_at = text.find(COMMENT_CLOSE, content_start)
        content_end = close_at if close_at != -1 else length
        yield from _scan_tags(text, content_start, content_end)
        if close_at == -1:
            return

        position = close_at + len(COMMENT_CLOSE)
        yield CommentEnd(SourceSpan(close_at, position))

def structural_events(events: Iterable[TagEvent]) -> Iterator[Union[OpenTag, CloseTag]]:
    """Drop comment delimiters and every tag that sits between them"""
    in_comment = False
    for event in events:
        if isinstance(event, CommentStart):
            in_comment = True
        elif isinstance(event, CommentEnd):
            in_comment = False
        elif not in_comment:
            yield event

def open_tags(text: str, tag_name: Optional[str] = None) -> Iterator[OpenTag]:
    """Opening tags outside comments, optionally restricted to one tag name"""
    for event in structural_events(scan(text)):
        if isinstance(event, OpenTag) and (tag_name is None or event.is_tag(tag_name)):
            yield event

def comment_spans(text: str) -> List[SourceSpan]:
    """Spans of every comment, delimiters included"""
    spans = []
    opened_at = None
    for event in scan(text):
        if isinstance(event, CommentStart):
            opened_at = event.span.start
        elif isinstance(event, CommentEnd) and opened_at is not None:
            spans.append(SourceSpan(opened_at, event.span.end))
            opened_at = None
    if opened_at is not None:
        spans.append(SourceSpan(opened_at, len(text)))
    return spans

def in_comment(text: str, offset: int) -> bool:
    # Strict bounds: a cursor just before '<!--' or just after '-->' is outside
    return any(span.start < offset < span.end for span in comment_spans(text))

def include_directives(text: str) -> List[IncludeDirective]:
    """Every <Include Script="..."> outside comments, in document order"""
    directives = []
    for tag in open_tags(text, 'Include'):
        script = tag.get('Script')
        if script is None or not script.value.strip():
            continue
        directives.append(IncludeDirective(script.value, script.value_span, tag))
    return directives

def hash_tags(value: str, value_offset: int = 0) -> List[Tuple[str, SourceSpan]]:
    """Split a Produces-style value into its #Tag tokens and their spans"""
    return [
        (match.group(0), SourceSpan(value_offset + match.start(), value_offset + match.end()))
        for match in _HASH_TAG_RE.finditer(value)
    ]
