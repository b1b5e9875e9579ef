"""
Semantic Tokens - Highlighting for $(Variables), #Tags and tag declarations
"""
import re
from bisect import bisect_right
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .document_store import CancellationToken
from .tag_scanner import comment_spans, hash_tags, open_tags
from .utils import SourceSpan, line_starts, offset_to_position

TOKEN_TYPES = ['buildGraphTag', 'buildGraphVariable']
TOKEN_MODIFIERS = ['declaration']

_VARIABLE_RE = re.compile(r'\$\((\w+)\)')

@dataclass(frozen=True)
class SemanticToken:
    span: SourceSpan
    token_type: str
    modifiers: Tuple[str, ...] = ()

def legend() -> dict:
    return {'tokenTypes': list(TOKEN_TYPES), 'tokenModifiers': list(TOKEN_MODIFIERS)}

def collect_tokens(text: str, token: Optional[CancellationToken] = None) -> List[SemanticToken]:
    """All highlightable tokens outside comments, in document order"""
    if token is not None and token.is_cancellation_requested:
        return []

    comments = comment_spans(text)
    comment_starts = [c.start for c in comments]

    def commented(span: SourceSpan) -> bool:
        index = bisect_right(comment_starts, span.start) - 1
        return index >= 0 and span.end <= comments[index].end

    declarations = set()
    for tag in open_tags(text):
        produces = tag.get('Produces')
        if produces is None:
            continue
        for _, span in hash_tags(produces.value, produces.value_span.start):
            declarations.add(span)

    tokens = []
    for match in _VARIABLE_RE.finditer(text):
        span = SourceSpan(match.start(), match.end())
        if not commented(span):
            tokens.append(SemanticToken(span, 'buildGraphVariable'))

    for _, span in hash_tags(text):
        if commented(span):
            continue
        modifiers = ('declaration',) if span in declarations else ()
        tokens.append(SemanticToken(span, 'buildGraphTag', modifiers))

    tokens.sort(key=lambda t: (t.span.start, t.span.end))
    return tokens

def encode_tokens(text: str, tokens: List[SemanticToken]) -> List[int]:
    """LSP relative encoding: deltaLine, deltaStart, length, type index, modifier bits.

    Tokens are single-line, so any token spanning a line break is dropped.
    """
    data = []
    starts = line_starts(text)
    previous_line, previous_start = 0, 0
    for semantic_token in sorted(tokens, key=lambda t: t.span.start):
        (line, start), (end_line, _) = semantic_token.span.to_range(text, starts)
        if end_line != line:
            continue
        delta_line = line - previous_line
        delta_start = start - previous_start if delta_line == 0 else start
        modifier_bits = 0
        for modifier in semantic_token.modifiers:
            modifier_bits |= 1 << TOKEN_MODIFIERS.index(modifier)
        data.extend([delta_line, delta_start, semantic_token.span.length,
                     TOKEN_TYPES.index(semantic_token.token_type), modifier_bits])
        previous_line, previous_start = line, start
    return data

def token_positions(text: str, tokens: List[SemanticToken]) -> List[dict]:
    """Readable form of tokens for JSON output"""
    rows = []
    starts = line_starts(text)
    for semantic_token in tokens:
        line, character = offset_to_position(text, semantic_token.span.start, starts)
        rows.append({
            'line': line,
            'character': character,
            'length': semantic_token.span.length,
            'type': semantic_token.token_type,
            'modifiers': list(semantic_token.modifiers),
        })
    return rows
