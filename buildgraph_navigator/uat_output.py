"""
UAT Output - Scrapes the text printed by a BuildGraph -ListOnly run

Best effort and order preserving: lines that do not fit the section being
read are skipped.
"""
import re
from dataclasses import dataclass, field
from typing import List, Optional

SECTION_OPTIONS = 'Options:'
SECTION_GRAPH = 'Graph:'
SECTION_AGGREGATES = 'Aggregates:'
_SECTIONS = (SECTION_OPTIONS, SECTION_GRAPH, SECTION_AGGREGATES)

_OPTION_RE = re.compile(r'-set:(?P<name>[^=\s]+)=(?P<rest>.*)', re.IGNORECASE)
_NODE_RE = re.compile(r'Node:\s*(?P<name>.+)', re.IGNORECASE)

@dataclass
class OptionEntry:
    name: str
    detail: str = ''        # Remainder of the line after '-set:NAME='

@dataclass
class ListOutput:
    options: List[OptionEntry] = field(default_factory=list)
    nodes: List[str] = field(default_factory=list)
    aggregates: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'options': [{'name': o.name, 'detail': o.detail} for o in self.options],
            'nodes': list(self.nodes),
            'aggregates': list(self.aggregates),
        }

def parse_list_output(text: str) -> ListOutput:
    result = ListOutput()
    section: Optional[str] = None

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if line in _SECTIONS:
            section = line
            continue

        if section == SECTION_OPTIONS:
            match = _OPTION_RE.search(line)
            if match:
                result.options.append(OptionEntry(match.group('name'), match.group('rest').strip()))

        elif section == SECTION_GRAPH:
            match = _NODE_RE.match(line)
            if match:
                result.nodes.append(match.group('name').strip())

        elif section == SECTION_AGGREGATES:
            if not line:
                section = None
                continue
            result.aggregates.append(line)

    return result
