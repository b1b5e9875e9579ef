"""
Tests for go to definition and hover
"""
import asyncio
import pytest
import tempfile
from pathlib import Path
from buildgraph_navigator.document_store import CancellationToken, DocumentStore, FileSystemReader
from buildgraph_navigator.query_engine import DEFINITION_PREVIEW, INCLUDE_PREVIEW, QueryEngine
from buildgraph_navigator.references import (ExpandReference, IncludeReference, ReferenceKind,
                                             SearchScope, TagReference, VariableReference,
                                             candidate_references, classify_reference)
from buildgraph_navigator.utils import normalize_path

ROOT_SCRIPT = '''<BuildGraph>
  <Include Script="Direct.xml"/>
  <Include Script="Missing.xml"/>
  <Property Name="OutputDir" Value="Out"/>
  <Agent Name="Tools" Type="Win64">
    <Node Name="Build" Requires="#DirectTag;#FarTag">
      <Expand Name="FarMacro" Dir="$(OutputDir)" Other="$(FarValue)"/>
      <Log Message="$(outputdir) $(Unknown) $(NoSuchMacro)"/>
    </Node>
  </Agent>
  <!-- <Expand Name="Dead"/> $(OutputDir) -->
  <Expand Name="NoSuchMacro"/>
</BuildGraph>
'''

DIRECT_SCRIPT = '''<Include Script="Nested/Far.xml"/>
<Property Name="OutputDir" Value="Shadowed"/>
<Node Name="Direct Node" Produces="#DirectTag"/>
'''

FAR_SCRIPT = '''<Macro Name="FarMacro" Arguments="Dir">
  <Log Message="$(Dir)"/>
</Macro>
<Node Name="Far Node" Produces="#FarTag"/>
<Property Name="FarValue" Value="1"/>
'''

def _offset(text, needle, delta=1):
    return text.index(needle) + delta

class CancellingReader(FileSystemReader):
    """Cancels the token as soon as anything is read"""

    def __init__(self, token):
        super().__init__()
        self.token = token

    async def read_text(self, file_id):
        self.token.cancel()
        return await super().read_text(file_id)

class TestQueryEngine:
    """Test cases for QueryEngine"""

    @pytest.fixture
    def temp_workspace(self):
        """Root includes Direct, Direct includes Nested/Far"""
        with tempfile.TemporaryDirectory() as temp_dir:
            workspace = Path(temp_dir)
            (workspace / "Nested").mkdir()
            (workspace / "Root.xml").write_text(ROOT_SCRIPT)
            (workspace / "Direct.xml").write_text(DIRECT_SCRIPT)
            (workspace / "Nested" / "Far.xml").write_text(FAR_SCRIPT)

            yield {
                'workspace': workspace,
                'root': normalize_path(str(workspace / "Root.xml")),
                'direct': normalize_path(str(workspace / "Direct.xml")),
                'far': normalize_path(str(workspace / "Nested" / "Far.xml")),
            }

    @pytest.fixture
    def store(self):
        return DocumentStore(FileSystemReader())

    @pytest.fixture
    def engine(self, store):
        return QueryEngine(store)

    @pytest.fixture
    def document(self, store, temp_workspace):
        return asyncio.run(store.load(temp_workspace['root']))

    def test_classify_reference_kinds(self, document):
        """Each reference form is recognised under the cursor"""
        text = document.text

        assert isinstance(classify_reference(text, _offset(text, 'FarMacro')), ExpandReference)
        assert isinstance(classify_reference(text, _offset(text, 'Direct.xml')), IncludeReference)
        assert isinstance(classify_reference(text, _offset(text, '#DirectTag')), TagReference)
        reference = classify_reference(text, _offset(text, 'FarValue'))
        assert isinstance(reference, VariableReference)
        assert reference.variable_name == 'FarValue'
        assert classify_reference(text, _offset(text, '<Agent')) is None

    def test_expand_resolves_transitively(self, engine, document, temp_workspace):
        """A macro two includes away is found"""
        text = document.text
        definition = asyncio.run(engine.resolve_at(document, _offset(text, 'FarMacro')))

        assert definition.target_file == temp_workspace['far']
        assert definition.preview_line == '<Macro Name="FarMacro" Arguments="Dir">'
        assert FAR_SCRIPT[definition.selection_span.start:definition.selection_span.end] == 'FarMacro'
        assert text[definition.origin.start:definition.origin.end] == 'FarMacro'

    def test_definition_to_dict(self, engine, document):
        definition = asyncio.run(engine.resolve_at(document, _offset(document.text, 'FarMacro')))
        result = definition.to_dict(FAR_SCRIPT)

        assert result['kind'] == 'expand'
        assert result['line'] == 0
        assert result['character'] == 0

    def test_include_resolves_to_first_line(self, engine, document, temp_workspace):
        definition = asyncio.run(engine.resolve_at(document, _offset(document.text, 'Direct.xml')))

        assert definition.target_file == temp_workspace['direct']
        assert definition.target_span.start == 0
        assert definition.preview_line == '<Include Script="Nested/Far.xml"/>'
        assert engine.warnings == []

    def test_missing_include_warns_once(self, store, document):
        """A missing include yields no definition and exactly one warning"""
        received = []
        engine = QueryEngine(store, on_warning=received.append)
        definition = asyncio.run(engine.resolve_at(document, _offset(document.text, 'Missing.xml')))

        assert definition is None
        assert len(engine.warnings) == 1
        assert 'Missing.xml' in engine.warnings[0]
        assert received == engine.warnings

    def test_missing_include_warning_can_be_disabled(self, store, document):
        engine = QueryEngine(store, warn_on_missing_include=False)
        asyncio.run(engine.resolve_at(document, _offset(document.text, 'Missing.xml')))
        assert engine.warnings == []

    def test_tag_resolves_in_direct_include(self, engine, document, temp_workspace):
        definition = asyncio.run(engine.resolve_at(document, _offset(document.text, '#DirectTag')))

        assert definition.target_file == temp_workspace['direct']
        span = definition.target_span
        assert DIRECT_SCRIPT[span.start:span.end] == '#DirectTag'

    def test_tag_two_includes_away_is_not_found(self, engine, document):
        """#Tag search stops at direct includes while $(Variable) search does not"""
        text = document.text
        assert asyncio.run(engine.resolve_at(document, _offset(text, '#FarTag'))) is None

        variable = asyncio.run(engine.resolve_at(document, _offset(text, 'FarValue')))
        assert variable is not None

    def test_scope_override(self, store, document, temp_workspace):
        engine = QueryEngine(store, search_scopes={ReferenceKind.TAG: SearchScope.TRANSITIVE})
        definition = asyncio.run(engine.resolve_at(document, _offset(document.text, '#FarTag')))

        assert definition.target_file == temp_workspace['far']

    def test_variable_in_current_document_wins(self, engine, document, temp_workspace):
        """First match in search order wins over a shadowing definition in an include"""
        definition = asyncio.run(engine.resolve_at(document, _offset(document.text, 'OutputDir)')))

        assert definition.target_file == temp_workspace['root']
        assert definition.preview_line == '<Property Name="OutputDir" Value="Out"/>'

    def test_variable_cursor_mid_name(self, engine, document):
        text = document.text
        offset = text.index('$(OutputDir)') + len('$(Output')
        reference = classify_reference(text, offset)

        assert reference.variable_name == 'OutputDir'
        assert text[reference.origin.start:reference.origin.end] == '$(OutputDir)'
        assert asyncio.run(engine.resolve_at(document, offset)) is not None

    def test_variable_names_match_case_insensitively(self, engine, document, temp_workspace):
        definition = asyncio.run(engine.resolve_at(document, _offset(document.text, 'outputdir')))
        assert definition.target_file == temp_workspace['root']

    def test_expand_name_is_not_a_variable_definition(self, engine, document):
        """<Expand Name="X"> is a reference, never a definition of X"""
        text = document.text
        assert asyncio.run(engine.resolve_at(document, _offset(text, '$(NoSuchMacro)', 3))) is None

    def test_unknown_variable(self, engine, document):
        assert asyncio.run(engine.resolve_at(document, _offset(document.text, 'Unknown'))) is None

    def test_commented_reference_is_ignored(self, engine, document):
        text = document.text
        assert classify_reference(text, _offset(text, 'Dead')) is None
        commented_variable = text.index('$(OutputDir) -->') + 3
        assert classify_reference(text, commented_variable) is None
        assert asyncio.run(engine.resolve_at(document, _offset(text, 'Dead'))) is None

    def test_cancellation_returns_none(self, document):
        token = CancellationToken()
        engine = QueryEngine(CancellingReader(token))
        definition = asyncio.run(engine.resolve_at(document, _offset(document.text, 'FarMacro'), token))

        assert definition is None

    def test_cancelled_token_short_circuits(self, engine, document):
        token = CancellationToken()
        token.cancel()
        assert asyncio.run(engine.resolve_at(document, _offset(document.text, 'FarMacro'), token)) is None

    def test_unsaved_buffer_is_searched(self, store, engine, temp_workspace):
        """Open documents shadow the file on disk"""
        store.open_document(temp_workspace['direct'], '<Macro Name="FarMacro"/>\n')
        document = asyncio.run(store.load(temp_workspace['root']))
        definition = asyncio.run(engine.resolve_at(document, _offset(document.text, 'FarMacro')))

        assert definition.target_file == temp_workspace['direct']

    def test_hover_definition_preview(self, engine, document):
        hover = asyncio.run(engine.classify_hover(document, _offset(document.text, 'FarMacro')))

        assert hover.kind == DEFINITION_PREVIEW
        assert hover.contents == '```xml\n<Macro Name="FarMacro" Arguments="Dir">\n```'

    def test_hover_include_preview(self, engine, document):
        hover = asyncio.run(engine.classify_hover(document, _offset(document.text, 'Direct.xml')))

        assert hover.kind == INCLUDE_PREVIEW
        assert hover.contents == '*(include)*\n```xml\nDirect.xml\n```'

    def test_hover_missing_include_is_silent(self, engine, document):
        hover = asyncio.run(engine.classify_hover(document, _offset(document.text, 'Missing.xml')))

        assert hover is None
        assert engine.warnings == []

    def test_hover_outside_reference(self, engine, document):
        assert asyncio.run(engine.classify_hover(document, 0)) is None

class CountingReader(FileSystemReader):
    """FileSystemReader that records every read it performs"""

    def __init__(self):
        super().__init__()
        self.reads = []

    async def read_text(self, file_id):
        self.reads.append(file_id)
        return await super().read_text(file_id)

class TestOverlappingReferences:
    """Test cases for references written inside other references"""

    @pytest.fixture
    def temp_workspace(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            workspace = Path(temp_dir)
            script = (
                '<BuildGraph>\n'
                '  <Property Name="RootDir" Value="."/>\n'
                '  <Include Script="$(RootDir)/Common.xml"/>\n'
                '  <Include Script="$(Undefined)/Other.xml"/>\n'
                '  <Expand Name="$(MacroName)"/>\n'
                '  <Property Name="MacroName" Value="CopyFiles"/>\n'
                '</BuildGraph>\n'
            )
            (workspace / "Root.xml").write_text(script)
            yield {
                'workspace': workspace,
                'root': normalize_path(str(workspace / "Root.xml")),
                'text': script,
            }

    @pytest.fixture
    def store(self):
        return DocumentStore(FileSystemReader())

    @pytest.fixture
    def document(self, store, temp_workspace):
        return asyncio.run(store.load(temp_workspace['root']))

    def test_candidates_in_dispatch_order(self, temp_workspace):
        text = temp_workspace['text']
        candidates = candidate_references(text, _offset(text, 'RootDir)'))

        assert [type(c) for c in candidates] == [IncludeReference, VariableReference]
        assert classify_reference(text, _offset(text, 'RootDir)')) == candidates[0]

    def test_variable_inside_include_resolves(self, store, document, temp_workspace):
        """An unresolvable include falls through to the $(Variable) under the cursor"""
        engine = QueryEngine(store)
        definition = asyncio.run(engine.resolve_at(document, _offset(document.text, 'RootDir)')))

        assert definition.target_file == temp_workspace['root']
        assert definition.preview_line == '<Property Name="RootDir" Value="."/>'
        assert isinstance(definition.reference, VariableReference)
        assert engine.warnings == []

    def test_variable_inside_expand_resolves(self, store, document):
        engine = QueryEngine(store)
        definition = asyncio.run(engine.resolve_at(document, _offset(document.text, 'MacroName)')))

        assert definition.preview_line == '<Property Name="MacroName" Value="CopyFiles"/>'
        assert engine.warnings == []

    def test_nothing_resolves_warns_once(self, store, document):
        """The missing include is still reported when no candidate resolves"""
        engine = QueryEngine(store)
        definition = asyncio.run(engine.resolve_at(document, _offset(document.text, 'Undefined')))

        assert definition is None
        assert len(engine.warnings) == 1
        assert 'Other.xml' in engine.warnings[0]

    def test_hover_falls_through_to_variable(self, store, document):
        engine = QueryEngine(store)
        hover = asyncio.run(engine.classify_hover(document, _offset(document.text, 'RootDir)')))

        assert hover.kind == DEFINITION_PREVIEW
        assert hover.contents == '```xml\n<Property Name="RootDir" Value="."/>\n```'

    def test_unreadable_include_is_read_once(self, temp_workspace):
        """A dependency that failed to read is not retried during the same search"""
        workspace = temp_workspace['workspace']
        (workspace / "Main.xml").write_text('<Include Script="Gone.xml"/>\n<Log Message="$(Unknown)"/>\n')
        gone = normalize_path(str(workspace / "Gone.xml"))

        reader = CountingReader()
        store = DocumentStore(reader)
        engine = QueryEngine(store)
        document = asyncio.run(store.load(str(workspace / "Main.xml")))
        reader.reads.clear()

        assert asyncio.run(engine.resolve_at(document, _offset(document.text, 'Unknown'))) is None
        assert reader.reads.count(gone) == 1
