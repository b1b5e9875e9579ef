"""
Tests for include closure discovery
"""
import asyncio
import pytest
import tempfile
from pathlib import Path
from buildgraph_navigator.dependency_graph import DependencyGraph, DependencyResolver
from buildgraph_navigator.document_store import CancellationToken, DocumentStore, FileSystemReader
from buildgraph_navigator.utils import normalize_path

class CountingReader(FileSystemReader):
    """FileSystemReader that records every read it performs"""

    def __init__(self):
        super().__init__()
        self.reads = []

    async def read_text(self, file_id):
        self.reads.append(file_id)
        return await super().read_text(file_id)

class CancellingReader(FileSystemReader):
    """Cancels the token as soon as the first read happens"""

    def __init__(self, token):
        super().__init__()
        self.token = token

    async def read_text(self, file_id):
        self.token.cancel()
        return await super().read_text(file_id)

def _include(path):
    return f'<Include Script="{path}"/>\n'

class TestDependencyGraph:
    """Test cases for DependencyResolver and DependencyGraph"""

    @pytest.fixture
    def temp_workspace(self):
        """Scripts laid out as Root -> (Left, Shared/Right) -> Common, Left <-> Root cycle"""
        with tempfile.TemporaryDirectory() as temp_dir:
            workspace = Path(temp_dir)
            (workspace / "Shared").mkdir()

            (workspace / "Root.xml").write_text(
                '<BuildGraph>\n' + _include("Left.xml") + _include("Shared\\Right.xml") + '</BuildGraph>\n'
            )
            (workspace / "Left.xml").write_text(_include("Shared/Common.xml") + _include("Root.xml"))
            (workspace / "Shared" / "Right.xml").write_text(_include("Common.xml"))
            (workspace / "Shared" / "Common.xml").write_text('<Macro Name="M"/>\n')

            yield {
                'workspace': workspace,
                'root': normalize_path(str(workspace / "Root.xml")),
                'left': normalize_path(str(workspace / "Left.xml")),
                'right': normalize_path(str(workspace / "Shared" / "Right.xml")),
                'common': normalize_path(str(workspace / "Shared" / "Common.xml")),
            }

    def test_transitive_closure(self, temp_workspace):
        """Every reachable script is discovered, root first"""
        graph = asyncio.run(DependencyResolver(FileSystemReader()).resolve(temp_workspace['root']))

        assert graph.root == temp_workspace['root']
        assert graph.files[0] == temp_workspace['root']
        assert set(graph) == {
            temp_workspace['root'], temp_workspace['left'],
            temp_workspace['right'], temp_workspace['common']
        }
        assert graph.unreadable == []

    def test_breadth_first_order(self, temp_workspace):
        graph = asyncio.run(DependencyResolver(FileSystemReader()).resolve(temp_workspace['root']))
        assert graph.files == [
            temp_workspace['root'], temp_workspace['left'],
            temp_workspace['right'], temp_workspace['common']
        ]

    def test_diamond_is_expanded_once(self, temp_workspace):
        """Common is included by both Left and Right but read only once"""
        reader = CountingReader()
        asyncio.run(DependencyResolver(reader).resolve(temp_workspace['root']))

        assert sorted(reader.reads) == sorted(set(reader.reads))
        assert reader.reads.count(temp_workspace['common']) == 1
        assert len(reader.reads) == 4

    def test_cycle_terminates(self):
        """A includes B, B includes A: exactly {A, B}"""
        with tempfile.TemporaryDirectory() as temp_dir:
            workspace = Path(temp_dir)
            (workspace / "A.xml").write_text(_include("B.xml"))
            (workspace / "B.xml").write_text(_include("A.xml"))

            a = normalize_path(str(workspace / "A.xml"))
            b = normalize_path(str(workspace / "B.xml"))
            graph = asyncio.run(DependencyResolver(FileSystemReader()).resolve(a))

            assert graph.files == [a, b]
            assert graph.include_graph == {a: [b], b: [a]}

    def test_self_include(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            script = Path(temp_dir) / "Self.xml"
            script.write_text(_include("Self.xml"))

            graph = asyncio.run(DependencyResolver(FileSystemReader()).resolve(str(script)))
            assert len(graph) == 1

    def test_missing_include_is_recorded_as_unreadable(self, temp_workspace):
        """An unreadable script stays a member but contributes nothing"""
        (temp_workspace['workspace'] / "Shared" / "Common.xml").unlink()
        graph = asyncio.run(DependencyResolver(FileSystemReader()).resolve(temp_workspace['root']))

        assert temp_workspace['common'] in graph
        assert graph.unreadable == [temp_workspace['common']]
        assert temp_workspace['common'] not in graph.texts

    def test_unreadable_root(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            missing = normalize_path(str(Path(temp_dir) / "Missing.xml"))
            graph = asyncio.run(DependencyResolver(FileSystemReader()).resolve(missing))

            assert graph.files == [missing]
            assert graph.unreadable == [missing]

    def test_commented_includes_are_not_followed(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            workspace = Path(temp_dir)
            (workspace / "Root.xml").write_text('<!--' + _include("Hidden.xml") + '-->')
            (workspace / "Hidden.xml").write_text('')

            graph = asyncio.run(DependencyResolver(FileSystemReader()).resolve(str(workspace / "Root.xml")))
            assert len(graph) == 1

    def test_open_document_shadows_disk(self, temp_workspace):
        """Unsaved include edits are honoured"""
        store = DocumentStore(FileSystemReader())
        store.open_document(temp_workspace['root'], _include("Left.xml"))
        store.open_document(temp_workspace['left'], '')

        graph = asyncio.run(DependencyResolver(store).resolve(temp_workspace['root']))
        assert graph.files == [temp_workspace['root'], temp_workspace['left']]

    def test_root_text_is_not_reread(self, temp_workspace):
        reader = CountingReader()
        asyncio.run(DependencyResolver(reader).resolve(
            temp_workspace['root'], root_text=_include("Left.xml")
        ))

        assert temp_workspace['root'] not in reader.reads

    def test_cancellation_returns_empty_graph(self, temp_workspace):
        token = CancellationToken()
        graph = asyncio.run(DependencyResolver(CancellingReader(token)).resolve(
            temp_workspace['root'], token
        ))

        assert graph.root is None
        assert len(graph) == 0

    def test_cancelled_before_start(self, temp_workspace):
        token = CancellationToken()
        token.cancel()
        reader = CountingReader()
        graph = asyncio.run(DependencyResolver(reader).resolve(temp_workspace['root'], token))

        assert len(graph) == 0
        assert reader.reads == []

    def test_direct_includes(self, temp_workspace):
        resolver = DependencyResolver(FileSystemReader())
        includes = asyncio.run(resolver.direct_includes(temp_workspace['root']))

        assert includes == [temp_workspace['left'], temp_workspace['right']]

    def test_get_dependencies(self, temp_workspace):
        graph = asyncio.run(DependencyResolver(FileSystemReader()).resolve(temp_workspace['root']))

        assert graph.get_dependencies(temp_workspace['right']) == [temp_workspace['common']]
        transitive = graph.get_dependencies(temp_workspace['root'], transitive=True)
        assert transitive == [temp_workspace['left'], temp_workspace['right'], temp_workspace['common']]

    def test_json_round_trip(self, temp_workspace):
        """The include graph survives serialization, snapshot texts do not"""
        graph = asyncio.run(DependencyResolver(FileSystemReader()).resolve(temp_workspace['root']))
        output = temp_workspace['workspace'] / "graph.json"
        graph.serialize_to_json(str(output))

        loaded = DependencyGraph.load_from_json(str(output))
        assert loaded.root == graph.root
        assert loaded.files == graph.files
        assert loaded.include_graph == graph.include_graph
        assert loaded.texts == {}
