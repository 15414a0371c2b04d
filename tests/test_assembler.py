"""Tests for dependency graph assembly and reference resolution."""

import random
import sys
from concurrent.futures import ThreadPoolExecutor

from conftest import make_record

from repolens.graph.assembler import GraphAssembler
from repolens.graph.resolver import FileIndex, TypeIndex, closeness_key, pick_closest
from repolens.indexer.models import (
    CallRef,
    EdgeRelationship,
    GraphFragment,
    ImportRef,
    NodeType,
    Symbol,
    SymbolKind,
    TypeRelation,
)

CONTAINS = EdgeRelationship.CONTAINS
IMPORTS = EdgeRelationship.IMPORTS


def symbol(path: str, name: str, kind: SymbolKind, line: int, parent: str = None) -> Symbol:
    return Symbol(name=name, kind=kind, file_path=path, line=line, parent=parent)


def triples(graph):
    return [(e.source, e.target, e.relationship) for e in graph.edges]


class TestAssemblerScenarios:
    def test_base_class_in_imported_file(self, make_repo, analyzer) -> None:
        root = make_repo(
            {
                "a.py": "class A:\n    pass\n",
                "b.py": "from a import A\n\n\nclass B(A):\n    pass\n",
            }
        )
        graph = analyzer.analyze(str(root)).graph

        assert graph.node_ids() == ["class:a.py:A", "class:b.py:B", "file:a.py", "file:b.py"]
        assert triples(graph) == [
            ("class:b.py:B", "class:a.py:A", EdgeRelationship.INHERITS),
            ("file:a.py", "class:a.py:A", CONTAINS),
            ("file:b.py", "class:b.py:B", CONTAINS),
            ("file:b.py", "file:a.py", IMPORTS),
        ]

    def test_sample_repository(self, sample_repo, analyzer) -> None:
        graph = analyzer.analyze(str(sample_repo)).graph
        edges = set(triples(graph))

        assert ("folder:app", "file:app/models.py", CONTAINS) in edges
        assert ("folder:web", "folder:web/src", CONTAINS) in edges
        assert ("file:app/main.py", "file:app/models.py", IMPORTS) in edges
        assert ("file:app/main.py", "file:app/__init__.py", IMPORTS) in edges
        assert ("file:web/src/api.ts", "file:web/src/util.ts", IMPORTS) in edges
        assert ("class:app/models.py:User", "class:app/models.py:Base", EdgeRelationship.INHERITS) in edges
        assert (
            "function:app/models.py:Base.save",
            "function:app/models.py:Base.validate",
            EdgeRelationship.CALLS,
        ) in edges
        # External bases never produce edges
        assert not [e for e in graph.edges if e.source == "class:web/src/api.ts:ApiClient"
                    and e.relationship != CONTAINS]

    def test_every_edge_endpoint_is_a_node(self, sample_repo, analyzer) -> None:
        graph = analyzer.analyze(str(sample_repo)).graph
        ids = set(graph.node_ids())
        assert all(e.source in ids and e.target in ids for e in graph.edges)
        assert len(set(triples(graph))) == len(graph.edges)

    def test_canonical_order(self, sample_repo, analyzer) -> None:
        graph = analyzer.analyze(str(sample_repo)).graph
        assert graph.node_ids() == sorted(graph.node_ids())
        assert [e.sort_key for e in graph.edges] == sorted(e.sort_key for e in graph.edges)


class TestFileTree:
    def test_folders_and_files(self) -> None:
        files = [
            make_record("src/app/main.py", "python"),
            make_record("src/lib/util.py", "python"),
            make_record("README.md", "markdown"),
        ]
        graph = GraphAssembler().assemble(files, [], {})

        assert graph.node_ids() == [
            "file:README.md",
            "file:src/app/main.py",
            "file:src/lib/util.py",
            "folder:src",
            "folder:src/app",
            "folder:src/lib",
        ]
        assert triples(graph) == [
            ("folder:src", "folder:src/app", CONTAINS),
            ("folder:src", "folder:src/lib", CONTAINS),
            ("folder:src/app", "file:src/app/main.py", CONTAINS),
            ("folder:src/lib", "file:src/lib/util.py", CONTAINS),
        ]
        readme = graph.get_node("file:README.md")
        assert readme.type == NodeType.FILE
        assert readme.metadata == {"language": "markdown", "lines": "0", "size": "0"}


class TestSymbolNodes:
    def test_members_hang_off_their_type(self) -> None:
        path = "svc/user.py"
        symbols = [
            symbol(path, "User", SymbolKind.CLASS, 1),
            symbol(path, "save", SymbolKind.METHOD, 2, "User"),
            symbol(path, "name", SymbolKind.PROPERTY, 5, "User"),
            symbol(path, "os", SymbolKind.IMPORT, 1),
        ]
        graph = GraphAssembler().assemble([make_record(path, "python")], symbols, {})

        method = graph.get_node("function:svc/user.py:User.save")
        assert method.type == NodeType.FUNCTION
        assert method.metadata == {"kind": "Method", "line": "2", "parent": "User"}
        assert ("class:svc/user.py:User", method.id, CONTAINS) in triples(graph)
        assert ("file:svc/user.py", "class:svc/user.py:User", CONTAINS) in triples(graph)
        # Properties and imports only live in the symbol list
        assert not any("name" in node_id or ":os" in node_id for node_id in graph.node_ids())

    def test_parent_is_nearest_preceding_declaration(self) -> None:
        path = "a.py"
        symbols = [
            symbol(path, "Box", SymbolKind.CLASS, 1),
            symbol(path, "Box", SymbolKind.CLASS, 10),
            symbol(path, "open", SymbolKind.METHOD, 12, "Box"),
        ]
        graph = GraphAssembler().assemble([make_record(path, "python")], symbols, {})
        owners = [e.source for e in graph.edges if e.target == "function:a.py:Box.open"]
        # Both declarations share one id, so one node and one edge
        assert owners == ["class:a.py:Box"]
        assert graph.node_ids().count("class:a.py:Box") == 1

    def test_symbols_of_unknown_files_are_ignored(self) -> None:
        graph = GraphAssembler().assemble(
            [make_record("a.py", "python")],
            [symbol("gone.py", "Gone", SymbolKind.CLASS, 1)],
            {},
        )
        assert graph.node_ids() == ["file:a.py"]


class TestImportResolution:
    def test_duplicate_imports_make_one_edge(self) -> None:
        files = [make_record("a.py", "python"), make_record("b.py", "python")]
        fragment = GraphFragment(
            imports=[
                ImportRef("a", 1, candidates=("a.py",)),
                ImportRef("a.thing", 2, candidates=("a/thing.py", "a.py")),
            ]
        )
        graph = GraphAssembler().assemble(files, [], {"b.py": fragment})
        assert triples(graph) == [("file:b.py", "file:a.py", IMPORTS)]

    def test_self_and_external_imports_are_dropped(self) -> None:
        files = [make_record("a.py", "python")]
        fragment = GraphFragment(
            imports=[
                ImportRef("a", 1, candidates=("a.py",)),
                ImportRef("requests", 2, candidates=("requests.py",)),
            ]
        )
        graph = GraphAssembler().assemble(files, [], {"a.py": fragment})
        assert graph.edges == []

    def test_java_suffix_under_source_root(self) -> None:
        files = [
            make_record("src/main/java/com/acme/App.java", "java"),
            make_record("src/main/java/com/acme/model/User.java", "java"),
        ]
        fragment = GraphFragment(
            imports=[
                ImportRef(
                    "com.acme.model.User",
                    3,
                    candidates=("com/acme/model/User.java",),
                    suffixes=("com/acme/model/User.java",),
                )
            ]
        )
        graph = GraphAssembler().assemble(files, [], {"src/main/java/com/acme/App.java": fragment})
        assert (
            "file:src/main/java/com/acme/App.java",
            "file:src/main/java/com/acme/model/User.java",
            IMPORTS,
        ) in triples(graph)

    def test_go_directory_import_picks_first_file(self) -> None:
        files = [
            make_record("cmd/server/main.go", "go"),
            make_record("internal/db/models.go", "go"),
            make_record("internal/db/conn.go", "go"),
            make_record("internal/db/README.md", "markdown"),
        ]
        fragment = GraphFragment(
            imports=[
                ImportRef(
                    "github.com/acme/app/internal/db",
                    3,
                    candidates=("github.com/acme/app/internal/db", "acme/app/internal/db",
                                "app/internal/db", "internal/db", "db"),
                    directory=True,
                )
            ]
        )
        graph = GraphAssembler().assemble(files, [], {"cmd/server/main.go": fragment})
        assert triples(graph)[0] == ("file:cmd/server/main.go", "file:internal/db/conn.go", IMPORTS)
        assert len(graph.edges_of(IMPORTS)) == 1

    def test_directory_import_never_targets_own_directory(self) -> None:
        files = [make_record("internal/db/conn.go", "go"), make_record("internal/db/models.go", "go")]
        fragment = GraphFragment(
            imports=[ImportRef("example.com/internal/db", 1, candidates=("internal/db", "db"), directory=True)]
        )
        graph = GraphAssembler().assemble(files, [], {"internal/db/models.go": fragment})
        assert graph.edges_of(IMPORTS) == []

    def test_csharp_namespace_suffix(self) -> None:
        files = [
            make_record("src/App/Program.cs", "c_sharp"),
            make_record("src/Acme/Models/Order.cs", "c_sharp"),
            make_record("src/Acme/Models/Customer.cs", "c_sharp"),
            make_record("tests/Models/Fake.cs", "c_sharp"),
        ]
        fragment = GraphFragment(
            imports=[ImportRef("Acme.Models", 1, directory=True, suffixes=("Acme/Models", "Models"))]
        )
        graph = GraphAssembler().assemble(files, [], {"src/App/Program.cs": fragment})
        assert graph.edges_of(IMPORTS)[0].target == "file:src/Acme/Models/Customer.cs"


class TestTypeResolution:
    def test_nearest_declaration_wins(self) -> None:
        files = [
            make_record("svc/api/user.py", "python"),
            make_record("svc/core/base.py", "python"),
            make_record("lib/base.py", "python"),
        ]
        symbols = [
            symbol("svc/api/user.py", "User", SymbolKind.CLASS, 1),
            symbol("svc/core/base.py", "Base", SymbolKind.CLASS, 1),
            symbol("lib/base.py", "Base", SymbolKind.CLASS, 1),
        ]
        fragments = {
            "svc/api/user.py": GraphFragment(
                relations=[TypeRelation("User", "Base", EdgeRelationship.INHERITS, 1)]
            )
        }
        graph = GraphAssembler().assemble(files, symbols, fragments)
        assert graph.edges_of(EdgeRelationship.INHERITS)[0].target == "class:svc/core/base.py:Base"

    def test_same_file_declaration_wins(self) -> None:
        files = [make_record("a/m.py", "python"), make_record("a/base.py", "python")]
        symbols = [
            symbol("a/m.py", "Base", SymbolKind.CLASS, 1),
            symbol("a/m.py", "Child", SymbolKind.CLASS, 5),
            symbol("a/base.py", "Base", SymbolKind.CLASS, 1),
        ]
        fragments = {"a/m.py": GraphFragment(relations=[TypeRelation("Child", "Base", EdgeRelationship.INHERITS, 5)])}
        graph = GraphAssembler().assemble(files, symbols, fragments)
        assert graph.edges_of(EdgeRelationship.INHERITS)[0].target == "class:a/m.py:Base"

    def test_type_does_not_inherit_from_itself(self) -> None:
        files = [make_record("a/widget.ts", "typescript"), make_record("b/widget.ts", "typescript")]
        symbols = [
            symbol("a/widget.ts", "Widget", SymbolKind.CLASS, 1),
            symbol("b/widget.ts", "Widget", SymbolKind.CLASS, 1),
        ]
        fragments = {
            "b/widget.ts": GraphFragment(
                relations=[TypeRelation("Widget", "Widget", EdgeRelationship.INHERITS, 1)]
            )
        }
        graph = GraphAssembler().assemble(files, symbols, fragments)
        assert triples(graph)[0] == ("class:b/widget.ts:Widget", "class:a/widget.ts:Widget",
                                     EdgeRelationship.INHERITS)

    def test_interfaces_are_implemented(self) -> None:
        files = [make_record("Svc.cs", "c_sharp"), make_record("ISvc.cs", "c_sharp")]
        symbols = [
            symbol("Svc.cs", "Svc", SymbolKind.CLASS, 1),
            symbol("ISvc.cs", "ISvc", SymbolKind.INTERFACE, 1),
        ]
        fragments = {"Svc.cs": GraphFragment(relations=[TypeRelation("Svc", "ISvc", EdgeRelationship.IMPLEMENTS, 1)])}
        graph = GraphAssembler().assemble(files, symbols, fragments)
        assert graph.edges_of(EdgeRelationship.IMPLEMENTS)[0].target == "interface:ISvc.cs:ISvc"


class TestCalls:
    def test_calls_resolve_within_file(self) -> None:
        path = "m.py"
        symbols = [
            symbol(path, "Svc", SymbolKind.CLASS, 1),
            symbol(path, "run", SymbolKind.METHOD, 2, "Svc"),
            symbol(path, "step", SymbolKind.METHOD, 5, "Svc"),
            symbol(path, "step", SymbolKind.FUNCTION, 8),
            symbol(path, "main", SymbolKind.FUNCTION, 11),
        ]
        fragments = {
            path: GraphFragment(
                calls=[
                    CallRef("Svc.run", "step", 3),
                    CallRef("main", "step", 12),
                    CallRef("main", "print", 13),
                ]
            )
        }
        graph = GraphAssembler().assemble([make_record(path, "python")], symbols, fragments)
        assert [(e.source, e.target) for e in graph.edges_of(EdgeRelationship.CALLS)] == [
            ("function:m.py:Svc.run", "function:m.py:Svc.step"),
            ("function:m.py:main", "function:m.py:step"),
        ]


class TestDeterminism:
    def test_input_order_does_not_matter(self, sample_repo, analyzer) -> None:
        snapshot = analyzer.analyze(str(sample_repo))
        files = list(snapshot.files)
        symbols = list(snapshot.symbols)
        random.Random(7).shuffle(files)
        random.Random(7).shuffle(symbols)

        fragments = {path: result.fragment for path, result in reversed(list(snapshot.results.items()))}
        graph = GraphAssembler().assemble(files, symbols, fragments)
        assert graph.to_dict() == snapshot.graph.to_dict()

    def test_shared_assembler_across_threads(self) -> None:
        def inputs(prefix: str):
            files = [make_record(f"{prefix}/d{i}/m.py", "python") for i in range(150)]
            symbols = [symbol(record.path, f"C{i}", SymbolKind.CLASS, 1) for i, record in enumerate(files)]
            return files, symbols

        shared = GraphAssembler()
        expected = {prefix: shared.assemble(*inputs(prefix), {}).to_dict() for prefix in ("x", "y")}

        interval = sys.getswitchinterval()
        sys.setswitchinterval(1e-6)
        try:
            with ThreadPoolExecutor(max_workers=4) as pool:
                futures = [
                    (prefix, pool.submit(shared.assemble, *inputs(prefix), {}))
                    for _ in range(4)
                    for prefix in ("x", "y")
                ]
                results = [(prefix, future.result().to_dict()) for prefix, future in futures]
        finally:
            sys.setswitchinterval(interval)

        for prefix, graph in results:
            assert graph == expected[prefix]


class TestResolverHelpers:
    def test_closeness_key(self) -> None:
        assert closeness_key("a/b", "a/b", "x") < closeness_key("a/b", "a/c", "x")
        assert closeness_key("a/b", "a", "x") < closeness_key("a/b", "a/c/d", "x")
        assert closeness_key("z", "x", "x/one.py") < closeness_key("z", "y", "y/one.py")

    def test_pick_closest(self) -> None:
        assert pick_closest("svc/api/m.py", ["lib/u.py", "svc/u.py"]) == "svc/u.py"
        assert pick_closest("svc/api/m.py", ["svc/u.py", "svc/api/deep/u.py"]) == "svc/api/deep/u.py"
        assert pick_closest("m.py", []) is None

    def test_file_index_suffix_lookup(self) -> None:
        index = FileIndex([make_record("src/com/a/B.java", "java"), make_record("xcom/a/B.java", "java")])
        assert index.files_with_suffix("com/a/B.java") == ["src/com/a/B.java"]
        assert index.dirs_with_suffix("a") == ["src/com/a", "xcom/a"]

    def test_type_index_exclude(self) -> None:
        index = TypeIndex()
        index.add("T", "a.py", 1, "class:a.py:T")
        assert index.resolve("T", "a.py", exclude="class:a.py:T") is None
        assert index.resolve("Missing", "a.py") is None
