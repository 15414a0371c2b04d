"""Tests for JavaScript and TypeScript extraction."""

from conftest import make_record

from repolens.indexer.models import EdgeRelationship, SymbolKind, TypeRelation
from repolens.indexer.parsers.javascript_parser import JavaScriptParser

SOURCE = """\
import React, { useState } from 'react';
import { theme } from '../styles/theme';
import './button.css';
const utils = require("./utils");
export * from './types';

export interface ButtonProps extends BaseProps, Clickable {
  label: string;
}

export enum Size {
  Small,
  Large,
}

export abstract class Button extends Component<ButtonProps> implements Focusable, Hoverable {
  private count = 0;
  static defaultProps = {};

  constructor(props: ButtonProps) {
    super(props);
  }

  handleClick = () => {
    this.count++;
  };

  render() {
    return null;
  }
}

export function createButton(label: string) {
  return new Button({ label });
}

export const useButton = (props: ButtonProps) => {
  return props;
};

export default function App() {}
"""

PATH = "web/src/components/Button.tsx"


def parse(source: str = SOURCE, path: str = PATH):
    return JavaScriptParser().parse(make_record(path, "typescript"), source)


def declarations(result):
    return [(s.name, s.kind, s.line, s.parent) for s in result.symbols if s.kind != SymbolKind.IMPORT]


class TestJavaScriptSymbols:
    def test_declarations(self) -> None:
        assert declarations(parse()) == [
            ("utils", SymbolKind.VARIABLE, 4, None),
            ("ButtonProps", SymbolKind.INTERFACE, 7, None),
            ("Size", SymbolKind.CLASS, 11, None),
            ("Button", SymbolKind.CLASS, 16, None),
            ("count", SymbolKind.PROPERTY, 17, "Button"),
            ("defaultProps", SymbolKind.PROPERTY, 18, "Button"),
            ("constructor", SymbolKind.METHOD, 20, "Button"),
            ("handleClick", SymbolKind.METHOD, 24, "Button"),
            ("render", SymbolKind.METHOD, 28, "Button"),
            ("createButton", SymbolKind.FUNCTION, 33, None),
            ("useButton", SymbolKind.FUNCTION, 37, None),
            ("App", SymbolKind.FUNCTION, 41, None),
        ]

    def test_function_bodies_do_not_declare(self) -> None:
        names = {s.name for s in parse().symbols}
        assert "super" not in names
        assert "label" not in names
        assert "Small" not in names

    def test_comments_and_strings_are_ignored(self) -> None:
        source = (
            "// class Commented {}\n"
            "/* function hidden() {\n"
            "} */\n"
            "const text = 'class Fake {';\n"
            "function real() {}\n"
        )
        assert declarations(parse(source)) == [
            ("text", SymbolKind.VARIABLE, 4, None),
            ("real", SymbolKind.FUNCTION, 5, None),
        ]

    def test_empty_file(self) -> None:
        result = parse("")
        assert result.symbols == []
        assert result.fragment.imports == []


class TestJavaScriptReferences:
    def test_imports_in_source_order(self) -> None:
        imports = [(s.name, s.line) for s in parse().symbols if s.kind == SymbolKind.IMPORT]
        assert imports == [
            ("react", 1),
            ("../styles/theme", 2),
            ("./button.css", 3),
            ("./utils", 4),
            ("./types", 5),
        ]

    def test_relative_candidates(self) -> None:
        refs = {ref.specifier: ref for ref in parse().fragment.imports}

        theme = refs["../styles/theme"].candidates
        assert theme[0] == "web/src/styles/theme.ts"
        assert "web/src/styles/theme/index.ts" in theme
        assert refs["./button.css"].candidates[0] == "web/src/components/button.css"
        assert refs["react"].candidates == ()

    def test_explicit_js_extension_also_tries_typescript(self) -> None:
        candidates = JavaScriptParser().resolve_candidates("src", "./util.js")
        assert candidates[0] == "src/util.js"
        assert "src/util.ts" in candidates

    def test_alias_prefix(self) -> None:
        candidates = JavaScriptParser().resolve_candidates("web/src", "@/lib/api")
        assert "src/lib/api.ts" in candidates
        assert "lib/api.ts" in candidates

    def test_escaping_the_root_gives_no_candidates(self) -> None:
        assert JavaScriptParser().resolve_candidates("", "../outside") == []

    def test_extends_and_implements(self) -> None:
        assert parse().fragment.relations == [
            TypeRelation("ButtonProps", "BaseProps", EdgeRelationship.INHERITS, 7),
            TypeRelation("ButtonProps", "Clickable", EdgeRelationship.IMPLEMENTS, 7),
            TypeRelation("Button", "Component", EdgeRelationship.INHERITS, 16),
            TypeRelation("Button", "Focusable", EdgeRelationship.IMPLEMENTS, 16),
            TypeRelation("Button", "Hoverable", EdgeRelationship.IMPLEMENTS, 16),
        ]
