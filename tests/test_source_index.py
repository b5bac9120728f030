from __future__ import annotations

import ast
from pathlib import Path

import pytest

from tests.tree_helpers import (
    STREAM_CONTRACTS,
    declaration_named,
    ensure_src_on_path,
    load_toolchain,
    write_tree,
)


def _load():
    ensure_src_on_path()
    from delegen.config import DelegationSettings
    from delegen.exceptions import InternalStateError
    from delegen.ingest.python_ingest import iter_python_paths, module_name_for
    from delegen.toolchain.source_index import SourceToolchain

    return (
        DelegationSettings,
        InternalStateError,
        iter_python_paths,
        module_name_for,
        SourceToolchain,
    )


def _expr(text: str) -> ast.expr:
    return ast.parse(text, mode="eval").body


def test_module_names_strip_src_and_init(tmp_path: Path) -> None:
    _, _, _, module_name_for, _ = _load()
    assert module_name_for(tmp_path / "src" / "pkg" / "mod.py", tmp_path) == "pkg.mod"
    assert module_name_for(tmp_path / "pkg" / "__init__.py", tmp_path) == "pkg"
    assert module_name_for(Path("/elsewhere/loose.py"), tmp_path) == "loose"


def test_excluded_directories_are_pruned(tmp_path: Path) -> None:
    DelegationSettings, _, iter_python_paths, _, _ = _load()
    write_tree(
        tmp_path,
        {
            "pkg/a.py": "",
            "pkg/notes.txt": "",
            ".venv/lib/site.py": "",
            "build/gen.py": "",
        },
    )
    paths = iter_python_paths([tmp_path], settings=DelegationSettings())
    assert [p.relative_to(tmp_path).as_posix() for p in paths] == ["pkg/a.py"]


def test_queries_before_load_are_internal_errors() -> None:
    _, InternalStateError, _, _, SourceToolchain = _load()
    toolchain = SourceToolchain()
    assert not toolchain.loaded
    with pytest.raises(InternalStateError):
        toolchain.marked_declarations()
    with pytest.raises(InternalStateError):
        toolchain.resolve_reference(_expr("Reader"), "app")


def test_marked_declarations_are_found_in_source_order(tmp_path: Path) -> None:
    write_tree(
        tmp_path,
        {
            "src/app/__init__.py": "",
            "src/app/contracts.py": STREAM_CONTRACTS,
            "src/app/b.py": """
            import delegen
            from app.contracts import Writer

            @delegen.delegate(Writer)
            class Second(Writer):
                pass
            """,
            "src/app/a.py": """
            from delegen import delegate
            from app.contracts import Reader

            class Plain(Reader):
                pass


            @delegate(Reader)
            class First(Reader):
                @delegate(Reader)
                class Inner(Reader):
                    pass
            """,
        },
    )
    toolchain = load_toolchain(tmp_path)
    found = toolchain.marked_declarations()
    assert [d.qualname for d in found] == ["app.a.First", "app.a.First.Inner", "app.b.Second"]
    first = found[0]
    assert first.package == "app"
    assert first.lineno == 9
    assert first.location.endswith("a.py:9")


def test_custom_marker_names(tmp_path: Path) -> None:
    DelegationSettings, *_ = _load()
    write_tree(
        tmp_path,
        {
            "mod.py": """
            from tools import forward

            @forward(int)
            class Wrapped(int):
                pass
            """,
        },
    )
    settings = DelegationSettings(markers=("forward",))
    toolchain = load_toolchain(tmp_path, settings=settings)
    assert [d.name for d in toolchain.marked_declarations()] == ["Wrapped"]
    assert load_toolchain(tmp_path).marked_declarations() == []


def test_relative_imports_and_reexports_resolve(tmp_path: Path) -> None:
    write_tree(
        tmp_path,
        {
            "app/__init__.py": "from .contracts import Reader\n",
            "app/contracts.py": STREAM_CONTRACTS,
            "app/sub/__init__.py": "",
            "app/sub/impl.py": """
            from .. import Reader
            from ..contracts import Writer as Sink
            """,
        },
    )
    toolchain = load_toolchain(tmp_path)
    reader = toolchain.resolve_reference(_expr("Reader"), "app.sub.impl")
    sink = toolchain.resolve_reference(_expr("Sink"), "app.sub.impl")
    assert reader is not None and reader.qualname == "app.contracts.Reader"
    assert sink is not None and sink.qualname == "app.contracts.Writer"


def test_plumbing_and_unknown_names_do_not_resolve(tmp_path: Path) -> None:
    write_tree(
        tmp_path,
        {
            "mod.py": """
            from typing import Protocol
            """,
        },
    )
    toolchain = load_toolchain(tmp_path)
    assert toolchain.resolve_reference(_expr("Protocol"), "mod") is None
    assert toolchain.resolve_reference(_expr("Missing"), "mod") is None
    assert toolchain.resolve_reference(_expr("42"), "mod") is None


def test_implemented_contracts_skip_the_generated_base(tmp_path: Path) -> None:
    write_tree(
        tmp_path,
        {
            "app/__init__.py": "",
            "app/contracts.py": STREAM_CONTRACTS,
            "app/impl.py": """
            from delegen import delegate
            from app.contracts import Duplex
            from app._delegate_port import Delegate_Port

            @delegate(Duplex)
            class Port(Delegate_Port, Duplex):
                pass
            """,
            "app/_delegate_port.py": """
            from app.contracts import Duplex

            class Delegate_Port(Duplex):
                pass
            """,
        },
    )
    toolchain = load_toolchain(tmp_path)
    contracts = toolchain.implemented_contracts(declaration_named(toolchain, "Port"))
    assert [ref.name for ref in contracts] == ["Duplex", "Reader", "Writer"]


def test_parse_failures_are_collected(tmp_path: Path) -> None:
    write_tree(
        tmp_path,
        {
            "good.py": "x = 1\n",
            "bad.py": "class (:\n",
        },
    )
    toolchain = load_toolchain(tmp_path)
    assert toolchain.module_names == ["good"]
    assert [f.path.name for f in toolchain.parse_failures] == ["bad.py"]
    assert toolchain.parse_failures[0].stage == "parse"


def test_string_defaults_are_kept_quoted(tmp_path: Path) -> None:
    write_tree(
        tmp_path,
        {
            "greet.py": """
            from typing import Protocol


            class Greeter(Protocol):
                def greet(self, name: "str" = "world") -> "str": ...
            """,
        },
    )
    toolchain = load_toolchain(tmp_path)
    ref = toolchain.resolve_reference(_expr("Greeter"), "greet")
    [member] = toolchain.own_members(ref)
    [param] = member.parameters
    assert param.annotation.text == "str"
    assert param.default.text == "'world'"
    assert member.returns.text == "str"


def test_literal_and_annotated_strings_are_not_forward_references(tmp_path: Path) -> None:
    write_tree(
        tmp_path,
        {
            "files.py": """
            from typing import Annotated, Literal, Optional, Protocol


            class Opener(Protocol):
                def open(self, mode: Literal["r", "w"], hint: Annotated["Item", "size"]) -> None: ...

                def find(self, name: Optional["Item"]) -> "Literal['ok']": ...
            """,
        },
    )
    toolchain = load_toolchain(tmp_path)
    ref = toolchain.resolve_reference(_expr("Opener"), "files")
    open_, find = toolchain.own_members(ref)
    mode, hint = open_.parameters
    assert mode.annotation.text == "Literal['r', 'w']"
    assert [need.name for need in mode.annotation.needs] == ["Literal"]
    assert hint.annotation.text == "Annotated[Item, 'size']"
    assert [need.name for need in hint.annotation.needs] == ["Annotated", "Item"]
    assert find.parameters[0].annotation.text == "Optional[Item]"
    assert find.returns.text == "Literal['ok']"


def test_lambda_and_comprehension_names_are_not_imported(tmp_path: Path) -> None:
    write_tree(
        tmp_path,
        {
            "sorting.py": """
            from typing import Callable, Protocol

            OFFSET = 1


            class Sorter(Protocol):
                def sort(
                    self,
                    key: Callable[[int], int] = lambda v: v + OFFSET,
                    seed: list[int] = [n * n for n in range(3)],
                    table: dict[str, int] = {k: OFFSET for k in ("a", "b")},
                ) -> None: ...
            """,
        },
    )
    toolchain = load_toolchain(tmp_path)
    ref = toolchain.resolve_reference(_expr("Sorter"), "sorting")
    [member] = toolchain.own_members(ref)
    key, seed, table = member.parameters
    assert key.default.text == "lambda v: v + OFFSET"
    assert [need.name for need in key.default.needs] == ["OFFSET"]
    assert seed.default.needs == ()
    assert [need.name for need in table.default.needs] == ["OFFSET"]
