from __future__ import annotations

from pathlib import Path

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
    from delegen.delegation.collector import collect_operations
    from delegen.delegation.resolver import resolve
    from delegen.delegation.synthesis import ImportPlan, synthesize
    from delegen.exceptions import CollisionError
    from delegen.toolchain.model import ImportNeed, SourceExpr

    return (
        DelegationSettings,
        collect_operations,
        resolve,
        synthesize,
        ImportPlan,
        CollisionError,
        ImportNeed,
        SourceExpr,
    )


def _describe(toolchain, name: str, settings=None):
    (_, collect_operations, resolve, synthesize, *_rest) = _load()
    resolved = resolve(toolchain, declaration_named(toolchain, name), settings=settings).unwrap()
    operations = [collect_operations(toolchain, d.contract) for d in resolved.delegates]
    return synthesize(resolved, operations, settings=settings)


def _stream_tree(tmp_path: Path, impl: str):
    write_tree(
        tmp_path,
        {
            "app/__init__.py": "",
            "app/contracts.py": STREAM_CONTRACTS,
            "app/impl.py": impl,
        },
    )
    return load_toolchain(tmp_path)


def test_names_fields_and_constructor_follow_request_order(tmp_path: Path) -> None:
    toolchain = _stream_tree(
        tmp_path,
        """
        from delegen import delegate
        from app.contracts import Reader, Writer

        @delegate(multi=[Writer, Reader])
        class HttpPipe(Delegate_HttpPipe, Reader, Writer):
            pass
        """,
    )
    description = _describe(toolchain, "HttpPipe").unwrap()
    assert description.class_name == "Delegate_HttpPipe"
    assert description.module_name == "_delegate_http_pipe"
    assert description.package == "app"
    assert description.qualified_module == "app._delegate_http_pipe"
    assert [f.name for f in description.fields] == ["delegate0", "delegate1"]
    assert [f.annotation for f in description.fields] == ["Writer", "Reader"]
    assert description.constructor_parameters == ("delegate0", "delegate1")
    assert [b.expression for b in description.bases] == ["Reader", "Writer"]


def test_first_listed_contract_wins_a_collision(tmp_path: Path) -> None:
    toolchain = _stream_tree(
        tmp_path,
        """
        from delegen import delegate
        from app.contracts import Reader, Writer

        @delegate(multi=[Reader, Writer])
        class Pipe(Delegate_Pipe, Reader, Writer):
            pass
        """,
    )
    description = _describe(toolchain, "Pipe").unwrap()
    assert [(op.name, op.field_name) for op in description.operations] == [
        ("read", "delegate0"),
        ("close", "delegate0"),
        ("write", "delegate1"),
    ]
    assert len(description.warnings) == 1
    assert "'close'" in description.warnings[0]


def test_error_policy_rejects_a_collision(tmp_path: Path) -> None:
    DelegationSettings, *_, CollisionError, _, _ = _load()
    toolchain = _stream_tree(
        tmp_path,
        """
        from delegen import delegate
        from app.contracts import Reader, Writer

        @delegate(multi=[Reader, Writer])
        class Pipe(Delegate_Pipe, Reader, Writer):
            pass
        """,
    )
    result = _describe(toolchain, "Pipe", settings=DelegationSettings(on_collision="error"))
    assert not result.ok
    assert isinstance(result.error, CollisionError)
    assert "close" in str(result.error)


def test_custom_prefixes(tmp_path: Path) -> None:
    DelegationSettings, *_ = _load()
    toolchain = _stream_tree(
        tmp_path,
        """
        from delegen import delegate
        from app.contracts import Reader

        @delegate(Reader)
        class Source(Base_Source, Reader):
            pass
        """,
    )
    settings = DelegationSettings(prefix="Base_", module_prefix="_gen_", field_prefix="inner")
    description = _describe(toolchain, "Source", settings=settings).unwrap()
    assert description.class_name == "Base_Source"
    assert description.module_name == "_gen_source"
    assert [f.name for f in description.fields] == ["inner0"]


def test_same_named_type_variables_are_aliased(tmp_path: Path) -> None:
    write_tree(
        tmp_path,
        {
            "gen/__init__.py": "",
            "gen/left.py": """
            from typing import Generic, TypeVar

            T = TypeVar("T")


            class Left(Generic[T]):
                def left(self) -> T: ...
            """,
            "gen/right.py": """
            from typing import Generic, TypeVar

            T = TypeVar("T")


            class Right(Generic[T]):
                def right(self, value: T) -> list[T]: ...
            """,
            "gen/both.py": """
            from delegen import delegate
            from gen.left import Left
            from gen.right import Right

            @delegate(multi=[Left, Right])
            class Both(Delegate_Both, Left, Right):
                pass
            """,
        },
    )
    toolchain = load_toolchain(tmp_path)
    description = _describe(toolchain, "Both").unwrap()
    assert [spec.local_name for spec in description.type_params] == ["T", "T_1"]
    assert [b.expression for b in description.bases] == ["Left[T]", "Right[T_1]"]
    ops = {op.name: op for op in description.operations}
    assert ops["left"].returns.text == "T"
    assert ops["right"].parameters[0].annotation.text == "T_1"
    assert ops["right"].returns.text == "list[T_1]"
    aliased = [spec for spec in description.imports if spec.alias == "T_1"]
    assert len(aliased) == 1
    assert aliased[0].module == "gen.right"
    assert not aliased[0].type_checking


def test_shared_type_variable_appears_once(tmp_path: Path) -> None:
    write_tree(
        tmp_path,
        {
            "shared/__init__.py": "",
            "shared/params.py": """
            from typing import TypeVar

            T = TypeVar("T")
            """,
            "shared/contracts.py": """
            from typing import Generic

            from shared.params import T


            class Source(Generic[T]):
                def pull(self) -> T: ...


            class Sink(Generic[T]):
                def push(self, item: T) -> None: ...
            """,
            "shared/impl.py": """
            from delegen import delegate
            from shared.contracts import Sink, Source

            @delegate(multi=[Source, Sink])
            class Relay(Delegate_Relay, Source, Sink):
                pass
            """,
        },
    )
    toolchain = load_toolchain(tmp_path)
    description = _describe(toolchain, "Relay").unwrap()
    assert [spec.local_name for spec in description.type_params] == ["T"]
    assert description.type_params[0].param.identity == "shared.params.T"
    assert [b.expression for b in description.bases] == ["Source[T]", "Sink[T]"]


def test_declared_arguments_type_the_field(tmp_path: Path) -> None:
    write_tree(
        tmp_path,
        {
            "box/__init__.py": "",
            "box/contracts.py": """
            from typing import Generic, TypeVar

            T = TypeVar("T")


            class Box(Generic[T]):
                def get(self) -> T: ...
            """,
            "box/impl.py": """
            from delegen import delegate
            from box.contracts import Box
            from box.models import Item

            @delegate(Box)
            class ItemBox(Delegate_ItemBox, Box[Item]):
                pass
            """,
            "box/models.py": """
            class Item:
                pass
            """,
        },
    )
    toolchain = load_toolchain(tmp_path)
    description = _describe(toolchain, "ItemBox").unwrap()
    assert [f.annotation for f in description.fields] == ["Box[Item]"]
    assert [b.expression for b in description.bases] == ["Box[T]"]
    assert description.operations[0].returns.text == "Item"
    checking = [spec for spec in description.imports if spec.type_checking]
    assert [(spec.module, spec.name) for spec in checking] == [("box.impl", "Item")]


def test_import_plan_aliases_conflicting_annotation_names() -> None:
    *_, ImportPlan, _, ImportNeed, SourceExpr = _load()
    plan = ImportPlan(reserved={"Delegate_X"})
    assert plan.bind("a.contracts", "Reader") == "Reader"
    expr = SourceExpr(text="Reader | None", needs=(ImportNeed("Reader", "b.models"),))
    assert plan.rewrite(expr) == "Reader_1 | None"
    specs = {(spec.module, spec.name): spec for spec in plan.specs()}
    assert specs[("b.models", "Reader")].alias == "Reader_1"
    assert specs[("b.models", "Reader")].type_checking
    assert not specs[("a.contracts", "Reader")].type_checking


def test_synthesis_is_idempotent(tmp_path: Path) -> None:
    toolchain = _stream_tree(
        tmp_path,
        """
        from delegen import delegate
        from app.contracts import Duplex

        @delegate(Duplex)
        class Port(Delegate_Port, Duplex):
            pass
        """,
    )
    first = _describe(toolchain, "Port").unwrap()
    second = _describe(toolchain, "Port").unwrap()
    assert first == second
    assert [op.name for op in first.operations] == ["flush", "read", "close", "write"]


def test_lambda_default_imports_only_module_names(tmp_path: Path) -> None:
    write_tree(
        tmp_path,
        {
            "k/__init__.py": "",
            "k/contracts.py": """
            from typing import Callable, Protocol


            class Sorter(Protocol):
                def sort(self, key: Callable[[int], int] = lambda v: v) -> None: ...
            """,
            "k/impl.py": """
            from delegen import delegate
            from k.contracts import Sorter

            @delegate(Sorter)
            class Ordered(Delegate_Ordered, Sorter):
                pass
            """,
        },
    )
    toolchain = load_toolchain(tmp_path)
    description = _describe(toolchain, "Ordered").unwrap()
    imported = sorted((spec.module, spec.name) for spec in description.imports)
    assert imported == [("k.contracts", "Callable"), ("k.contracts", "Sorter")]
    [sort] = description.operations
    assert sort.parameters[0].default.text == "lambda v: v"
