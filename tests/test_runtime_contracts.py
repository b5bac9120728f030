from __future__ import annotations

import importlib
import sys
from fractions import Fraction
from pathlib import Path

from tests.tree_helpers import (
    declaration_named,
    ensure_src_on_path,
    forget_package,
    load_toolchain,
    unique_package,
    write_tree,
)


def _load():
    ensure_src_on_path()
    from delegen.config import DelegationSettings
    from delegen.delegation.collector import collect_operations
    from delegen.delegation.driver import DelegationDriver
    from delegen.delegation.resolver import resolve
    from delegen.emission.backend import FileEmitter
    from delegen.exceptions import ResolutionError
    from delegen.toolchain.runtime import RuntimeContracts, format_annotation

    return (
        DelegationSettings,
        collect_operations,
        DelegationDriver,
        resolve,
        FileEmitter,
        ResolutionError,
        RuntimeContracts,
        format_annotation,
    )


def _sized_tree(tmp_path: Path, package: str) -> None:
    write_tree(
        tmp_path,
        {
            f"{package}/__init__.py": "",
            f"{package}/bag.py": f"""
            from collections.abc import Sized

            from delegen import delegate
            from {package}._delegate_bag import Delegate_Bag

            @delegate(Sized)
            class Bag(Delegate_Bag, Sized):
                pass
            """,
        },
    )


def test_library_contract_is_read_by_import(tmp_path: Path) -> None:
    _, collect_operations, _, resolve, *_ = _load()
    package = unique_package("sized")
    _sized_tree(tmp_path, package)
    toolchain = load_toolchain(tmp_path)
    resolved = resolve(toolchain, declaration_named(toolchain, "Bag")).unwrap()
    contract = resolved.delegates[0].contract
    assert contract.qualname == "collections.abc.Sized"
    assert contract.origin == "runtime"
    assert [op.name for op in collect_operations(toolchain, contract)] == ["__len__"]


def test_generated_base_for_library_contract_runs(tmp_path: Path) -> None:
    _, _, DelegationDriver, _, FileEmitter, *_ = _load()
    package = unique_package("sized")
    _sized_tree(tmp_path, package)
    toolchain = load_toolchain(tmp_path)
    report = DelegationDriver(emitter=FileEmitter()).init(toolchain).process_round()
    assert [o.status for o in report.outcomes] == ["generated"]
    generated = (tmp_path / package / "_delegate_bag.py").read_text(encoding="utf-8")
    assert "from collections.abc import Sized" in generated
    sys.path.insert(0, str(tmp_path))
    try:
        module = importlib.import_module(f"{package}.bag")
        assert len(module.Bag([1, 2, 3])) == 3
    finally:
        sys.path.remove(str(tmp_path))
        forget_package(package)


def test_runtime_contracts_can_be_switched_off(tmp_path: Path) -> None:
    DelegationSettings, _, _, resolve, _, ResolutionError, _, _ = _load()
    package = unique_package("sized")
    _sized_tree(tmp_path, package)
    settings = DelegationSettings(allow_runtime_contracts=False)
    toolchain = load_toolchain(tmp_path, settings=settings)
    resolution = resolve(toolchain, declaration_named(toolchain, "Bag"), settings=settings)
    assert isinstance(resolution.error, ResolutionError)
    assert "Sized" in str(resolution.error)


def test_plumbing_classes_are_not_contracts() -> None:
    *_, RuntimeContracts, _ = _load()
    runtime = RuntimeContracts()
    assert runtime.type_ref("typing.Protocol") is None
    assert runtime.type_ref("builtins.object") is None
    assert runtime.type_ref("no.such.module.Thing") is None


def test_generic_library_contract_keeps_its_parameters() -> None:
    *_, RuntimeContracts, _ = _load()
    ref = RuntimeContracts().type_ref("typing.SupportsAbs")
    assert ref is not None
    assert ref.param_names == ("T_co",)
    assert [param.identity for param in ref.params] == ["typing.T_co"]


def test_format_annotation_handles_common_shapes() -> None:
    *_, format_annotation = _load()
    assert format_annotation(None).text == "None"
    assert format_annotation(int).text == "int"
    assert format_annotation("Forward").text == "Forward"
    formatted = format_annotation(Fraction)
    assert formatted.text == "fractions.Fraction"
    assert [need.name for need in formatted.needs] == ["fractions"]


def test_postponed_annotations_of_library_contracts_keep_their_imports(tmp_path: Path) -> None:
    *_, RuntimeContracts, _ = _load()
    package = unique_package("lib")
    write_tree(
        tmp_path,
        {
            f"{package}/__init__.py": "",
            f"{package}/api.py": """
            from __future__ import annotations

            from abc import ABC, abstractmethod
            from typing import Literal


            class Item:
                pass


            class Store(ABC):
                @abstractmethod
                def put(self, item: Item, mode: Literal["a", "w"] = "a") -> list[Item]: ...
            """,
        },
    )
    sys.path.insert(0, str(tmp_path))
    try:
        ref = RuntimeContracts().type_ref(f"{package}.api.Store")
        assert ref is not None
        [put] = RuntimeContracts().own_members(ref)
        item, mode = put.parameters
        assert item.annotation.text == "Item"
        assert item.annotation.needs[0].module == f"{package}.api"
        assert mode.annotation.text == "Literal['a', 'w']"
        assert [need.name for need in mode.annotation.needs] == ["Literal"]
        assert put.returns.text == "list[Item]"
        assert [need.name for need in put.returns.needs] == ["Item"]
    finally:
        sys.path.remove(str(tmp_path))
        forget_package(package)
