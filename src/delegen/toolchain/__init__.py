from .contract import Toolchain
from .model import (
    MEMBER_ASYNC,
    MEMBER_METHOD,
    MEMBER_PROPERTY,
    PARAM_KEYWORD_ONLY,
    PARAM_POSITIONAL_ONLY,
    PARAM_POSITIONAL_OR_KEYWORD,
    PARAM_VAR_KEYWORD,
    PARAM_VAR_POSITIONAL,
    ClosureEntry,
    ImportNeed,
    MarkedDeclaration,
    Member,
    Parameter,
    SourceExpr,
    TypeParam,
    TypeRef,
    expr_from_source,
)
from .runtime import PLUMBING_BASES, RuntimeContracts
from .source_index import SourceToolchain

__all__ = [
    "MEMBER_ASYNC",
    "MEMBER_METHOD",
    "MEMBER_PROPERTY",
    "PARAM_KEYWORD_ONLY",
    "PARAM_POSITIONAL_ONLY",
    "PARAM_POSITIONAL_OR_KEYWORD",
    "PARAM_VAR_KEYWORD",
    "PARAM_VAR_POSITIONAL",
    "PLUMBING_BASES",
    "ClosureEntry",
    "ImportNeed",
    "MarkedDeclaration",
    "Member",
    "Parameter",
    "RuntimeContracts",
    "SourceExpr",
    "SourceToolchain",
    "Toolchain",
    "TypeParam",
    "TypeRef",
    "expr_from_source",
]
