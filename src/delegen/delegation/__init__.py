from .model import (
    ContractBase,
    DeclarationOutcome,
    DelegationRequest,
    FieldDescription,
    ForwardingOperation,
    GeneratedTypeDescription,
    ImportSpec,
    NamedDelegate,
    OperationSignature,
    Resolution,
    ResolvedDelegation,
    RoundReport,
    SynthesisResult,
    TypeParamSpec,
)
from .collector import collect_operations, is_forwardable
from .resolver import extract_request, resolve
from .synthesis import synthesize

__all__ = [
    "ContractBase",
    "DeclarationOutcome",
    "DelegationRequest",
    "FieldDescription",
    "ForwardingOperation",
    "GeneratedTypeDescription",
    "ImportSpec",
    "NamedDelegate",
    "OperationSignature",
    "Resolution",
    "ResolvedDelegation",
    "RoundReport",
    "SynthesisResult",
    "TypeParamSpec",
    "collect_operations",
    "extract_request",
    "is_forwardable",
    "resolve",
    "synthesize",
]
