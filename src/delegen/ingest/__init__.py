from .python_ingest import (
    ParsedModule,
    ParseFailureWitness,
    iter_python_paths,
    module_name_for,
    parse_python_file,
)

__all__ = [
    "ParsedModule",
    "ParseFailureWitness",
    "iter_python_paths",
    "module_name_for",
    "parse_python_file",
]
