from __future__ import annotations

from itertools import groupby

import libcst as cst

from delegen.delegation.model import (
    ForwardingOperation,
    GeneratedTypeDescription,
    ImportSpec,
)
from delegen.toolchain.model import (
    MEMBER_ASYNC,
    MEMBER_PROPERTY,
    PARAM_KEYWORD_ONLY,
    PARAM_POSITIONAL_ONLY,
    PARAM_POSITIONAL_OR_KEYWORD,
    PARAM_VAR_KEYWORD,
    PARAM_VAR_POSITIONAL,
    Parameter,
)

_TIGHT_EQUAL = cst.AssignEqual(
    whitespace_before=cst.SimpleWhitespace(""),
    whitespace_after=cst.SimpleWhitespace(""),
)
_SPACED_EQUAL = cst.AssignEqual(
    whitespace_before=cst.SimpleWhitespace(" "),
    whitespace_after=cst.SimpleWhitespace(" "),
)


def _dotted(path: str) -> cst.Name | cst.Attribute:
    parts = path.split(".")
    node: cst.Name | cst.Attribute = cst.Name(parts[0])
    for part in parts[1:]:
        node = cst.Attribute(value=node, attr=cst.Name(part))
    return node


def _self_attr(*names: str) -> cst.Name | cst.Attribute:
    return _dotted(".".join(("self", *names)))


def _import_lines(specs: list[ImportSpec]) -> list[cst.SimpleStatementLine]:
    lines: list[cst.SimpleStatementLine] = []
    plain = sorted({spec.name for spec in specs if spec.module is None})
    for name in plain:
        lines.append(
            cst.SimpleStatementLine([cst.Import(names=[cst.ImportAlias(name=_dotted(name))])])
        )
    grouped = sorted(
        (spec for spec in specs if spec.module is not None),
        key=lambda spec: (spec.module or "", spec.name),
    )
    for module, group in groupby(grouped, key=lambda spec: spec.module or ""):
        names = [
            cst.ImportAlias(
                name=cst.Name(spec.name),
                asname=cst.AsName(name=cst.Name(spec.alias)) if spec.alias else None,
            )
            for spec in group
        ]
        lines.append(
            cst.SimpleStatementLine([cst.ImportFrom(module=_dotted(module), names=names)])
        )
    return lines


def _param(param: Parameter) -> cst.Param:
    annotation = None
    if param.annotation is not None:
        annotation = cst.Annotation(cst.parse_expression(param.annotation.text))
    if param.default is None:
        return cst.Param(name=cst.Name(param.name), annotation=annotation)
    return cst.Param(
        name=cst.Name(param.name),
        annotation=annotation,
        default=cst.parse_expression(param.default.text),
        equal=_SPACED_EQUAL if annotation is not None else _TIGHT_EQUAL,
    )


def _parameters(params: tuple[Parameter, ...], *, receiver: str = "self") -> cst.Parameters:
    receiver_param = cst.Param(name=cst.Name(receiver))
    posonly = [_param(p) for p in params if p.kind == PARAM_POSITIONAL_ONLY]
    ordinary = [_param(p) for p in params if p.kind == PARAM_POSITIONAL_OR_KEYWORD]
    kwonly = [_param(p) for p in params if p.kind == PARAM_KEYWORD_ONLY]
    star = next((_param(p) for p in params if p.kind == PARAM_VAR_POSITIONAL), None)
    star_kwarg = next((_param(p) for p in params if p.kind == PARAM_VAR_KEYWORD), None)
    star_arg: cst.Param | cst.ParamStar | None = star
    if star_arg is None and kwonly:
        star_arg = cst.ParamStar()
    if posonly:
        return cst.Parameters(
            posonly_params=[receiver_param, *posonly],
            posonly_ind=cst.ParamSlash(),
            params=ordinary,
            star_arg=star_arg if star_arg is not None else cst.MaybeSentinel.DEFAULT,
            kwonly_params=kwonly,
            star_kwarg=star_kwarg,
        )
    return cst.Parameters(
        params=[receiver_param, *ordinary],
        star_arg=star_arg if star_arg is not None else cst.MaybeSentinel.DEFAULT,
        kwonly_params=kwonly,
        star_kwarg=star_kwarg,
    )


def _call_args(params: tuple[Parameter, ...]) -> list[cst.Arg]:
    args: list[cst.Arg] = []
    for param in params:
        name = cst.Name(param.name)
        if param.kind == PARAM_VAR_POSITIONAL:
            args.append(cst.Arg(value=name, star="*"))
        elif param.kind == PARAM_VAR_KEYWORD:
            args.append(cst.Arg(value=name, star="**"))
        elif param.kind == PARAM_KEYWORD_ONLY:
            args.append(
                cst.Arg(value=name, keyword=cst.Name(param.name), equal=_TIGHT_EQUAL)
            )
        else:
            args.append(cst.Arg(value=name))
    return args


def _forwarding_def(operation: ForwardingOperation) -> cst.FunctionDef:
    returns = None
    if operation.returns is not None:
        returns = cst.Annotation(cst.parse_expression(operation.returns.text))
    if operation.kind == MEMBER_PROPERTY:
        return cst.FunctionDef(
            name=cst.Name(operation.name),
            params=_parameters(()),
            body=cst.IndentedBlock(
                [
                    cst.SimpleStatementLine(
                        [cst.Return(_self_attr(operation.field_name, operation.name))]
                    )
                ]
            ),
            decorators=[cst.Decorator(cst.Name("property"))],
            returns=returns,
            leading_lines=[cst.EmptyLine()],
        )
    call: cst.BaseExpression = cst.Call(
        func=_self_attr(operation.field_name, operation.name),
        args=_call_args(operation.parameters),
    )
    is_async = operation.kind == MEMBER_ASYNC
    if is_async:
        call = cst.Await(expression=call)
    statement: cst.BaseSmallStatement
    if operation.returns_value:
        statement = cst.Return(call)
    else:
        statement = cst.Expr(call)
    return cst.FunctionDef(
        name=cst.Name(operation.name),
        params=_parameters(operation.parameters),
        body=cst.IndentedBlock([cst.SimpleStatementLine([statement])]),
        returns=returns,
        asynchronous=cst.Asynchronous() if is_async else None,
        leading_lines=[cst.EmptyLine()],
    )


def _constructor(description: GeneratedTypeDescription) -> cst.FunctionDef:
    annotations = {field.name: field.annotation for field in description.fields}
    params = [
        cst.Param(
            name=cst.Name(name),
            annotation=cst.Annotation(cst.parse_expression(annotations[name]))
            if name in annotations
            else None,
        )
        for name in description.constructor_parameters
    ]
    body = [
        cst.SimpleStatementLine(
            [
                cst.Assign(
                    targets=[cst.AssignTarget(_self_attr(name))],
                    value=cst.Name(name),
                )
            ]
        )
        for name in description.constructor_parameters
    ]
    return cst.FunctionDef(
        name=cst.Name("__init__"),
        params=cst.Parameters(params=[cst.Param(name=cst.Name("self")), *params]),
        body=cst.IndentedBlock(body or [cst.SimpleStatementLine([cst.Pass()])]),
        returns=cst.Annotation(cst.Name("None")),
        leading_lines=[cst.EmptyLine()],
    )


def _instantiation_guard(class_name: str) -> cst.FunctionDef:
    guard = cst.parse_statement(
        f"if cls is {class_name}:\n"
        f"    raise TypeError(\"{class_name} is a generated base; instantiate a subclass\")\n"
    )
    return cst.FunctionDef(
        name=cst.Name("__new__"),
        params=cst.Parameters(
            params=[cst.Param(name=cst.Name("cls"))],
            star_arg=cst.Param(name=cst.Name("args")),
            star_kwarg=cst.Param(name=cst.Name("kwargs")),
        ),
        body=cst.IndentedBlock(
            [guard, cst.parse_statement("return super().__new__(cls)\n")]
        ),
        leading_lines=[cst.EmptyLine()],
    )


def render_class(description: GeneratedTypeDescription) -> cst.ClassDef:
    docstring = cst.SimpleStatementLine(
        [cst.Expr(cst.SimpleString(f'"""Delegating base for {description.declaration}."""'))]
    )
    field_lines = [
        cst.SimpleStatementLine(
            [
                cst.AnnAssign(
                    target=cst.Name(field.name),
                    annotation=cst.Annotation(cst.parse_expression(field.annotation)),
                    value=None,
                )
            ],
            leading_lines=[cst.EmptyLine()] if index == 0 else [],
        )
        for index, field in enumerate(description.fields)
    ]
    body: list[cst.BaseStatement] = [docstring, *field_lines]
    body.append(_instantiation_guard(description.class_name))
    body.append(_constructor(description))
    body.extend(_forwarding_def(operation) for operation in description.operations)
    return cst.ClassDef(
        name=cst.Name(description.class_name),
        bases=[cst.Arg(cst.parse_expression(base.expression)) for base in description.bases],
        body=cst.IndentedBlock(body=body),
        leading_lines=[cst.EmptyLine(), cst.EmptyLine()],
    )


def render_module(description: GeneratedTypeDescription) -> str:
    """Render the generated module for ``description`` as source text."""
    header = [
        cst.EmptyLine(
            comment=cst.Comment(
                f"# Generated by delegen from {description.declaration}. Do not edit."
            )
        )
    ]
    body: list[cst.BaseStatement] = [
        cst.SimpleStatementLine(
            [
                cst.ImportFrom(
                    module=cst.Name("__future__"),
                    names=[cst.ImportAlias(name=cst.Name("annotations"))],
                )
            ]
        )
    ]
    runtime = [spec for spec in description.imports if not spec.type_checking]
    checking = [spec for spec in description.imports if spec.type_checking]
    imports: list[cst.SimpleStatementLine] = []
    if checking:
        imports.append(
            cst.SimpleStatementLine(
                [
                    cst.ImportFrom(
                        module=cst.Name("typing"),
                        names=[cst.ImportAlias(name=cst.Name("TYPE_CHECKING"))],
                    )
                ]
            )
        )
    imports.extend(_import_lines(runtime))
    if imports:
        imports[0] = imports[0].with_changes(leading_lines=[cst.EmptyLine()])
        body.extend(imports)
    if checking:
        body.append(
            cst.If(
                test=cst.Name("TYPE_CHECKING"),
                body=cst.IndentedBlock(body=_import_lines(checking)),
                leading_lines=[cst.EmptyLine()],
            )
        )
    body.append(
        cst.SimpleStatementLine(
            [
                cst.Assign(
                    targets=[cst.AssignTarget(cst.Name("__all__"))],
                    value=cst.List(
                        [cst.Element(cst.SimpleString(f'"{description.class_name}"'))]
                    ),
                )
            ],
            leading_lines=[cst.EmptyLine()],
        )
    )
    body.append(render_class(description))
    return cst.Module(body=body, header=header).code
