"""
Meter expressions: parsing, chain validation and evaluation.

An expression names one root metric followed by chained operator calls:

    http_success_request.sum(['region', 'idc']).service(['idc'], Layer.GENERAL)

Zero or more reductions may run first; the chain must end with exactly one
scope operator, which turns the family into an entity -> samples mapping.
"""
import ast
from dataclasses import dataclass
from enum import Enum
import logging
from typing import Any, List, Mapping, Optional, Tuple, Type

from meter_analyzer.entity import DetectPoint, Layer
from meter_analyzer.errors import (
    ArgumentError, ChainError, ExpressionError, ExpressionSyntaxError, MetricNotFoundError,
)
from meter_analyzer.grouping import validate_label_names
from meter_analyzer.reducers import REDUCERS, reduce_by
from meter_analyzer.result import Result
from meter_analyzer.sample import SampleFamily
from meter_analyzer.scope import SCOPES, ScopeVariant, resolve

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnumRef:
    """Unresolved `Type.MEMBER` reference as written in expression text."""
    type_name: str
    member: str

    def __str__(self):
        return f"{self.type_name}.{self.member}"


@dataclass(frozen=True)
class Operation:
    """One operator call in a chain."""
    name: str
    args: Tuple[Any, ...] = ()

    def __str__(self):
        return f"{self.name}({', '.join(_format_arg(a) for a in self.args)})"


@dataclass(frozen=True)
class Expression:
    """Root metric name and the ordered operator calls applied to it."""
    metric_name: str
    operations: Tuple[Operation, ...]
    text: Optional[str] = None

    def __str__(self):
        if self.text is not None:
            return self.text
        return ".".join([self.metric_name] + [str(op) for op in self.operations])


def _format_arg(arg: Any) -> str:
    if isinstance(arg, Enum):
        return f"{type(arg).__name__}.{arg.name}"
    if isinstance(arg, (list, tuple)):
        return "[" + ", ".join(_format_arg(a) for a in arg) + "]"
    if isinstance(arg, str):
        return repr(arg)
    return str(arg)


# Parsing

def parse(text: str) -> Expression:
    """
    Parse expression text into an Expression.

    The language is a subset of Python call syntax, so the text is parsed with
    `ast` and then walked from the last call back to the root metric name.

    Raises:
        ExpressionSyntaxError: If the text is not a valid expression
    """
    try:
        tree = ast.parse(text.strip(), mode="eval")
    except SyntaxError as e:
        raise ExpressionSyntaxError(f"Invalid expression '{text}': {e.msg}")

    operations: List[Operation] = []
    node = tree.body
    while isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Attribute):
            raise ExpressionSyntaxError(f"Invalid expression '{text}': calls must be chained on a metric")
        if node.keywords:
            raise ExpressionSyntaxError(
                f"Invalid expression '{text}': keyword arguments are not supported in '{node.func.attr}'"
            )
        operations.append(Operation(node.func.attr, tuple(_literal(a, text) for a in node.args)))
        node = node.func.value

    if not isinstance(node, ast.Name):
        raise ExpressionSyntaxError(f"Invalid expression '{text}': must start with a metric name")

    operations.reverse()
    return Expression(node.id, tuple(operations), text)


def _literal(node: ast.AST, text: str) -> Any:
    if isinstance(node, ast.Constant) and isinstance(node.value, (str, int, float)):
        return node.value
    if isinstance(node, (ast.List, ast.Tuple)):
        return tuple(_literal(e, text) for e in node.elts)
    if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
        return EnumRef(node.value.id, node.attr)
    raise ExpressionSyntaxError(f"Invalid expression '{text}': unsupported argument '{ast.unparse(node)}'")


# Chain validation and argument binding

@dataclass(frozen=True)
class ReduceStep:
    how: str
    keys: Tuple[str, ...]

    def apply(self, family: SampleFamily) -> SampleFamily:
        return reduce_by(family, self.keys, self.how)


@dataclass(frozen=True)
class ScopeStep:
    variant: ScopeVariant
    key_lists: Tuple[Tuple[str, ...], ...]
    layer: Layer
    detect_point: Optional[DetectPoint] = None

    def apply(self, family: SampleFamily):
        return resolve(family, self.variant, self.key_lists, self.layer, self.detect_point)


def compile_chain(expression: Expression) -> Tuple[List[ReduceStep], ScopeStep]:
    """
    Validate the chain shape and bind every operator's arguments.

    Raises:
        ChainError: If the chain is not reductions followed by one scope operator
        ArgumentError: If an operator's arguments do not fit its signature
    """
    operations = expression.operations
    if not operations:
        raise ChainError(f"Expression '{expression}' has no operations")

    for i, op in enumerate(operations):
        if op.name not in REDUCERS and op.name not in SCOPES:
            raise ChainError(f"Unknown operation '{op.name}'")

        if op.name in SCOPES and i != len(operations) - 1:
            following = operations[i + 1]
            if following.name in REDUCERS:
                raise ChainError(
                    f"Reduction '{following.name}' cannot follow scope operation '{op.name}'"
                )
            raise ChainError(f"Scope operation '{op.name}' must be the last call in the chain")

    if operations[-1].name not in SCOPES:
        raise ChainError(
            f"Expression '{expression}' must end with one of: {', '.join(SCOPES)}"
        )

    steps = [_bind_reducer(op) for op in operations[:-1]]
    return steps, _bind_scope(operations[-1])


def _bind_reducer(op: Operation) -> ReduceStep:
    if len(op.args) != 1:
        raise ArgumentError(f"{op.name}() takes 1 argument, got {len(op.args)}")
    keys = _bind_keys(op, op.args[0], required=False)
    return ReduceStep(REDUCERS[op.name], keys)


def _bind_scope(op: Operation) -> ScopeStep:
    variant = SCOPES[op.name]
    expected = variant.key_list_count + 1 + (1 if variant.needs_detect_point else 0)
    if len(op.args) != expected:
        raise ArgumentError(f"{op.name}() takes {expected} arguments, got {len(op.args)}")

    args = list(op.args)
    detect_point = None
    if variant.needs_detect_point:
        detect_point = _bind_enum(op, args.pop(0), DetectPoint)

    key_lists = tuple(_bind_keys(op, a, required=True) for a in args[:-1])
    layer = _bind_enum(op, args[-1], Layer)
    return ScopeStep(variant, key_lists, layer, detect_point)


def _bind_keys(op: Operation, arg: Any, required: bool) -> Tuple[str, ...]:
    if not isinstance(arg, (list, tuple)):
        raise ArgumentError(f"{op.name}() expects a list of label keys, got {_format_arg(arg)}")
    if required and not arg:
        raise ArgumentError(f"{op.name}() requires at least one label key per list")
    if not validate_label_names(arg):
        raise ArgumentError(f"{op.name}() got invalid label keys {_format_arg(arg)}")
    return tuple(arg)


def _bind_enum(op: Operation, arg: Any, enum_cls: Type[Enum]) -> Enum:
    if isinstance(arg, enum_cls):
        return arg

    if isinstance(arg, EnumRef) and arg.type_name == enum_cls.__name__:
        try:
            return enum_cls[arg.member]
        except KeyError:
            raise ArgumentError(f"{op.name}() got undefined {enum_cls.__name__} '{arg.member}'")

    raise ArgumentError(f"{op.name}() expects a {enum_cls.__name__}, got {_format_arg(arg)}")


# Evaluation

def evaluate(expression: Expression, context: Mapping[str, SampleFamily]) -> Result:
    """
    Evaluate an expression against a context of sample families.

    Never raises: every failure is returned as a failed Result.
    """
    try:
        steps, scope = compile_chain(expression)

        family = context.get(expression.metric_name)
        if family is None:
            raise MetricNotFoundError(expression.metric_name)

        for step in steps:
            family = step.apply(family)

        data = scope.apply(family)

    except ExpressionError as e:
        logger.debug(f"Expression '{expression}' failed: {e}")
        return Result.fail(e, expression.metric_name)

    except Exception as e:
        logger.error(f"Unexpected error evaluating '{expression}': {e}", exc_info=True)
        error = ExpressionError(f"Unexpected error: {e}")
        error.__cause__ = e
        return Result.fail(error, expression.metric_name)

    return Result.ok(data, expression.metric_name)


def evaluate_text(text: str, context: Mapping[str, SampleFamily]) -> Result:
    """Parse and evaluate expression text; syntax errors become failed Results."""
    try:
        expression = parse(text)
    except ExpressionSyntaxError as e:
        logger.debug(f"Expression '{text}' failed to parse: {e}")
        return Result.fail(e)

    return evaluate(expression, context)
