"""Tests for expression parsing, chain validation and evaluation failures."""
import pytest

from meter_analyzer.config import NamingConfig
from meter_analyzer.entity import Layer, NamingControl, ServiceEntity, set_naming_control
from meter_analyzer.errors import (
    ArgumentError, ChainError, ExpressionError, ExpressionSyntaxError, MetricNotFoundError, NamingError,
)
from meter_analyzer.expression import EnumRef, Expression, Operation, evaluate, evaluate_text, parse
from meter_analyzer.sample import Sample

NAME = "http_success_request"


def test_parse_chain():
    expression = parse("http_success_request.sum(['region', 'idc']).service(['idc'], Layer.GENERAL)")

    assert expression.metric_name == NAME
    assert expression.operations == (
        Operation("sum", (("region", "idc"),)),
        Operation("service", (("idc",), EnumRef("Layer", "GENERAL"))),
    )


def test_parse_relation_arguments():
    expression = parse(
        "envoy.sum(['app']).serviceRelation(DetectPoint.SERVER, ['app'], ['cluster_name'], Layer.MESH_DP)"
    )
    assert expression.operations[-1].args == (
        EnumRef("DetectPoint", "SERVER"), ("app",), ("cluster_name",), EnumRef("Layer", "MESH_DP"),
    )


def test_parse_accepts_parenthesised_prefix():
    expression = parse("(m.sum(['a'])).service(['a'], Layer.GENERAL)")
    assert [op.name for op in expression.operations] == ["sum", "service"]


@pytest.mark.parametrize("text", [
    "http_success_request.sum([",
    "sum(['idc'])",
    "1 + 2",
    "m.sum(keys=['idc'])",
    "m.sum([x for x in y])",
    "m.attr.sum(['idc'])",
])
def test_parse_rejects_malformed_text(text):
    with pytest.raises(ExpressionSyntaxError):
        parse(text)


def test_expression_str():
    expression = Expression(NAME, (
        Operation("sum", (["idc"],)),
        Operation("service", (["idc"], Layer.GENERAL)),
    ))
    assert str(expression) == "http_success_request.sum(['idc']).service(['idc'], Layer.GENERAL)"


def test_evaluate_programmatic_expression(http_success_request):
    expression = Expression(NAME, (
        Operation("sum", (["idc"],)),
        Operation("service", (["idc"], Layer.GENERAL)),
    ))

    result = evaluate(expression, {NAME: http_success_request})

    assert result.success
    assert result.metric_name == NAME
    assert result.samples_for(ServiceEntity("t1", Layer.GENERAL)) == [Sample(NAME, {}, 200)]


def test_missing_metric_is_a_failure(http_success_request):
    result = evaluate_text("unknown_metric.sum(['idc']).service(['idc'], Layer.GENERAL)", {NAME: http_success_request})

    assert not result.success
    assert result.data is None
    assert isinstance(result.error, MetricNotFoundError)
    assert result.error.metric_name == "unknown_metric"
    with pytest.raises(MetricNotFoundError):
        result.unwrap()


@pytest.mark.parametrize("text", [
    "http_success_request.sum(['idc']).service(['idc'], Layer.NOPE)",
    "http_success_request.sum(['idc']).service([], Layer.GENERAL)",
    "http_success_request.sum(['idc']).service(['idc'])",
    "http_success_request.sum('idc').service(['idc'], Layer.GENERAL)",
    "http_success_request.sum(['idc'], ['region']).service(['idc'], Layer.GENERAL)",
    "http_success_request.sum(['idc']).service(['idc'], DetectPoint.CLIENT)",
    "http_success_request.sum(['idc']).service(['idc', 1], Layer.GENERAL)",
    "http_success_request.sum(['idc']).service(['bad-key'], Layer.GENERAL)",
    "http_success_request.sum(['idc']).endpoint(['idc'], [], Layer.GENERAL)",
    "http_success_request.sum(['idc']).serviceRelation(Layer.GENERAL, ['idc'], ['region'], Layer.GENERAL)",
    "http_success_request.sum(['idc']).serviceRelation(DetectPoint.BOTH, ['idc'], ['region'], Layer.GENERAL)",
])
def test_argument_failures(http_success_request, text):
    result = evaluate_text(text, {NAME: http_success_request})

    assert not result.success
    assert isinstance(result.error, ArgumentError), result.error


@pytest.mark.parametrize("text,message", [
    ("http_success_request.sum(['idc'])", "must end with"),
    ("http_success_request.service(['idc'], Layer.GENERAL).sum(['idc'])", "cannot follow"),
    (
        "http_success_request.service(['idc'], Layer.GENERAL).endpoint(['idc'], ['region'], Layer.GENERAL)",
        "must be the last call",
    ),
    ("http_success_request.rate('PT1M').service(['idc'], Layer.GENERAL)", "Unknown operation"),
])
def test_chain_failures(http_success_request, text, message):
    result = evaluate_text(text, {NAME: http_success_request})

    assert not result.success
    assert isinstance(result.error, ChainError)
    assert message in str(result.error)


def test_empty_chain_is_a_failure(http_success_request):
    result = evaluate(Expression(NAME, ()), {NAME: http_success_request})
    assert isinstance(result.error, ChainError)


def test_chain_is_validated_before_lookup():
    result = evaluate_text("unknown_metric.sum(['idc'])", {})
    assert isinstance(result.error, ChainError)


def test_syntax_error_is_a_failure():
    result = evaluate_text("http_success_request.sum([", {})

    assert not result.success
    assert isinstance(result.error, ExpressionSyntaxError)


def test_naming_limit_is_a_failure(http_success_request):
    set_naming_control(NamingControl(NamingConfig(service_name_max_length=2)))

    result = evaluate_text(
        "http_success_request.sum(['idc', 'region']).service(['idc', 'region'], Layer.GENERAL)",
        {NAME: http_success_request}
    )

    assert not result.success
    assert isinstance(result.error, NamingError)


def test_uninitialized_naming_control_is_a_failure(http_success_request):
    set_naming_control(None)

    result = evaluate_text("http_success_request.service(['idc'], Layer.GENERAL)", {NAME: http_success_request})

    assert isinstance(result.error, NamingError)


def test_unexpected_errors_become_failures(http_success_request):
    class BrokenContext(dict):
        def get(self, key, default=None):
            raise RuntimeError("context unavailable")

    result = evaluate_text("http_success_request.service(['idc'], Layer.GENERAL)", BrokenContext())

    assert not result.success
    assert type(result.error) is ExpressionError
    assert isinstance(result.error.__cause__, RuntimeError)


def test_evaluation_is_pure(http_success_request):
    context = {NAME: http_success_request}
    text = "http_success_request.sum(['region', 'idc']).service(['idc'], Layer.GENERAL)"

    first = evaluate_text(text, context)
    second = evaluate_text(text, context)

    assert first.data == second.data
    assert context == {NAME: http_success_request}
    assert len(http_success_request) == 5
