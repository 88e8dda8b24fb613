"""Tests for building evaluation contexts from scraped samples."""
import pytest
import yaml

from meter_analyzer.entity import Layer, ServiceEntity
from meter_analyzer.expression import evaluate_text
from meter_analyzer.sample import Sample
from meter_analyzer.scrape import context_from_dict, context_from_exposition, load_context

EXPOSITION = """\
# HELP http_requests_total Total HTTP requests
# TYPE http_requests_total counter
http_requests_total{service="cart",code="200"} 30
http_requests_total{service="cart",code="500"} 2
http_requests_total{service="shop",code="200"} 7
# HELP request_latency_seconds Request latency
# TYPE request_latency_seconds histogram
request_latency_seconds_bucket{service="cart",le="0.1"} 3
request_latency_seconds_bucket{service="cart",le="+Inf"} 4
request_latency_seconds_sum{service="cart"} 0.9
request_latency_seconds_count{service="cart"} 4
"""


def test_context_from_exposition():
    context = context_from_exposition(EXPOSITION)

    assert set(context) == {
        "http_requests_total",
        "request_latency_seconds_bucket",
        "request_latency_seconds_sum",
        "request_latency_seconds_count",
    }
    assert list(context["http_requests_total"])[0] == Sample(
        "http_requests_total", {"service": "cart", "code": "200"}, 30
    )
    assert len(context["request_latency_seconds_bucket"]) == 2


def test_exposition_context_evaluates():
    context = context_from_exposition(EXPOSITION)

    result = evaluate_text(
        "http_requests_total.sum(['service']).service(['service'], Layer.GENERAL)", context
    )

    assert result.success
    assert result.data == {
        ServiceEntity("cart", Layer.GENERAL): [Sample("http_requests_total", {}, 32)],
        ServiceEntity("shop", Layer.GENERAL): [Sample("http_requests_total", {}, 7)],
    }


def test_context_from_dict():
    context = context_from_dict({
        "cpu": [
            {"labels": {"host": "a", "core": 0}, "value": 1.5},
            {"labels": {"host": "b"}, "value": 2},
        ],
        "empty": None,
    })

    assert list(context["cpu"]) == [
        Sample("cpu", {"host": "a", "core": "0"}, 1.5),
        Sample("cpu", {"host": "b"}, 2),
    ]
    assert len(context["empty"]) == 0


def test_context_from_dict_rejects_bad_label_names():
    with pytest.raises(ValueError):
        context_from_dict({"cpu": [{"labels": {"host-name": "a"}, "value": 1}]})


def test_load_context_by_extension(tmp_path):
    yaml_path = tmp_path / "samples.yaml"
    yaml_path.write_text("cpu:\n  - labels: {host: a}\n    value: 1\n")
    prom_path = tmp_path / "samples.prom"
    prom_path.write_text(EXPOSITION)

    assert list(load_context(str(yaml_path))["cpu"]) == [Sample("cpu", {"host": "a"}, 1)]
    assert "http_requests_total" in load_context(str(prom_path))

    with pytest.raises(FileNotFoundError):
        load_context(str(tmp_path / "missing.yaml"))


def test_null_label_values_read_as_empty():
    context = context_from_dict(yaml.safe_load(
        "http_success_request:\n"
        "  - labels: {idc: t1, region: }\n"
        "    value: 1\n"
    ))

    sample = list(context["http_success_request"])[0]
    assert sample.labels == {"idc": "t1", "region": ""}

    result = evaluate_text(
        "http_success_request.sum(['idc', 'region']).service(['idc', 'region'], Layer.GENERAL)", context
    )
    assert list(result.data) == [ServiceEntity("t1", Layer.GENERAL)]
