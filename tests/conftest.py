"""Shared fixtures for meter analyzer tests."""
import pytest

from meter_analyzer.config import NamingConfig
from meter_analyzer.entity import NamingControl, set_naming_control
from meter_analyzer.sample import Sample, SampleFamily


@pytest.fixture(autouse=True)
def naming_control():
    """Install a permissive naming control for every test and remove it afterwards."""
    control = NamingControl(NamingConfig(
        service_name_max_length=512,
        instance_name_max_length=512,
        endpoint_name_max_length=512,
    ))
    set_naming_control(control)
    yield control
    set_naming_control(None)


@pytest.fixture
def http_success_request():
    """Five samples over idc, with optional region, svc and instance labels."""
    name = "http_success_request"
    return SampleFamily.of(name, [
        Sample(name, {"idc": "t1"}, 50),
        Sample(name, {"idc": "t3", "region": "cn", "svc": "catalog"}, 51),
        Sample(name, {"idc": "t1", "region": "us", "svc": "product"}, 50),
        Sample(name, {"idc": "t1", "region": "us", "instance": "10.0.0.1"}, 100),
        Sample(name, {"idc": "t3", "region": "cn", "instance": "10.0.0.1"}, 3),
    ])
