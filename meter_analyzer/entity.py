"""Topology entities that meter values are attributed to, and their naming rules."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
import logging
import re
import threading
from typing import ClassVar, Dict, List, Optional, Pattern, Tuple

from meter_analyzer.config import NamingConfig
from meter_analyzer.errors import NamingError

logger = logging.getLogger(__name__)


class Layer(Enum):
    """Topology layer an entity belongs to."""
    UNDEFINED = 0
    MESH = 1
    GENERAL = 2
    OS_LINUX = 3
    K8S = 4
    FAAS = 5
    MESH_CP = 6
    MESH_DP = 7
    DATABASE = 8
    CACHE = 9
    BROWSER = 10
    SO11Y_OAP = 11
    MQ = 13
    VIRTUAL_DATABASE = 14
    VIRTUAL_MQ = 15
    VIRTUAL_GATEWAY = 16
    K8S_SERVICE = 17


class DetectPoint(Enum):
    """Side of a relation that observed the traffic."""
    CLIENT = 0
    SERVER = 1
    PROXY = 2


class ScopeType(Enum):
    SERVICE = "service"
    SERVICE_INSTANCE = "service_instance"
    ENDPOINT = "endpoint"
    SERVICE_RELATION = "service_relation"


class MeterEntity(ABC):
    """Base class for entities; subclasses are frozen, value-equal dataclasses."""
    scope: ClassVar[ScopeType]

    @abstractmethod
    def labels(self) -> Dict[str, str]:
        """Flat label view of the entity, used when exporting."""
        pass


@dataclass(frozen=True)
class ServiceEntity(MeterEntity):
    service_name: str
    layer: Layer

    scope: ClassVar[ScopeType] = ScopeType.SERVICE

    def labels(self) -> Dict[str, str]:
        return {"service": self.service_name, "layer": self.layer.name}


@dataclass(frozen=True)
class ServiceInstanceEntity(MeterEntity):
    service_name: str
    instance_name: str
    layer: Layer
    properties: Optional[str] = None

    scope: ClassVar[ScopeType] = ScopeType.SERVICE_INSTANCE

    def labels(self) -> Dict[str, str]:
        return {
            "service": self.service_name,
            "service_instance": self.instance_name,
            "layer": self.layer.name,
        }


@dataclass(frozen=True)
class EndpointEntity(MeterEntity):
    service_name: str
    endpoint_name: str
    layer: Layer

    scope: ClassVar[ScopeType] = ScopeType.ENDPOINT

    def labels(self) -> Dict[str, str]:
        return {
            "service": self.service_name,
            "endpoint": self.endpoint_name,
            "layer": self.layer.name,
        }


@dataclass(frozen=True)
class ServiceRelationEntity(MeterEntity):
    source_service_name: str
    dest_service_name: str
    detect_point: DetectPoint
    layer: Layer

    scope: ClassVar[ScopeType] = ScopeType.SERVICE_RELATION

    def labels(self) -> Dict[str, str]:
        return {
            "source_service": self.source_service_name,
            "dest_service": self.dest_service_name,
            "detect_point": self.detect_point.name,
            "layer": self.layer.name,
        }


class NamingControl:
    """Applies length limits and endpoint grouping to entity names."""

    def __init__(self, config: NamingConfig):
        self.config = config
        self._groupings: List[Tuple[Optional[str], Pattern, str]] = [
            (rule.service, re.compile(rule.pattern), rule.name)
            for rule in config.endpoint_groupings
        ]

    def format_service_name(self, name: str) -> str:
        return self._check_length("service", name, self.config.service_name_max_length)

    def format_instance_name(self, name: str) -> str:
        return self._check_length("instance", name, self.config.instance_name_max_length)

    def format_endpoint_name(self, service_name: str, endpoint_name: str) -> str:
        """Group the endpoint name if a rule matches, then check its length."""
        for service, pattern, grouped_name in self._groupings:
            if service is not None and service != service_name:
                continue
            if pattern.fullmatch(endpoint_name):
                logger.debug(f"Endpoint '{endpoint_name}' of '{service_name}' grouped as '{grouped_name}'")
                endpoint_name = grouped_name
                break

        return self._check_length("endpoint", endpoint_name, self.config.endpoint_name_max_length)

    @staticmethod
    def _check_length(kind: str, name: str, max_length: int) -> str:
        if len(name) > max_length:
            raise NamingError(
                f"{kind.capitalize()} name '{name[:32]}...' is {len(name)} characters, "
                f"longer than the limit of {max_length}"
            )
        return name


_naming_control: Optional[NamingControl] = None
_naming_users = 0
_naming_lock = threading.Lock()


def set_naming_control(control: Optional[NamingControl]):
    """Install (or with None, remove) the process-wide naming control."""
    global _naming_control, _naming_users
    with _naming_lock:
        _naming_control = control
        _naming_users = 0


def acquire_naming_control(control: NamingControl) -> NamingControl:
    """
    Register one more user of the process-wide naming control.

    The first user installs `control`; later users share whatever is
    installed. Returns the control in effect.
    """
    global _naming_control, _naming_users
    with _naming_lock:
        if _naming_users == 0:
            _naming_control = control
        _naming_users += 1
        return _naming_control


def release_naming_control():
    """Drop one user; the last one to release removes the naming control."""
    global _naming_control, _naming_users
    with _naming_lock:
        if _naming_users == 0:
            return
        _naming_users -= 1
        if _naming_users == 0:
            _naming_control = None


def get_naming_control() -> NamingControl:
    control = _naming_control
    if control is None:
        raise NamingError("Naming control is not initialized")
    return control


def new_service(service_name: str, layer: Layer) -> ServiceEntity:
    naming = get_naming_control()
    return ServiceEntity(naming.format_service_name(service_name), layer)


def new_service_instance(
    service_name: str,
    instance_name: str,
    layer: Layer,
    properties: Optional[str] = None
) -> ServiceInstanceEntity:
    naming = get_naming_control()
    return ServiceInstanceEntity(
        naming.format_service_name(service_name),
        naming.format_instance_name(instance_name),
        layer,
        properties
    )


def new_endpoint(service_name: str, endpoint_name: str, layer: Layer) -> EndpointEntity:
    naming = get_naming_control()
    service_name = naming.format_service_name(service_name)
    return EndpointEntity(
        service_name,
        naming.format_endpoint_name(service_name, endpoint_name),
        layer
    )


def new_service_relation(
    source_service_name: str,
    dest_service_name: str,
    detect_point: DetectPoint,
    layer: Layer
) -> ServiceRelationEntity:
    naming = get_naming_control()
    return ServiceRelationEntity(
        naming.format_service_name(source_service_name),
        naming.format_service_name(dest_service_name),
        detect_point,
        layer
    )
