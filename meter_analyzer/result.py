"""Outcome of evaluating one meter expression."""
from dataclasses import dataclass
from typing import Dict, List, Optional

from meter_analyzer.entity import MeterEntity
from meter_analyzer.errors import ExpressionError
from meter_analyzer.sample import Sample


@dataclass(frozen=True)
class Result:
    """Either the entity -> samples mapping of a successful evaluation, or its error."""
    success: bool
    data: Optional[Dict[MeterEntity, List[Sample]]] = None
    error: Optional[ExpressionError] = None
    metric_name: Optional[str] = None

    @classmethod
    def ok(cls, data: Dict[MeterEntity, List[Sample]], metric_name: Optional[str] = None) -> "Result":
        return cls(True, data=data, metric_name=metric_name)

    @classmethod
    def fail(cls, error: ExpressionError, metric_name: Optional[str] = None) -> "Result":
        return cls(False, error=error, metric_name=metric_name)

    def unwrap(self) -> Dict[MeterEntity, List[Sample]]:
        """Return the mapping, raising the carried error on failure."""
        if not self.success:
            raise self.error
        return self.data

    def samples_for(self, entity: MeterEntity) -> List[Sample]:
        return self.unwrap().get(entity, [])
