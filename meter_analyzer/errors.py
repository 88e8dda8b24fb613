"""Error types raised while evaluating meter expressions."""


class ExpressionError(Exception):
    """Base class for every failure an expression evaluation can report."""


class ExpressionSyntaxError(ExpressionError):
    """Expression text could not be parsed into an operation chain."""


class MetricNotFoundError(ExpressionError):
    """The root metric of an expression is missing from the context."""

    def __init__(self, metric_name: str):
        self.metric_name = metric_name
        super().__init__(f"Metric '{metric_name}' not found in context")


class ArgumentError(ExpressionError):
    """An operator was called with missing, extra or mistyped arguments."""


class ChainError(ExpressionError):
    """The operation chain does not end in exactly one scope operator."""


class NamingError(ExpressionError):
    """An entity name was rejected by the naming control."""
