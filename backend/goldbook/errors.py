"""
Error taxonomy for the trade core.

- ValidationError / NotFoundError / StateError are raised before anything is
  written; callers show the message and nothing needs undoing.
- FormulaEvaluationError is raised inside the expression engine. Outside strict
  mode it is logged and the affected value becomes zero.
- PersistenceError wraps storage failures after the unit of work was rolled back.
"""


class TradeError(Exception):
    """Base class for trade service errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(TradeError):
    """Missing or malformed input."""


class NotFoundError(TradeError):
    """Unknown product, formula or transaction id."""


class StateError(TradeError):
    """Operation not allowed in the transaction's current delivery state."""


class FormulaEvaluationError(TradeError):
    """Unsafe, malformed or non-numeric formula evaluation."""


class PersistenceError(TradeError):
    """Storage failure; the enclosing unit of work has been rolled back."""
