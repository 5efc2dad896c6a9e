class AttackPatternError(Exception):
    """Base class for errors raised inside the attack pattern engine."""


class MalformedEventError(AttackPatternError):
    """An inbound event is missing a required field or cannot be parsed."""


class ComputationError(AttackPatternError):
    """An analysis step could not produce a value (empty window, zero span)."""
