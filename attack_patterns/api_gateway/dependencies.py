from typing import Optional, TYPE_CHECKING

from fastapi import HTTPException

if TYPE_CHECKING:
    from ..engine import AttackPatternEngine

# Module-level reference set by main.py once the engine is built.
_engine_ref: Optional["AttackPatternEngine"] = None


def register_engine(engine: Optional["AttackPatternEngine"]) -> None:
    """Give the routers and the /health endpoint access to the engine."""
    global _engine_ref
    _engine_ref = engine


def current_engine() -> Optional["AttackPatternEngine"]:
    return _engine_ref


def get_engine() -> "AttackPatternEngine":
    """FastAPI dependency resolving the registered engine."""
    if _engine_ref is None:
        raise HTTPException(status_code=503, detail="Attack pattern engine not available")
    return _engine_ref
