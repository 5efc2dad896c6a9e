from .service import CoordinatedAttackCorrelator

__all__ = ["CoordinatedAttackCorrelator"]
