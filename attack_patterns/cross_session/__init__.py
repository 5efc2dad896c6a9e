from .service import CrossSessionTracker

__all__ = ["CrossSessionTracker"]
