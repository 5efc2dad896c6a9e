from .service import BruteForceDetector

__all__ = ["BruteForceDetector"]
