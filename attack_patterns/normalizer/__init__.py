from .service import EventNormalizer

__all__ = ["EventNormalizer"]
