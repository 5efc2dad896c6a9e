from .service import RetentionSchedulerService

__all__ = ["RetentionSchedulerService"]
