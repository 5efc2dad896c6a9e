from .service import ViolationDispatcher, to_violation
from .sinks import LogSink, NATSSink, ViolationSink

__all__ = ["LogSink", "NATSSink", "ViolationDispatcher", "ViolationSink", "to_violation"]
