"""
Utilities package initialization.
"""
from .logger import get_logger, log_performance, setup_logging
from .time import Clock, FrozenClock, system_clock

__all__ = ["get_logger", "log_performance", "setup_logging", "Clock", "FrozenClock", "system_clock"]
