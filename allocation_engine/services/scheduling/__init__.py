from .schedule_builder import NetworkTimes, ScheduleBuilder, build_allocations, compute_network, risk_level

__all__ = [
    "NetworkTimes",
    "ScheduleBuilder",
    "build_allocations",
    "compute_network",
    "risk_level",
]
