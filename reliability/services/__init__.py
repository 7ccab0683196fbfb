# Services package
from reliability.services.container import ReliabilityServices, build_services

__all__ = ["ReliabilityServices", "build_services"]
