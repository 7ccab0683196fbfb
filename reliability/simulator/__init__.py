# Simulator package
from reliability.simulator.incident_simulator import IncidentSimulator

__all__ = ["IncidentSimulator"]
