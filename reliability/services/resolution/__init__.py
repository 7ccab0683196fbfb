# Resolution package
from reliability.services.resolution.resolver import IncidentResolver, OPERATOR_RESOLUTIONS

__all__ = ["IncidentResolver", "OPERATOR_RESOLUTIONS"]
