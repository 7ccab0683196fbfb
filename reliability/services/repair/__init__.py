# Repair package
from reliability.services.repair.invoker import HttpRepairInvoker, RepairInvoker, RepairOutcome
from reliability.services.repair.orchestrator import RepairOrchestrator

__all__ = ["HttpRepairInvoker", "RepairInvoker", "RepairOutcome", "RepairOrchestrator"]
