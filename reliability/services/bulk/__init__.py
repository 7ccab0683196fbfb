# Bulk actions package
from reliability.services.bulk.coordinator import BulkActionCoordinator

__all__ = ["BulkActionCoordinator"]
