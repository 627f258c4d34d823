"""little-things data layer: storage routing, request caching and profile reconciliation."""

from .outcome import Outcome, OutcomeStatus
from .service import DataService, create_data_service

__all__ = ["DataService", "create_data_service", "Outcome", "OutcomeStatus"]
