"""Escalation Causes Module - case-to-cause picker backed by a bridge relation."""

from escalation.modules.causes.reconciler import ReconciliationEngine
from escalation.modules.causes.router import router
from escalation.modules.causes.service import CausesService
from escalation.modules.causes.store import InMemoryRelationStore, RelationStore

__all__ = ["router", "CausesService", "ReconciliationEngine", "RelationStore", "InMemoryRelationStore"]
