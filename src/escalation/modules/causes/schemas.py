"""
Escalation Causes - Schemas

Pydantic models for causes, bridge rows, and the picker selection.
"""

from typing import List, Literal

from pydantic import BaseModel, Field


# =============================================================================
# Store Records
# =============================================================================

class Tag(BaseModel):
    """An escalation cause. Read-only reference data."""
    id: str
    label: str
    owner_id: str | None = None
    owner_name: str | None = Field(default=None, description="Display name of the owning team/user")


class BridgeRow(BaseModel):
    """A persisted case-to-cause attachment."""
    row_id: str
    parent_id: str
    tag_id: str
    created_by: str | None = None


class Team(BaseModel):
    """A team the session user belongs to."""
    team_id: str
    team_name: str | None = None


# =============================================================================
# Session Context
# =============================================================================

class SessionContext(BaseModel):
    """Who is looking at which case."""
    user_id: str
    parent_id: str

    def current_user_id(self) -> str:
        return self.user_id

    def current_parent_id(self) -> str:
        return self.parent_id


# =============================================================================
# Selection
# =============================================================================

class SelectionEntry(BaseModel):
    """One chip in the picker."""
    tag_id: str
    label: str
    bridge_row_id: str | None = None
    owner: str | None = None
    visible: bool = True


OutcomeAction = Literal["add", "remove", "repair"]
OutcomeStatus = Literal["succeeded", "failed", "skipped"]


class ItemOutcome(BaseModel):
    """Per-cause report of a single add/remove/repair."""
    tag_id: str
    action: OutcomeAction
    status: OutcomeStatus
    code: str | None = Field(default=None, description="Error or skip reason code")
    message: str | None = None
    bridge_row_id: str | None = None


class ReconcileResult(BaseModel):
    """Settled result of one reconcile call."""
    parent_id: str
    selection: List[SelectionEntry]
    available: List[SelectionEntry]
    outcomes: List[ItemOutcome] = Field(default_factory=list)
    stale: bool = Field(default=False, description="True when the case changed before the call settled")


# =============================================================================
# HTTP Schemas
# =============================================================================

class SelectionUpdate(BaseModel):
    """Complete desired selection reported by the picker."""
    tag_ids: List[str] = Field(default_factory=list, description="Cause IDs in picker order")


class PickerStateResponse(BaseModel):
    """Current picker state for a case."""
    case_id: str
    selection: List[SelectionEntry]
    available: List[SelectionEntry]
    outcomes: List[ItemOutcome] = Field(default_factory=list)


class SuggestionsResponse(BaseModel):
    """Type-ahead suggestions over available causes."""
    case_id: str
    query: str
    items: List[SelectionEntry]
    total: int
