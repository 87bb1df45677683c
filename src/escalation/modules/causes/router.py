"""Escalation Causes - Router.

REST API endpoints for the case escalation cause picker.
"""

from fastapi import APIRouter, Depends, Query

from escalation.auth import get_current_user
from escalation.auth.schemas import User
from escalation.deps import require_causes
from escalation.modules.causes.schemas import (
    PickerStateResponse,
    ReconcileResult,
    SelectionUpdate,
    SessionContext,
    SuggestionsResponse,
)
from escalation.modules.causes.service import CausesService, get_causes_service

router = APIRouter(prefix="/causes", tags=["Causes"], dependencies=[require_causes])


def get_service() -> CausesService:
    return get_causes_service()


def get_session(case_id: str, user: User = Depends(get_current_user)) -> SessionContext:
    """Who is looking at which case."""
    return SessionContext(user_id=user.id, parent_id=case_id)


def _to_response(result: ReconcileResult) -> PickerStateResponse:
    return PickerStateResponse(
        case_id=result.parent_id,
        selection=result.selection,
        available=result.available,
        outcomes=result.outcomes,
    )


@router.get("/cases/{case_id}", response_model=PickerStateResponse)
async def open_case(
    session: SessionContext = Depends(get_session),
    service: CausesService = Depends(get_service),
) -> PickerStateResponse:
    """Selected and available causes for a case."""
    return _to_response(await service.open_case(session))


@router.post("/cases/{case_id}/reload", response_model=PickerStateResponse)
async def reload_case(
    session: SessionContext = Depends(get_session),
    service: CausesService = Depends(get_service),
) -> PickerStateResponse:
    """Reload a case from the store (repairs orphaned rows)."""
    return _to_response(await service.open_case(session, reload=True))


@router.put("/cases/{case_id}", response_model=PickerStateResponse)
async def update_selection(
    data: SelectionUpdate,
    session: SessionContext = Depends(get_session),
    service: CausesService = Depends(get_service),
) -> PickerStateResponse:
    """Reconcile the case with the complete desired selection.

    Per-cause failures are reported in `outcomes`; the call itself succeeds.
    """
    result = await service.update_selection(session, data.tag_ids)
    return _to_response(result)


@router.get("/cases/{case_id}/suggestions", response_model=SuggestionsResponse)
async def suggestions(
    q: str = Query(default="", max_length=100),
    show_all: bool = Query(default=False),
    session: SessionContext = Depends(get_session),
    service: CausesService = Depends(get_service),
) -> SuggestionsResponse:
    """Available causes whose label contains the typed text."""
    items = await service.suggestions(session, q, show_all=show_all)
    return SuggestionsResponse(case_id=session.parent_id, query=q, items=items, total=len(items))
