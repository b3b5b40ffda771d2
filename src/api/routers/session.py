"""
Session lookup endpoint.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.auth_context import AuthContext, get_auth_context
from api.models import success
from auth.errors import InvalidRequestError

router = APIRouter(tags=["session"])


@router.get("/session")
def get_session(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    context: AuthContext = Depends(get_auth_context),
):
    """Returns session metadata and records the access as last seen."""
    if not session_id or not session_id.strip():
        raise InvalidRequestError("sessionId query parameter missing", "sessionId is required")
    session = context.session_store.touch_last_seen(session_id.strip())
    return success(session.to_dict())
