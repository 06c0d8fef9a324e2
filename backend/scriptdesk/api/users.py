"""Principal lookup and session administration endpoints"""
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from scriptdesk.api.deps import (
    get_clock,
    get_identity_store,
    get_session_manager,
    guard_mutation,
    require_admin,
    require_super_admin,
    require_user,
)
from scriptdesk.database import get_db
from scriptdesk.middleware.monitoring import record_session_event
from scriptdesk.models.user import User
from scriptdesk.schemas.auth import AdminResponse, PurgeResponse, UserResponse
from scriptdesk.utils.clock import Clock
from scriptdesk.utils.identity_store import SqlIdentityStore
from scriptdesk.utils.logger import logger
from scriptdesk.utils.sessions import SessionManager

router = APIRouter(prefix="/api", tags=["users"])

# Counters older than this are dead weight for every configured window
STALE_COUNTER_AGE_SECONDS = 24 * 60 * 60


@router.get("/user/me", response_model=UserResponse)
def get_current_user(user: User = Depends(require_user)):
    """Return the principal bound to the session cookie"""
    return user


@router.get("/admin/me", response_model=AdminResponse)
def get_current_admin(admin: User = Depends(require_admin)):
    return AdminResponse(
        id=admin.id,
        username=admin.username,
        email=admin.email,
        is_super_admin=bool(admin.is_super_admin),
        role="super_admin" if admin.is_super_admin else "admin",
    )


@router.post(
    "/admin/users/{user_id}/sessions/revoke",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(guard_mutation)],
)
def revoke_user_sessions(
    user_id: int,
    admin: User = Depends(require_super_admin),
    db: Session = Depends(get_db),
    sessions: SessionManager = Depends(get_session_manager),
):
    """
    Log a user out everywhere.

    Every token issued to the user so far stops authenticating on its next
    use. The user can sign in again normally.
    """
    target = db.query(User).filter(User.id == user_id).first()
    if not target:
        raise HTTPException(status_code=404, detail=f"User {user_id} not found")

    sessions.revoke_all(target.id)

    record_session_event("revoked")
    logger.info(
        f"Sessions revoked by admin {admin.id}",
        extra={"subject_id": target.id, "event": "revoke_all"},
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/admin/rate-limits/purge",
    response_model=PurgeResponse,
    dependencies=[Depends(guard_mutation)],
)
def purge_rate_limit_counters(
    admin: User = Depends(require_super_admin),
    store: SqlIdentityStore = Depends(get_identity_store),
    clock: Clock = Depends(get_clock),
):
    """Delete rate-limit counters whose window started more than a day ago"""
    removed = store.purge_stale_rate_counters(clock.now() - STALE_COUNTER_AGE_SECONDS)
    logger.info(f"Purged {removed} stale rate-limit counters", extra={"event": "rate_limit_purge"})
    return PurgeResponse(removed=removed)
