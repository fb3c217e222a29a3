import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from leavedesk.core.exceptions import AccessDeniedError
from leavedesk.core.schemas import ApiResponse
from leavedesk.database import get_db
from leavedesk.models.user import UserProfile
from leavedesk.routers.auth_deps import get_current_user, require_hr_admin
from leavedesk.schemas.balance import BalanceAdjustment, BalanceResponse, CarryOverRequest, CarryOverResult
from leavedesk.services.audit import AuditService
from leavedesk.services.balance import BalanceLedger
from leavedesk.services.base import utc_today
from leavedesk.services.directory import UserDirectory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/balances", tags=["balances"])


@router.post("/carry-over", response_model=ApiResponse[CarryOverResult])
def run_carry_over(
    payload: CarryOverRequest,
    db: Session = Depends(get_db),
    current_user: UserProfile = Depends(require_hr_admin()),
):
    """Year-end job: move unused days of carry-over enabled types into the next year."""
    ledger = BalanceLedger(db, AuditService(db, current_user.id))
    try:
        if payload.user_id is not None:
            updated = ledger.process_carry_over(payload.user_id, payload.from_year)
        else:
            updated = ledger.carry_over_for_all(payload.from_year)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Carry-over from {payload.from_year} run by {current_user.id}: {len(updated)} balance(s)")
    return ApiResponse.ok(CarryOverResult(
        from_year=payload.from_year,
        to_year=payload.from_year + 1,
        balances_updated=len(updated),
    ))


@router.get("/{user_id}", response_model=List[BalanceResponse])
def get_user_balances(
    user_id: int,
    year: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: UserProfile = Depends(get_current_user),
):
    if user_id != current_user.id and not current_user.is_hr_admin:
        if user_id not in UserDirectory(db).get_hierarchy_tree(current_user.id):
            raise AccessDeniedError("You cannot view this user's balances")

    ledger = BalanceLedger(db, AuditService(db, current_user.id))
    return ledger.get_user_balances(user_id, year or utc_today().year)


@router.post("/{user_id}/adjust", response_model=ApiResponse[BalanceResponse])
def adjust_balance(
    user_id: int,
    payload: BalanceAdjustment,
    db: Session = Depends(get_db),
    current_user: UserProfile = Depends(require_hr_admin()),
):
    UserDirectory(db).require_user(user_id)
    ledger = BalanceLedger(db, AuditService(db, current_user.id))
    try:
        balance = ledger.adjust(user_id, payload.activity_type_id, payload.year, payload.days, payload.reason)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Balance of user {user_id} adjusted by {payload.days} day(s) by {current_user.id}")
    return ApiResponse.ok(BalanceResponse.model_validate(balance), "Balance adjusted")
