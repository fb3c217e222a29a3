"""
Balance Ledger

Per-(user, activity type, year) running totals. Every mutation reads its row with
SELECT ... FOR UPDATE and the row carries a version counter, so two transactions
touching the same balance serialize instead of losing an update.

The ledger flushes but never commits: the caller owns the transaction, which is what
lets a lifecycle transition change request status and balance atomically.
"""
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from leavedesk.core.exceptions import BusinessRuleError, NotFoundError
from leavedesk.models.activity_type import ActivityType
from leavedesk.models.user_balance import UserBalance
from leavedesk.services.audit import AuditService
from leavedesk.services.base import BaseService


class BalanceLedger(BaseService):
    def __init__(self, db, audit: AuditService):
        super().__init__(db)
        self.audit = audit

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_balance(self, user_id: int, activity_type_id: int, year: int) -> Optional[UserBalance]:
        return self.db.query(UserBalance).filter(
            UserBalance.user_id == user_id,
            UserBalance.activity_type_id == activity_type_id,
            UserBalance.year == year
        ).first()

    def get_user_balances(self, user_id: int, year: int) -> List[UserBalance]:
        return self.db.query(UserBalance).filter(
            UserBalance.user_id == user_id,
            UserBalance.year == year
        ).order_by(UserBalance.activity_type_id).all()

    def has_sufficient_balance(self, user_id: int, activity_type_id: int, year: int, required_days: float) -> bool:
        """
        Compare against the available days of the row, or against the activity
        type's default allowance when the row has not been created yet.
        """
        balance = self.get_balance(user_id, activity_type_id, year)
        if balance is None:
            activity_type = self.db.get(ActivityType, activity_type_id)
            default_balance = activity_type.default_annual_balance if activity_type else None
            return (default_balance or 0.0) >= required_days
        return balance.available_days >= required_days

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def initialize(self, user_id: int, activity_type_id: int, year: int) -> UserBalance:
        """Create the row with the activity type's default allowance. Idempotent."""
        existing = self._locked(user_id, activity_type_id, year)
        if existing is not None:
            return existing

        activity_type = self.db.get(ActivityType, activity_type_id)
        if activity_type is None:
            raise NotFoundError("Activity type", activity_type_id)

        balance = UserBalance(
            user_id=user_id,
            activity_type_id=activity_type_id,
            year=year,
            total_days=activity_type.default_annual_balance or 0.0,
            used_days=0.0,
            pending_days=0.0,
            carried_over_days=0.0,
            adjustment_days=0.0,
        )
        try:
            with self.db.begin_nested():
                self.db.add(balance)
        except IntegrityError:
            # A concurrent transaction created the row first; use theirs
            self._logger.info(
                f"Balance row for user {user_id}, type {activity_type_id}, {year} created concurrently"
            )
            return self._locked(user_id, activity_type_id, year)

        self.audit.record("UserBalance", balance.id, "Initialized", None, balance.snapshot())
        return balance

    def deduct(self, user_id: int, activity_type_id: int, year: int, days: float) -> UserBalance:
        self._check_days(days)
        balance = self._locked_or_initialized(user_id, activity_type_id, year)
        old = balance.used_days
        balance.used_days = old + days
        return self._recorded(balance, "Deducted", {"used_days": old},
                              {"used_days": balance.used_days, "deducted_days": days})

    def restore(self, user_id: int, activity_type_id: int, year: int, days: float) -> Optional[UserBalance]:
        self._check_days(days)
        balance = self._locked(user_id, activity_type_id, year)
        if balance is None:
            return None
        old = balance.used_days
        balance.used_days = max(0.0, old - days)
        return self._recorded(balance, "Restored", {"used_days": old},
                              {"used_days": balance.used_days, "restored_days": days})

    def add_pending(self, user_id: int, activity_type_id: int, year: int, days: float) -> UserBalance:
        self._check_days(days)
        balance = self._locked_or_initialized(user_id, activity_type_id, year)
        old = balance.pending_days
        balance.pending_days = old + days
        return self._recorded(balance, "PendingAdded", {"pending_days": old},
                              {"pending_days": balance.pending_days})

    def remove_pending(self, user_id: int, activity_type_id: int, year: int, days: float) -> Optional[UserBalance]:
        self._check_days(days)
        balance = self._locked(user_id, activity_type_id, year)
        if balance is None:
            return None
        old = balance.pending_days
        balance.pending_days = max(0.0, old - days)
        return self._recorded(balance, "PendingRemoved", {"pending_days": old},
                              {"pending_days": balance.pending_days})

    def adjust(self, user_id: int, activity_type_id: int, year: int, delta: float,
               reason: Optional[str] = None) -> UserBalance:
        """Manual correction; delta may be negative. The reason is kept for audit only."""
        balance = self._locked_or_initialized(user_id, activity_type_id, year)
        old = balance.adjustment_days
        balance.adjustment_days = old + delta
        return self._recorded(balance, "Adjusted", {"adjustment_days": old},
                              {"adjustment_days": balance.adjustment_days, "adjusted_by": delta, "reason": reason})

    def process_carry_over(self, user_id: int, from_year: int) -> List[UserBalance]:
        """
        Move unused days of carry-over enabled types into next year's rows.

        The target's carried_over_days is overwritten, not accumulated, so running
        this twice for the same year is safe.
        """
        to_year = from_year + 1
        updated = []

        for previous in self.get_user_balances(user_id, from_year):
            activity_type = self.db.get(ActivityType, previous.activity_type_id)
            if activity_type is None or not activity_type.allow_carry_over:
                continue

            carry_over_days = previous.available_days
            if activity_type.max_carry_over_days is not None:
                carry_over_days = min(carry_over_days, activity_type.max_carry_over_days)
            if carry_over_days <= 0:
                continue

            target = self._locked_or_initialized(user_id, previous.activity_type_id, to_year)
            old = target.carried_over_days
            target.carried_over_days = carry_over_days
            updated.append(self._recorded(
                target, "CarryOver",
                {"from_year": from_year, "carried_over_days": old},
                {"carried_over_days": carry_over_days},
            ))

        self._logger.info(f"Carry-over {from_year}->{to_year} for user {user_id}: {len(updated)} balance(s) updated")
        return updated

    def carry_over_for_all(self, from_year: int) -> List[UserBalance]:
        """Batch entry point for the year-end job: every user holding balances in from_year."""
        user_ids = [
            row[0] for row in
            self.db.query(UserBalance.user_id).filter(UserBalance.year == from_year).distinct().all()
        ]
        updated = []
        for user_id in sorted(user_ids):
            updated.extend(self.process_carry_over(user_id, from_year))
        return updated

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _locked(self, user_id: int, activity_type_id: int, year: int) -> Optional[UserBalance]:
        return (
            self.db.query(UserBalance)
            .filter(
                UserBalance.user_id == user_id,
                UserBalance.activity_type_id == activity_type_id,
                UserBalance.year == year
            )
            .with_for_update()
            .populate_existing()
            .one_or_none()
        )

    def _locked_or_initialized(self, user_id: int, activity_type_id: int, year: int) -> UserBalance:
        balance = self._locked(user_id, activity_type_id, year)
        if balance is None:
            balance = self.initialize(user_id, activity_type_id, year)
        return balance

    def _recorded(self, balance: UserBalance, action: str, old_values: dict, new_values: dict) -> UserBalance:
        self.db.flush()
        self.audit.record("UserBalance", balance.id, action, old_values, new_values)
        return balance

    @staticmethod
    def _check_days(days: float):
        if days < 0:
            raise BusinessRuleError(f"Day count must not be negative (got {days})")
