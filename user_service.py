"""
Admin user console: approvals, balances, multipliers and access flags.
"""

import logging
import math
from typing import List, Optional

from api_client import MoogShipClient
from formatting import dollars_to_cents, format_cents
from moogship_models import User, parse_users
from mutations import MutationResult, Notifier, OptimisticMutation, PendingTracker, PreconditionFailed
from query_cache import QueryCache, remove_from_list, replace_in_list

USERS_KEY = ("/api/users",)
BALANCE_KEYS = [USERS_KEY, ("/api/balance",), ("/api/transactions",)]


class UserService:
    """Service class for admin user management."""

    def __init__(self, client: MoogShipClient, cache: QueryCache, notifier: Notifier,
                 pending: Optional[PendingTracker] = None):
        self.client = client
        self.cache = cache
        self.notifier = notifier
        self.pending = pending or PendingTracker()
        self.logger = logging.getLogger(__name__)

    def list_users(self, search: Optional[str] = None) -> List[User]:
        """All users, optionally filtered by name, username, email or company."""
        def fetch():
            users = parse_users(self.client.get("/api/users"))
            self.logger.info(f"Fetched {len(users)} users")
            return users

        users = self.cache.read(USERS_KEY, fetch)
        if not search:
            return users

        needle = search.lower().strip()
        return [
            user for user in users
            if any(needle in (value or "").lower()
                   for value in (user.name, user.username, user.email, user.companyName))
        ]

    def _mutation(self, name: str, user: User, mutate, **kwargs) -> MutationResult:
        return OptimisticMutation(self.cache, self.notifier, name, mutate,
                                  pending=self.pending, entity_id=user.id, **kwargs).run()

    def _patch(self, user: User, **changes):
        return [(USERS_KEY, lambda users: replace_in_list(users, user.id, **changes))]

    def approve(self, user: User) -> MutationResult:
        return self._mutation(
            "approve_user", user,
            lambda: self.client.post(f"/api/users/{user.id}/approve"),
            patches=self._patch(user, isApproved=True, rejectionReason=None),
            success_title="User approved successfully",
            success_message=f"{user.name}'s account has been approved.",
            error_title="Failed to approve user",
        )

    def reject(self, user: User, reason: str) -> MutationResult:
        reason = (reason or "").strip()

        def check():
            if not reason:
                raise PreconditionFailed("Rejection reason required", "Please provide a reason for rejection.")

        return self._mutation(
            "reject_user", user,
            lambda: self.client.post(f"/api/users/{user.id}/reject", json={"rejectionReason": reason}),
            precondition=check,
            patches=self._patch(user, isApproved=False, rejectionReason=reason),
            success_title="User rejected",
            success_message=f"{user.name}'s account has been rejected.",
            error_title="Failed to reject user",
        )

    def update_price_multiplier(self, user: User, multiplier) -> MutationResult:
        try:
            value = float(multiplier)
        except (TypeError, ValueError):
            value = None
        if value is not None and not math.isfinite(value):
            value = None

        def check():
            if value is None or value <= 0:
                raise PreconditionFailed("Invalid multiplier", "Price multiplier must be greater than zero.")

        return self._mutation(
            "update_price_multiplier", user,
            lambda: self.client.patch(f"/api/users/{user.id}", json={"priceMultiplier": value}),
            precondition=check,
            patches=self._patch(user, priceMultiplier=value) if value and value > 0 else [],
            success_title="Price multiplier updated",
            success_message=f"{user.name}'s price multiplier has been set to {value}x.",
            error_title="Failed to update price multiplier",
        )

    def add_funds(self, user: User, amount_cents: int, description: str = "") -> MutationResult:
        """Credit (positive) or debit (negative) a user's balance."""
        def check():
            if not amount_cents:
                raise PreconditionFailed("Invalid amount", "Please enter a non-zero amount.")

        if not description:
            if amount_cents and amount_cents > 0:
                description = f"Admin fund addition to {user.username}"
            else:
                description = f"Admin fund deduction from {user.username}"

        return self._mutation(
            "add_funds", user,
            lambda: self.client.post("/api/balance/add", json={
                "userId": user.id,
                "amount": amount_cents / 100,
                "description": description,
            }),
            precondition=check,
            patches=self._patch(user, balance=user.balance + (amount_cents or 0)),
            invalidate=BALANCE_KEYS,
            success_title="Balance adjusted successfully",
            success_message=f"{user.name}'s balance has been updated.",
            error_title="Failed to adjust balance",
        )

    def set_balance(self, user: User, balance_dollars, description: str = "") -> MutationResult:
        try:
            balance_cents = dollars_to_cents(balance_dollars)
        except ValueError:
            balance_cents = None

        def check():
            if balance_cents is None:
                raise PreconditionFailed("Invalid balance", "Please enter a valid balance.")

        def describe(data) -> str:
            formatted = (data or {}).get("formattedBalance") or format_cents(balance_cents)
            return f"{user.name}'s balance has been set to {formatted}."

        return self._mutation(
            "set_balance", user,
            lambda: self.client.post("/api/balance/set", json={
                "userId": user.id,
                "balance": balance_cents / 100,
                "description": description or f"Admin balance adjustment for {user.username}",
            }),
            precondition=check,
            patches=self._patch(user, balance=balance_cents) if balance_cents is not None else [],
            invalidate=BALANCE_KEYS,
            success_title="Balance updated successfully",
            success_message=describe,
            error_title="Failed to set balance",
        )

    def set_min_balance(self, user: User, value_dollars=None) -> MutationResult:
        """Per-user minimum balance in dollars; None falls back to the system default."""
        value = None
        valid = True
        if value_dollars is not None and value_dollars != "":
            try:
                value = dollars_to_cents(value_dollars) / 100
            except ValueError:
                valid = False

        def check():
            if not valid:
                raise PreconditionFailed("Invalid minimum balance", "Please enter a valid amount.")

        def describe(data) -> str:
            formatted = (data or {}).get("formattedValue") or "System Default"
            return f"{user.name}'s minimum balance limit has been set to {formatted}."

        return self._mutation(
            "set_min_balance", user,
            lambda: self.client.post(f"/api/users/{user.id}/min-balance", json={"value": value}),
            precondition=check,
            invalidate=[USERS_KEY, ("/api/user",)],
            success_title="Minimum balance updated",
            success_message=describe,
            error_title="Failed to update minimum balance",
        )

    def toggle_carrier_label_access(self, user: User) -> MutationResult:
        can_access = not bool(user.canAccessCarrierLabels)
        verb = "granted" if can_access else "revoked"
        return self._mutation(
            "carrier_label_access", user,
            lambda: self.client.post(f"/api/users/{user.id}/carrier-label-access",
                                     json={"canAccess": can_access}),
            patches=self._patch(user, canAccessCarrierLabels=can_access),
            success_title="Carrier label access updated",
            success_message=f"Carrier label access {verb} for {user.name}.",
            error_title="Failed to update carrier label access",
        )

    def grant_return_access(self, user: User) -> MutationResult:
        return self._mutation(
            "grant_return_access", user,
            lambda: self.client.post(f"/api/users/{user.id}/grant-return-access", json={}),
            patches=self._patch(user, canAccessReturnSystem=True),
            success_title="Return System Access Granted",
            success_message=f"{user.name} now has access to the return management system.",
            error_title="Failed to grant return access",
        )

    def revoke_return_access(self, user: User) -> MutationResult:
        return self._mutation(
            "revoke_return_access", user,
            lambda: self.client.post(f"/api/users/{user.id}/revoke-return-access", json={}),
            patches=self._patch(user, canAccessReturnSystem=False),
            success_title="Return System Access Revoked",
            success_message=f"{user.name} no longer has access to the return management system.",
            error_title="Failed to revoke return access",
        )

    def delete_user(self, user: User) -> MutationResult:
        return self._mutation(
            "delete_user", user,
            lambda: self.client.delete(f"/api/users/{user.id}"),
            patches=[(USERS_KEY, lambda users: remove_from_list(users, user.id))],
            success_title="User deleted",
            success_message=f"{user.name} has been removed.",
            error_title="Failed to delete user",
        )
