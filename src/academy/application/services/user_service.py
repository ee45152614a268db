import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from adaptix import Retort

from academy.application.document_store import (
    Changes,
    DocumentStore,
    Query,
    SortOrder,
)
from academy.application.exceptions.base import EntityNotFoundError
from academy.application.search import post_filter
from academy.application.services.common import (
    backend_operation,
    coerce_values,
    dump_document,
    eq,
    load_payload,
    pick,
    require,
    where_all,
)
from academy.application.validation import MAX_TITLE_LENGTH, ValidationResult
from academy.domain.common.enums import parse_choice
from academy.domain.common.exceptions import InvalidChoiceError
from academy.domain.subscription import (
    ADMIN_LIMITS,
    ENTERPRISE_LIMITS,
    PLANS,
    STUDENT_LIMITS,
    BillingCycle,
    PlanId,
    SubscriptionStatus,
)
from academy.domain.user import (
    USAGE_COUNTERS,
    ApprovalStatus,
    Subscription,
    User,
    UserRole,
    default_preferences,
    display_name_for,
)

logger = logging.getLogger(__name__)

COLLECTION = "users"
SYSTEM_ACTOR = "system"

UPDATABLE_FIELDS = frozenset(
    {
        "display_name",
        "first_name",
        "last_name",
        "phone",
        "preferences",
    },
)
SERVER_MANAGED_FIELDS = (
    "created_at",
    "updated_at",
    "submitted_at",
    "approved_at",
    "deactivated_at",
)


class UserStatusFilter(str, Enum):
    ALL = "all"
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


class UserSortField(str, Enum):
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    LAST_LOGIN = "last_login"
    EMAIL = "email"
    DISPLAY_NAME = "display_name"


USER_STATUS_FILTERS: dict[UserStatusFilter, dict[str, Any] | None] = {
    UserStatusFilter.ALL: None,
    UserStatusFilter.PENDING: eq("is_active", False),
    UserStatusFilter.ACTIVE: eq("is_active", True),
    UserStatusFilter.INACTIVE: eq(
        "approval_status",
        ApprovalStatus.DEACTIVATED.value,
    ),
}


@dataclass(frozen=True, slots=True, kw_only=True)
class UserQuery:
    status: UserStatusFilter = UserStatusFilter.ALL
    role: UserRole | None = None
    sort_by: UserSortField = UserSortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC
    limit: int = 50
    search_term: str = ""


@dataclass(frozen=True, slots=True)
class UserStats:
    total: int
    pending: int
    active: int
    deactivated: int
    active_today: int
    never_logged_in: int
    roles: dict[str, int] = field(default_factory=dict)
    plans: dict[str, int] = field(default_factory=dict)


def user_search_fields(user: User) -> tuple[Any, ...]:
    return (
        user.email,
        user.display_name,
        user.first_name,
        user.last_name,
        user.phone,
    )


def approval_values(approved_by: str) -> dict[str, Any]:
    return {
        "is_active": True,
        "approval_status": ApprovalStatus.APPROVED.value,
        "approved_by": approved_by,
        "subscription.status": SubscriptionStatus.ACTIVE.value,
    }


APPROVAL_STAMPS = {"approved_at", "subscription.start_date"}


@dataclass(slots=True, frozen=True)
class UserService:
    store: DocumentStore
    retort: Retort

    def _load(self, document: dict[str, Any]) -> User:
        return self.retort.load(document, User)

    def _load_many(self, documents: list[dict[str, Any]]) -> list[User]:
        return self.retort.load(documents, list[User])

    async def _write(self, user_id: str, changes: Changes) -> User:
        require(user_id, "User ID is required")
        document = await self.store.update(COLLECTION, user_id, changes)
        if document is None:
            raise EntityNotFoundError(User, "id", user_id)
        return self._load(document)

    @backend_operation("create user profile")
    async def create(self, user_id: str, data: Mapping[str, Any]) -> User:
        """
        Profile for an account created by the auth provider

        The document id is the auth uid. Admins start active and
        approved, everyone else waits for approval.
        """
        require(user_id and data.get("email"), "User ID and email are required")
        self.validate(data).raise_for_errors()

        role = parse_choice(UserRole, data.get("role") or UserRole.STUDENT, "role")
        is_admin = role is UserRole.ADMIN
        email = data["email"].lower().strip()
        first_name = (data.get("first_name") or "").strip()
        last_name = (data.get("last_name") or "").strip()

        user = load_payload(
            self.retort,
            {
                "user_id": user_id,
                "email": email,
                "display_name": display_name_for(
                    email,
                    first_name,
                    last_name,
                    data.get("display_name") or "",
                ),
                "first_name": first_name,
                "last_name": last_name,
                "phone": data.get("phone") or "",
                "role": role,
                "preferences": default_preferences(data.get("language") or "en"),
            },
            User,
        )
        user.is_active = is_admin
        if is_admin:
            user.approval_status = ApprovalStatus.APPROVED
            user.approved_by = SYSTEM_ACTOR
        user.subscription = Subscription(
            status=(
                SubscriptionStatus.ACTIVE
                if is_admin
                else SubscriptionStatus.PENDING_APPROVAL
            ),
            features=asdict(ADMIN_LIMITS if is_admin else STUDENT_LIMITS),
        )

        now = ["created_at", "updated_at", "submitted_at"]
        if is_admin:
            now.extend(["approved_at", "subscription.start_date"])

        created = await self.store.insert(
            COLLECTION,
            dump_document(self.retort, user, SERVER_MANAGED_FIELDS),
            now=now,
            entity_id=user_id,
        )
        logger.info("User profile created: %s", user_id)
        return self._load(created)

    @backend_operation("fetch user profile")
    async def get_by_id(self, user_id: str) -> User | None:
        require(user_id, "User ID is required")
        document = await self.store.get(COLLECTION, user_id)
        if document is None:
            logger.info("User profile not found: %s", user_id)
            return None
        return self._load(document)

    @backend_operation("fetch users")
    async def get_all(self, query: UserQuery | None = None) -> list[User]:
        query = query or UserQuery()
        where = where_all(
            USER_STATUS_FILTERS[query.status],
            eq("role", query.role.value if query.role else None),
        )
        documents = await self.store.find(
            COLLECTION,
            Query(
                where=where,
                sort=[(query.sort_by.value, query.sort_order)],
                limit=query.limit,
            ),
        )
        users = post_filter(
            self._load_many(documents),
            query.search_term,
            user_search_fields,
        )
        logger.info("Fetched %s users", len(users))
        return users

    @backend_operation("update user profile")
    async def update(self, user_id: str, updates: Mapping[str, Any]) -> User:
        require(user_id, "User ID is required")
        payload = pick(updates, UPDATABLE_FIELDS)
        self.validate(payload, is_update=True).raise_for_errors()
        values = coerce_values(self.retort, User, payload)
        return await self._write(user_id, Changes(values=values).touch())

    @backend_operation("update last login")
    async def update_last_login(self, user_id: str) -> User:
        changes = Changes(
            values={"login_attempts": 0, "account_locked": False},
            now={"last_login", "usage.last_activity"},
        )
        return await self._write(user_id, changes.touch())

    @backend_operation("increment usage")
    async def increment_usage(
        self,
        user_id: str,
        counter: str,
        amount: int = 1,
    ) -> User:
        if counter not in USAGE_COUNTERS:
            raise InvalidChoiceError(
                field_name="usage counter",
                value=counter,
                allowed=sorted(USAGE_COUNTERS),
            )
        changes = Changes(
            increments={f"usage.{counter}": amount},
            now={"usage.last_activity"},
        )
        return await self._write(user_id, changes.touch())

    @backend_operation("approve user")
    async def approve(self, user_id: str, approved_by: str = "admin") -> User:
        changes = Changes(
            values=approval_values(approved_by),
            now=set(APPROVAL_STAMPS),
        )
        return await self._write(user_id, changes.touch())

    @backend_operation("reject user")
    async def reject(
        self,
        user_id: str,
        reason: str = "",
    ) -> User:
        changes = Changes(
            values={
                "is_active": False,
                "approval_status": ApprovalStatus.REJECTED.value,
                "rejection_reason": reason,
            },
        )
        return await self._write(user_id, changes.touch())

    @backend_operation("deactivate user")
    async def deactivate(self, user_id: str, reason: str = "") -> User:
        changes = Changes(
            values={
                "is_active": False,
                "approval_status": ApprovalStatus.DEACTIVATED.value,
                "subscription.status": SubscriptionStatus.INACTIVE.value,
                "deactivation_reason": reason,
            },
            now={"deactivated_at"},
        )
        return await self._write(user_id, changes.touch())

    async def delete(self, user_id: str) -> User:
        """Profiles are never removed, deleting deactivates them"""
        return await self.deactivate(user_id)

    @backend_operation("reactivate user")
    async def reactivate(self, user_id: str) -> User:
        changes = Changes(
            values={
                "is_active": True,
                "approval_status": ApprovalStatus.APPROVED.value,
                "subscription.status": SubscriptionStatus.ACTIVE.value,
            },
        )
        return await self._write(user_id, changes.touch())

    @backend_operation("change user role")
    async def change_role(
        self,
        user_id: str,
        role: UserRole | str,
        changed_by: str = "admin",
    ) -> User:
        role = parse_choice(UserRole, role, "role")
        changes = Changes(values={"role": role.value})

        if role is UserRole.ADMIN:
            changes.values.update(approval_values(changed_by))
            changes.values.update(
                {
                    "subscription.plan": PlanId.ENTERPRISE.value,
                    "subscription.end_date": None,
                    "subscription.features": asdict(ENTERPRISE_LIMITS),
                },
            )
            changes.now.update(APPROVAL_STAMPS)

        return await self._write(user_id, changes.touch())

    @backend_operation("bulk approve users")
    async def bulk_approve(
        self,
        user_ids: Sequence[str],
        approved_by: str = "admin",
    ) -> int:
        if not user_ids:
            return 0
        changes = Changes(
            values=approval_values(approved_by),
            now=set(APPROVAL_STAMPS),
        )
        approved = await self.store.update_many(
            COLLECTION,
            user_ids,
            changes.touch(),
        )
        logger.info("Bulk approved %s users", approved)
        return approved

    @backend_operation("fetch pending users")
    async def get_pending(self) -> list[User]:
        documents = await self.store.find(
            COLLECTION,
            Query(
                where=where_all(
                    eq("is_active", False),
                    eq("approval_status", ApprovalStatus.PENDING.value),
                ),
                sort=[("created_at", SortOrder.DESC)],
            ),
        )
        return self._load_many(documents)

    @backend_operation("update user subscription")
    async def update_subscription(
        self,
        user_id: str,
        plan_id: PlanId | str,
        billing_cycle: BillingCycle | str = BillingCycle.MONTHLY,
    ) -> User:
        plan = PLANS[parse_choice(PlanId, plan_id, "plan")]
        cycle = parse_choice(BillingCycle, billing_cycle, "billing cycle")
        changes = Changes(
            values={
                "subscription.plan": plan.id.value,
                "subscription.billing_cycle": cycle.value,
                "subscription.features": asdict(plan.limits),
            },
        )
        return await self._write(user_id, changes.touch())

    @backend_operation("fetch user statistics")
    async def get_stats(self) -> UserStats:
        start_of_day = datetime.now(timezone.utc).replace(
            hour=0,
            minute=0,
            second=0,
            microsecond=0,
        )

        def count(*conditions: dict[str, Any] | None) -> Any:
            return self.store.count(COLLECTION, where_all(*conditions))

        roles = list(UserRole)
        plans = list(PlanId)
        counts = await asyncio.gather(
            count(),
            count(
                eq("is_active", False),
                {"role": {"neq": UserRole.ADMIN.value}},
            ),
            count(eq("is_active", True)),
            count(eq("approval_status", ApprovalStatus.DEACTIVATED.value)),
            count({"last_login": {"ge": start_of_day}}),
            count({"last_login": {"is_null": True}}),
            *(count(eq("role", role.value)) for role in roles),
            *(count(eq("subscription.plan", plan.value)) for plan in plans),
        )
        total, pending, active, deactivated, today, never = counts[:6]
        role_counts = counts[6:6 + len(roles)]
        plan_counts = counts[6 + len(roles):]

        return UserStats(
            total=total,
            pending=pending,
            active=active,
            deactivated=deactivated,
            active_today=today,
            never_logged_in=never,
            roles={
                role.value: amount for role, amount in zip(roles, role_counts)
            },
            plans={
                plan.value: amount for plan, amount in zip(plans, plan_counts)
            },
        )

    def validate(
        self,
        data: Mapping[str, Any],
        is_update: bool = False,
    ) -> ValidationResult:
        errors = []
        if not is_update or "email" in data:
            email = data.get("email")
            if not isinstance(email, str) or "@" not in email:
                errors.append("A valid email is required")
        display_name = data.get("display_name")
        if isinstance(display_name, str) and len(display_name) > MAX_TITLE_LENGTH:
            errors.append(
                f"Display name must be less than {MAX_TITLE_LENGTH} characters",
            )
        return ValidationResult(is_valid=not errors, errors=errors)
