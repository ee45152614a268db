from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class PlanId(str, Enum):
    FREE = "free"
    PREMIUM = "premium"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PENDING_APPROVAL = "pending_approval"
    INACTIVE = "inactive"


@dataclass(frozen=True, slots=True)
class PlanFeatures:
    max_recordings: int
    max_storage_gb: int
    can_download: bool
    can_share: bool
    can_create_sessions: bool


@dataclass(frozen=True, slots=True)
class Plan:
    id: PlanId
    monthly_price: Decimal
    yearly_price: Decimal
    limits: PlanFeatures
    features: tuple[str, ...] = field(default_factory=tuple)
    popular: bool = False

    def price(self, cycle: BillingCycle) -> Decimal:
        if cycle is BillingCycle.YEARLY:
            return self.yearly_price
        return self.monthly_price


STUDENT_LIMITS = PlanFeatures(
    max_recordings=10,
    max_storage_gb=5,
    can_download=True,
    can_share=False,
    can_create_sessions=False,
)
ADMIN_LIMITS = PlanFeatures(
    max_recordings=999,
    max_storage_gb=50,
    can_download=True,
    can_share=True,
    can_create_sessions=True,
)
ENTERPRISE_LIMITS = PlanFeatures(
    max_recordings=999,
    max_storage_gb=100,
    can_download=True,
    can_share=True,
    can_create_sessions=True,
)

PLANS: dict[PlanId, Plan] = {
    PlanId.FREE: Plan(
        id=PlanId.FREE,
        monthly_price=Decimal("0"),
        yearly_price=Decimal("0"),
        limits=STUDENT_LIMITS,
        features=(
            "basic-courses",
            "live-sessions",
            "view-recordings",
            "community-support",
        ),
    ),
    PlanId.PREMIUM: Plan(
        id=PlanId.PREMIUM,
        monthly_price=Decimal("19.99"),
        yearly_price=Decimal("199.99"),
        limits=PlanFeatures(
            max_recordings=100,
            max_storage_gb=20,
            can_download=True,
            can_share=True,
            can_create_sessions=False,
        ),
        features=(
            "all-free-features",
            "advanced-courses",
            "priority-support",
            "download-resources",
            "certificate",
            "advanced-analytics",
        ),
        popular=True,
    ),
    PlanId.PRO: Plan(
        id=PlanId.PRO,
        monthly_price=Decimal("49.99"),
        yearly_price=Decimal("499.99"),
        limits=ENTERPRISE_LIMITS,
        features=(
            "all-premium-features",
            "unlimited-courses",
            "dedicated-support",
            "custom-branding",
            "team-management",
            "api-access",
        ),
    ),
    PlanId.ENTERPRISE: Plan(
        id=PlanId.ENTERPRISE,
        monthly_price=Decimal("0"),
        yearly_price=Decimal("0"),
        limits=ENTERPRISE_LIMITS,
    ),
}
