from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from academy.domain.subscription import BillingCycle, PlanId
from academy.domain.user import UserRole


class CreateUserRequestSchema(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "user_id": "uid_1",
                    "email": "student@example.com",
                    "first_name": "Ann",
                    "last_name": "Lee",
                    "role": "student",
                },
            ],
        },
    )

    user_id: str = Field(..., description="Auth provider uid")
    email: str
    display_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    role: UserRole | None = None
    language: str | None = None


class UpdateUserRequestSchema(BaseModel):
    display_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    preferences: dict[str, Any] | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class ApproveRequestSchema(BaseModel):
    approved_by: str = "admin"


class ReasonRequestSchema(BaseModel):
    reason: str = ""


class ChangeRoleRequestSchema(BaseModel):
    role: str
    changed_by: str = "admin"


class UsageRequestSchema(BaseModel):
    counter: str
    amount: int = 1


class BulkApproveRequestSchema(BaseModel):
    user_ids: list[str]
    approved_by: str = "admin"


class BulkApproveResponseSchema(BaseModel):
    approved: int


class SubscriptionRequestSchema(BaseModel):
    plan_id: PlanId
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
