from dishka import FromDishka
from dishka.integrations.fastapi import inject
from fastapi import APIRouter
from starlette import status

from academy.application.document_store import SortOrder
from academy.application.exceptions.base import EntityNotFoundError
from academy.application.services.user_service import (
    UserQuery,
    UserService,
    UserSortField,
    UserStats,
    UserStatusFilter,
)
from academy.domain.user import User, UserRole
from academy.presentation.api.users.schema import (
    ApproveRequestSchema,
    BulkApproveRequestSchema,
    BulkApproveResponseSchema,
    ChangeRoleRequestSchema,
    CreateUserRequestSchema,
    ReasonRequestSchema,
    SubscriptionRequestSchema,
    UpdateUserRequestSchema,
    UsageRequestSchema,
)

user_router = APIRouter(prefix="/users", tags=["users"])


@user_router.post(
    "/",
    status_code=status.HTTP_201_CREATED,
)
@inject
async def create_user(
    request_data: CreateUserRequestSchema,
    service: FromDishka[UserService],
) -> User:
    data = request_data.model_dump(exclude_unset=True, exclude={"user_id"})
    return await service.create(request_data.user_id, data)


@user_router.get("/")
@inject
async def get_users(
    service: FromDishka[UserService],
    user_status: UserStatusFilter = UserStatusFilter.ALL,
    role: UserRole | None = None,
    sort_by: UserSortField = UserSortField.CREATED_AT,
    sort_order: SortOrder = SortOrder.DESC,
    limit: int = 50,
    search: str = "",
) -> list[User]:
    return await service.get_all(
        UserQuery(
            status=user_status,
            role=role,
            sort_by=sort_by,
            sort_order=sort_order,
            limit=limit,
            search_term=search,
        ),
    )


@user_router.get("/stats")
@inject
async def get_user_stats(
    service: FromDishka[UserService],
) -> UserStats:
    return await service.get_stats()


@user_router.get("/pending")
@inject
async def get_pending_users(
    service: FromDishka[UserService],
) -> list[User]:
    return await service.get_pending()


@user_router.post("/bulk-approve")
@inject
async def bulk_approve_users(
    request_schema: BulkApproveRequestSchema,
    service: FromDishka[UserService],
) -> BulkApproveResponseSchema:
    approved = await service.bulk_approve(
        request_schema.user_ids,
        approved_by=request_schema.approved_by,
    )
    return BulkApproveResponseSchema(approved=approved)


@user_router.get("/{user_id}")
@inject
async def get_user(
    user_id: str,
    service: FromDishka[UserService],
) -> User:
    user = await service.get_by_id(user_id)
    if user is None:
        raise EntityNotFoundError(User, "id", user_id)
    return user


@user_router.patch("/{user_id}")
@inject
async def update_user(
    user_id: str,
    request_schema: UpdateUserRequestSchema,
    service: FromDishka[UserService],
) -> User:
    return await service.update(user_id, request_schema.changes())


@user_router.post("/{user_id}/login")
@inject
async def record_user_login(
    user_id: str,
    service: FromDishka[UserService],
) -> User:
    return await service.update_last_login(user_id)


@user_router.post("/{user_id}/usage")
@inject
async def increment_user_usage(
    user_id: str,
    request_schema: UsageRequestSchema,
    service: FromDishka[UserService],
) -> User:
    return await service.increment_usage(
        user_id,
        request_schema.counter,
        request_schema.amount,
    )


@user_router.post("/{user_id}/approve")
@inject
async def approve_user(
    user_id: str,
    request_schema: ApproveRequestSchema,
    service: FromDishka[UserService],
) -> User:
    return await service.approve(user_id, request_schema.approved_by)


@user_router.post("/{user_id}/reject")
@inject
async def reject_user(
    user_id: str,
    request_schema: ReasonRequestSchema,
    service: FromDishka[UserService],
) -> User:
    return await service.reject(user_id, request_schema.reason)


@user_router.post("/{user_id}/deactivate")
@inject
async def deactivate_user(
    user_id: str,
    request_schema: ReasonRequestSchema,
    service: FromDishka[UserService],
) -> User:
    return await service.deactivate(user_id, request_schema.reason)


@user_router.post("/{user_id}/reactivate")
@inject
async def reactivate_user(
    user_id: str,
    service: FromDishka[UserService],
) -> User:
    return await service.reactivate(user_id)


@user_router.put("/{user_id}/role")
@inject
async def change_user_role(
    user_id: str,
    request_schema: ChangeRoleRequestSchema,
    service: FromDishka[UserService],
) -> User:
    return await service.change_role(
        user_id,
        request_schema.role,
        changed_by=request_schema.changed_by,
    )


@user_router.put("/{user_id}/subscription")
@inject
async def update_user_subscription(
    user_id: str,
    request_schema: SubscriptionRequestSchema,
    service: FromDishka[UserService],
) -> User:
    return await service.update_subscription(
        user_id,
        request_schema.plan_id,
        request_schema.billing_cycle,
    )


@user_router.delete("/{user_id}")
@inject
async def delete_user(
    user_id: str,
    service: FromDishka[UserService],
) -> User:
    """Users are deactivated, not removed"""
    return await service.delete(user_id)
