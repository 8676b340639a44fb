"""FastAPI allocation endpoints.

POST   /v1/projects/{project_id}/allocations   — create allocation
GET    /v1/projects/{project_id}/allocations   — list (filters + paging)
GET    /v1/projects/{project_id}/capacity      — weekly project capacity
GET    /v1/allocations/{allocation_id}         — get
PATCH  /v1/allocations/{allocation_id}         — partial update
DELETE /v1/allocations/{allocation_id}         — soft delete
GET    /v1/users/{user_id}/capacity            — weekly user utilisation

Routes only translate HTTP into ``AllocationService`` calls; errors are
mapped to status codes by the handlers registered in ``resourceplan.api.main``.
"""

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field

from resourceplan.api.dependencies import get_allocation_service
from resourceplan.models.allocation import (
    Allocation,
    AllocationFilters,
    AllocationPage,
    AllocationUpdate,
    ProjectCapacityReport,
    UserCapacityReport,
)
from resourceplan.models.common import AllocationRole
from resourceplan.services.allocations import AllocationService

router = APIRouter(prefix="/v1", tags=["allocations"])


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class CreateAllocationRequest(BaseModel):
    """Create payload; the project comes from the path."""

    model_config = {"extra": "forbid"}

    user_id: UUID
    role: AllocationRole
    allocation_percent: Decimal
    start_date: date
    end_date: date
    is_billable: bool = True
    notes: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Project-scoped endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/projects/{project_id}/allocations",
    status_code=201,
    response_model=Allocation,
)
async def create_allocation(
    project_id: UUID,
    body: CreateAllocationRequest,
    service: AllocationService = Depends(get_allocation_service),
) -> Allocation:
    """Create an allocation; 409 when the user would exceed 100%."""
    return await service.create_allocation({**body.model_dump(), "project_id": project_id})


@router.get("/projects/{project_id}/allocations", response_model=AllocationPage)
async def list_project_allocations(
    project_id: UUID,
    user_id: UUID | None = None,
    role: AllocationRole | None = None,
    is_billable: bool | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int | None = Query(default=None, ge=1),
    service: AllocationService = Depends(get_allocation_service),
) -> AllocationPage:
    filters = AllocationFilters(
        project_id=project_id, user_id=user_id, role=role,
        is_billable=is_billable, start_date=start_date, end_date=end_date,
    )
    return await service.get_allocations(filters, page=page, page_size=page_size)


@router.get("/projects/{project_id}/capacity", response_model=ProjectCapacityReport)
async def get_project_capacity(
    project_id: UUID,
    weeks: int | None = Query(default=None, ge=1),
    start: date | None = None,
    service: AllocationService = Depends(get_allocation_service),
) -> ProjectCapacityReport:
    return await service.get_project_capacity(project_id, weeks=weeks, start=start)


# ---------------------------------------------------------------------------
# Allocation endpoints
# ---------------------------------------------------------------------------


@router.get("/allocations/{allocation_id}", response_model=Allocation)
async def get_allocation(
    allocation_id: UUID,
    service: AllocationService = Depends(get_allocation_service),
) -> Allocation:
    return await service.get_allocation(allocation_id)


@router.patch("/allocations/{allocation_id}", response_model=Allocation)
async def update_allocation(
    allocation_id: UUID,
    body: AllocationUpdate,
    service: AllocationService = Depends(get_allocation_service),
) -> Allocation:
    return await service.update_allocation(allocation_id, body)


@router.delete("/allocations/{allocation_id}", status_code=204)
async def delete_allocation(
    allocation_id: UUID,
    service: AllocationService = Depends(get_allocation_service),
) -> Response:
    await service.delete_allocation(allocation_id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# User endpoints
# ---------------------------------------------------------------------------


@router.get("/users/{user_id}/capacity", response_model=UserCapacityReport)
async def get_user_capacity(
    user_id: UUID,
    weeks: int | None = Query(default=None, ge=1),
    start: date | None = None,
    service: AllocationService = Depends(get_allocation_service),
) -> UserCapacityReport:
    return await service.get_user_capacity(user_id, weeks=weeks, start=start)
