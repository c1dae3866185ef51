"""Organization and membership routes."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends

from taskscope.dependencies import (
    get_current_identity, get_membership_service, get_organization_service,
)
from taskscope.schemas import (
    AddMemberRequest, ChangeMemberRoleRequest, CreateOrgRequest, MembershipResponse,
    OrgDetailResponse, OrgMemberResponse, OrgResponse, UpdateOrgRequest,
)
from taskscope.services import MembershipService, OrganizationService
from taskscope.shared.auth import IdentityContext

router = APIRouter(prefix="/organizations", tags=["Organizations"])


# ---- Organizations ----

@router.post("", response_model=OrgResponse, status_code=201)
async def create_org(
    data: CreateOrgRequest,
    identity: IdentityContext = Depends(get_current_identity),
    org_service: OrganizationService = Depends(get_organization_service),
) -> OrgResponse:
    """Create an organization. The caller becomes its owner."""
    return await org_service.create(data, identity)


@router.get("", response_model=list[OrgResponse])
async def list_orgs(
    identity: IdentityContext = Depends(get_current_identity),
    org_service: OrganizationService = Depends(get_organization_service),
) -> list[OrgResponse]:
    return await org_service.find_all(identity)


@router.get("/{org_id}", response_model=OrgDetailResponse)
async def get_org(
    org_id: uuid.UUID,
    identity: IdentityContext = Depends(get_current_identity),
    org_service: OrganizationService = Depends(get_organization_service),
) -> OrgDetailResponse:
    return await org_service.find_one(org_id, identity)


@router.patch("/{org_id}", response_model=OrgResponse)
async def update_org(
    org_id: uuid.UUID,
    data: UpdateOrgRequest,
    identity: IdentityContext = Depends(get_current_identity),
    org_service: OrganizationService = Depends(get_organization_service),
) -> OrgResponse:
    return await org_service.update(org_id, data, identity)


@router.delete("/{org_id}", status_code=204)
async def delete_org(
    org_id: uuid.UUID,
    identity: IdentityContext = Depends(get_current_identity),
    org_service: OrganizationService = Depends(get_organization_service),
) -> None:
    await org_service.remove(org_id, identity)


# ---- Members ----

@router.get("/{org_id}/members", response_model=list[OrgMemberResponse])
async def list_members(
    org_id: uuid.UUID,
    identity: IdentityContext = Depends(get_current_identity),
    membership_service: MembershipService = Depends(get_membership_service),
) -> list[OrgMemberResponse]:
    return await membership_service.list_members(org_id, identity)


@router.post("/{org_id}/members", response_model=MembershipResponse, status_code=201)
async def add_member(
    org_id: uuid.UUID,
    data: AddMemberRequest,
    identity: IdentityContext = Depends(get_current_identity),
    membership_service: MembershipService = Depends(get_membership_service),
) -> MembershipResponse:
    return await membership_service.add_member(org_id, data.user_id, data.role, identity)


@router.put("/{org_id}/members/{user_id}/role", response_model=MembershipResponse)
async def change_member_role(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    data: ChangeMemberRoleRequest,
    identity: IdentityContext = Depends(get_current_identity),
    membership_service: MembershipService = Depends(get_membership_service),
) -> MembershipResponse:
    return await membership_service.update_role(org_id, user_id, data.role, identity)


@router.delete("/{org_id}/members/{user_id}", status_code=204)
async def remove_member(
    org_id: uuid.UUID,
    user_id: uuid.UUID,
    identity: IdentityContext = Depends(get_current_identity),
    membership_service: MembershipService = Depends(get_membership_service),
) -> None:
    await membership_service.remove_member(org_id, user_id, identity)
