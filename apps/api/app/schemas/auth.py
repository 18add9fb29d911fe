"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.db.enums import Role, SubscriptionPlan


class CallerContext(BaseModel):
    """
    Resolved identity and tenancy scope for an authenticated request.

    Returned by the get_current_session dependency and passed explicitly into
    services. `org_ids` is None for unrestricted (master admin) callers;
    otherwise it lists the organizations the caller may act within, ordered
    so that the first entry is the primary organization.
    """
    model_config = ConfigDict(frozen=True)

    user_id: UUID
    email: str
    display_name: str | None = None
    role: Role
    org_ids: tuple[UUID, ...] | None = ()

    @property
    def unrestricted(self) -> bool:
        return self.org_ids is None

    @property
    def primary_org_id(self) -> UUID | None:
        if not self.org_ids:
            return None
        return self.org_ids[0]

    def can_access_org(self, org_id: UUID | None) -> bool:
        if self.org_ids is None:
            return True
        return org_id is not None and org_id in self.org_ids


class SignupRequest(BaseModel):
    email: EmailStr
    password: str
    display_name: str | None = None
    role: str = Role.CLIENT.value
    invite_code: str | None = None
    company_name: str | None = None
    organization_name: str | None = None
    subscription_plan: SubscriptionPlan | None = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdate(BaseModel):
    display_name: str | None = Field(default=None, max_length=255)
    company_name: str | None = Field(default=None, max_length=255)


class PasswordChange(BaseModel):
    current_password: str
    new_password: str


class MeResponse(BaseModel):
    """Response schema for GET /auth/me endpoint."""
    user_id: UUID
    email: str
    display_name: str | None
    company_name: str | None
    role: Role
    is_master_admin: bool
    unrestricted: bool
    organization_ids: list[UUID]
    primary_organization_id: UUID | None
