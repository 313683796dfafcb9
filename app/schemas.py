# Pydantic models (request/response DTOs) used by the API layer.
# Keep models minimal and serializable; state transitions live in app/workflows.
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator, EmailStr
from typing import Dict, List, Literal, Optional
from datetime import date, datetime


def _strip(v):
    # Trim surrounding whitespace before validation
    if isinstance(v, str):
        v = v.strip()
    return v


def _normalize_email(v):
    if isinstance(v, str):
        v = v.strip().lower()
    return v


# Authentication and user models

# Roles a user may pick at sign-up; "admin" is granted out of band
SignupRole = Literal["landlord", "tenant"]
Role = Literal["landlord", "tenant", "admin"]


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: Optional[str] = Field(None, max_length=255)
    role: SignupRole = "tenant"

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)


class UserRead(BaseModel):
    id: int
    email: EmailStr
    full_name: Optional[str] = None
    role: Role
    status: str

    model_config = ConfigDict(from_attributes=True)


class UserEnvelope(BaseModel):
    user: UserRead


UserStatus = Literal["active", "suspended", "deleted"]


class UserStatusUpdate(BaseModel):
    status: UserStatus


class UserList(BaseModel):
    users: List[UserRead]


class UserResponse(BaseModel):
    message: Optional[str] = None
    user: UserRead


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)


# OAuth2-style token response bundled with the current user profile
class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead


# Listings
ListingStatus = Literal["pending_verification", "verified", "rented", "closed"]


class ListingCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    price: float = Field(..., ge=0)
    deposit: float = Field(0, ge=0)
    available_from: Optional[date] = None

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v):
        return _strip(v)


# Partial update; only fields present in the request body are applied
class ListingUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    price: Optional[float] = Field(None, ge=0)
    deposit: Optional[float] = Field(None, ge=0)
    available_from: Optional[date] = None
    status: Optional[ListingStatus] = None

    @model_validator(mode="after")
    def required_fields_not_null(self):
        for name in ("title", "price", "deposit", "status"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class ListingRead(BaseModel):
    id: int
    owner_user_id: int
    title: str
    price: float
    deposit: float
    available_from: Optional[date] = None
    status: ListingStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ListingResponse(BaseModel):
    message: Optional[str] = None
    listing: ListingRead


class ListingList(BaseModel):
    listings: List[ListingRead]


# Rental requests
RentalRequestStatus = Literal["pending", "accepted", "rejected", "cancelled"]


class RentalRequestCreate(BaseModel):
    listing_id: int = Field(..., ge=1)
    message: Optional[str] = Field(None, max_length=2000)
    desired_move_in: Optional[date] = None

    @field_validator("message", mode="before")
    @classmethod
    def normalize_message(cls, v):
        v = _strip(v)
        return v or None


class RentalRequestStatusUpdate(BaseModel):
    status: Literal["accepted", "rejected", "cancelled"]


class RentalRequestRead(BaseModel):
    id: int
    listing_id: int
    requester_user_id: int
    message: Optional[str] = None
    desired_move_in: Optional[date] = None
    status: RentalRequestStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Contracts
ContractStatus = Literal["draft", "signed", "active", "terminated", "cancelled"]


class ContractCreate(BaseModel):
    rental_request_id: int = Field(..., ge=1)
    start_date: date
    end_date: Optional[date] = None
    rent: float = Field(..., ge=0)
    deposit: float = Field(0, ge=0)
    tenant_ids: Optional[List[int]] = None

    @model_validator(mode="after")
    def end_not_before_start(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ContractPatch(BaseModel):
    """
    Partial contract update.

    Only fields present in the request body are applied (model_dump(exclude_unset=True)).
    end_date may be explicitly null to clear it; the other fields may not.
    """
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    rent: Optional[float] = Field(None, ge=0)
    deposit: Optional[float] = Field(None, ge=0)
    status: Optional[ContractStatus] = None

    @model_validator(mode="after")
    def required_fields_not_null(self):
        for name in ("start_date", "rent", "deposit", "status"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class SignatureCreate(BaseModel):
    signature_method: str = Field("checkbox", min_length=1, max_length=50)

    @field_validator("signature_method", mode="before")
    @classmethod
    def strip_method(cls, v):
        return _strip(v)


class SignatureRead(BaseModel):
    contract_id: int
    user_id: int
    signed_at: datetime
    signature_method: str

    model_config = ConfigDict(from_attributes=True)


class ContractRead(BaseModel):
    id: int
    listing_id: int
    landlord_user_id: int
    start_date: date
    end_date: Optional[date] = None
    rent: float
    deposit: float
    status: ContractStatus
    signed_at: Optional[datetime] = None
    created_at: datetime
    tenant_ids: List[int] = []

    model_config = ConfigDict(from_attributes=True)


class ContractDetail(ContractRead):
    signatures: List[SignatureRead] = []


# Issues
IssueCategory = Literal["maintenance", "scam", "safety", "noise", "hygiene", "contract_dispute", "other"]
IssueSeverity = Literal["low", "medium", "high", "critical"]
IssueStatus = Literal["open", "triaged", "in_progress", "resolved", "rejected"]


class IssueCreate(BaseModel):
    contract_id: int = Field(..., ge=1)
    category: IssueCategory
    severity: IssueSeverity = "medium"
    description: str = Field(..., min_length=1, max_length=5000)
    sla_hours: int = Field(24, ge=1)

    @field_validator("description", mode="before")
    @classmethod
    def strip_description(cls, v):
        return _strip(v)


class IssueStatusUpdate(BaseModel):
    status: Optional[IssueStatus] = None
    assignee_user_id: Optional[int] = Field(None, ge=1)

    @model_validator(mode="after")
    def something_to_change(self):
        if not self.model_fields_set & {"status", "assignee_user_id"}:
            raise ValueError("Provide status and/or assignee_user_id")
        if "status" in self.model_fields_set and self.status is None:
            raise ValueError("status cannot be null")
        return self


class IssueRead(BaseModel):
    id: int
    contract_id: int
    reporter_user_id: int
    category: IssueCategory
    severity: IssueSeverity
    description: str
    sla_hours: int
    status: IssueStatus
    assignee_user_id: Optional[int] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class IssueStatusHistoryRead(BaseModel):
    id: int
    issue_id: int
    from_status: IssueStatus
    to_status: IssueStatus
    changed_by: int
    changed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AttachmentCreate(BaseModel):
    file_url: str = Field(..., min_length=1, max_length=1024)

    @field_validator("file_url", mode="before")
    @classmethod
    def strip_url(cls, v):
        return _strip(v)


class AttachmentRead(BaseModel):
    id: int
    issue_id: int
    uploaded_by: int
    file_url: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class IssueDetail(IssueRead):
    status_history: List[IssueStatusHistoryRead] = []
    attachments: List[AttachmentRead] = []


# Response envelopes: {"message": ..., "<entity>": {...}}
class RentalRequestResponse(BaseModel):
    message: Optional[str] = None
    rental_request: RentalRequestRead


class RentalRequestResolveResponse(RentalRequestResponse):
    contract: Optional[ContractRead] = None


class RentalRequestList(BaseModel):
    rental_requests: List[RentalRequestRead]


class ContractResponse(BaseModel):
    message: Optional[str] = None
    contract: ContractRead


class ContractDetailResponse(BaseModel):
    contract: ContractDetail


class ContractList(BaseModel):
    contracts: List[ContractRead]


class SignatureResponse(BaseModel):
    message: str
    signature: SignatureRead


class IssueResponse(BaseModel):
    message: Optional[str] = None
    issue: IssueRead


class IssueDetailResponse(BaseModel):
    issue: IssueDetail


class IssueList(BaseModel):
    issues: List[IssueRead]


class AttachmentResponse(BaseModel):
    message: str
    attachment: AttachmentRead


# Admin issue analytics
class CategoryCount(BaseModel):
    category: str  # "TOTAL" on the closing row
    count: int


class IssueStats(BaseModel):
    stats: List[CategoryCount]
    by_status: Dict[str, int]
    by_severity: Dict[str, int]
    overdue: int  # unresolved issues past created_at + sla_hours
