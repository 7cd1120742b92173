from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Generic, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

from rail_assets.models import (
    Asset,
    BulkStatus,
    Condition,
    IndividualStatus,
    MovementType,
    UserRole,
)

T = TypeVar("T")


class ServiceResult(BaseModel):
    """Outcome of a service call: business failures are returned, not raised."""

    success: bool
    message: str = ""
    code: Optional[str] = None
    data: Any = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @classmethod
    def ok(cls, message: str = "", data: Any = None) -> "ServiceResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, code: str = "BAD_REQUEST") -> "ServiceResult":
        return cls(success=False, message=message, code=code)


class Page(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int
    total_pages: int


# ---- auth ----------------------------------------------------------------


class SignupRequest(BaseModel):
    payroll_number: str = Field(min_length=1, max_length=50)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1)
    role: UserRole = UserRole.viewer


class LoginRequest(BaseModel):
    payroll_number: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    must_change_password: bool = False


class ResetPasswordRequest(BaseModel):
    payroll_number: str


class ResetPasswordResponse(BaseModel):
    payroll_number: str
    temporary_password: str
    message: str


class ChangePasswordRequest(BaseModel):
    old_password: str
    new_password: str = Field(min_length=6)


# ---- locations -----------------------------------------------------------


class LocationCreate(BaseModel):
    region_name: str = Field(min_length=1, max_length=100)
    department_name: str = Field(min_length=1, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=200)


class LocationUpdate(BaseModel):
    region_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    department_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=200)


class LocationRead(BaseModel):
    location_id: int
    region_name: str
    department_name: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---- users ---------------------------------------------------------------


class UserCreate(BaseModel):
    payroll_number: str = Field(min_length=1, max_length=50)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: UserRole = UserRole.viewer
    password: Optional[str] = None
    default_location_id: Optional[int] = None
    # alternative to default_location_id: resolved (or created) by name
    department_name: Optional[str] = None
    region_name: Optional[str] = None


class UserUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    role: Optional[UserRole] = None
    default_location_id: Optional[int] = None
    department_name: Optional[str] = None
    region_name: Optional[str] = None

    # passwords only change through /auth
    model_config = ConfigDict(extra="forbid")


class UserRead(BaseModel):
    payroll_number: str
    first_name: str
    last_name: str
    role: UserRole
    must_change_password: bool
    default_location_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserOption(BaseModel):
    payroll_number: str
    name: str
    role: UserRole


# ---- assets --------------------------------------------------------------


class BulkAssetCreate(BaseModel):
    name: str
    location_id: int
    keeper_payroll_number: str
    quantity: int
    minimum_threshold: int = 0
    model_number: Optional[str] = None
    last_restocked: Optional[datetime] = None
    notes: Optional[str] = None


class BulkAssetUpdate(BaseModel):
    name: Optional[str] = None
    quantity: Optional[int] = None
    minimum_threshold: Optional[int] = None
    model_number: Optional[str] = None
    location_id: Optional[int] = None
    keeper_payroll_number: Optional[str] = None
    bulk_status: Optional[BulkStatus] = None
    notes: Optional[str] = None


class RestockRequest(BaseModel):
    quantity: int = Field(..., gt=0, le=1_000_000)
    notes: Optional[str] = None


class UniqueAssetCreate(BaseModel):
    name: str
    serial_number: str
    location_id: int
    keeper_payroll_number: Optional[str] = None
    model_number: Optional[str] = None
    individual_status: IndividualStatus = IndividualStatus.available
    notes: Optional[str] = None


class UniqueAssetUpdate(BaseModel):
    name: Optional[str] = None
    serial_number: Optional[str] = None
    keeper_payroll_number: Optional[str] = None
    model_number: Optional[str] = None
    individual_status: Optional[IndividualStatus] = None
    notes: Optional[str] = None


class TransferRequest(BaseModel):
    to_location_id: int = Field(..., gt=0)
    notes: Optional[str] = None


class _AssetReadBase(BaseModel):
    asset_id: int
    name: str
    location_id: int
    keeper_payroll_number: Optional[str] = None
    model_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class UniqueAssetRead(_AssetReadBase):
    kind: Literal["unique"] = "unique"
    serial_number: str
    individual_status: IndividualStatus


class BulkAssetRead(_AssetReadBase):
    kind: Literal["bulk"] = "bulk"
    current_stock_level: int
    minimum_threshold: int = 0
    last_restocked: Optional[datetime] = None
    bulk_status: BulkStatus


AssetRead = Annotated[Union[UniqueAssetRead, BulkAssetRead], Field(discriminator="kind")]

_COMMON_ASSET_FIELDS = (
    "asset_id",
    "name",
    "location_id",
    "keeper_payroll_number",
    "model_number",
    "notes",
    "created_at",
    "updated_at",
)


def asset_read(asset: Asset) -> AssetRead:
    """Project a stored row onto the variant its is_bulk flag selects."""
    common = {name: getattr(asset, name) for name in _COMMON_ASSET_FIELDS}
    if asset.is_bulk:
        return BulkAssetRead(
            **common,
            current_stock_level=asset.current_stock_level or 0,
            minimum_threshold=asset.minimum_threshold or 0,
            last_restocked=asset.last_restocked,
            bulk_status=asset.bulk_status,
        )
    return UniqueAssetRead(
        **common,
        serial_number=asset.serial_number,
        individual_status=asset.individual_status,
    )


# ---- assignments ---------------------------------------------------------


class AssignmentKind(str, Enum):
    unique = "unique"
    bulk = "bulk"


class AssignmentStatus(str, Enum):
    active = "active"
    returned = "returned"


class AssignmentSort(str, Enum):
    date_issued = "date_issued"
    asset_name = "asset_name"
    assigned_to = "assigned_to"
    assigned_by = "assigned_by"


class SortOrder(str, Enum):
    asc = "asc"
    desc = "desc"


class AssignmentCreate(BaseModel):
    asset_id: int
    assigned_to: str
    # filled from the caller's token when omitted
    assigned_by: Optional[str] = None
    quantity: int = 1
    condition_issued: Condition = Condition.good
    notes: Optional[str] = None
    location_id: Optional[int] = None
    date_due: Optional[datetime] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"asset_id": 1, "assigned_to": "P002", "quantity": 30},
                {"asset_id": 7, "assigned_to": "P014", "location_id": 3, "condition_issued": "excellent"},
            ]
        }
    }


class AssignmentReturn(BaseModel):
    condition_returned: Condition = Condition.good
    # bulk only; defaults to everything still outstanding
    quantity_returned: Optional[int] = Field(default=None, gt=0)
    to_location_id: Optional[int] = None
    notes: Optional[str] = None


class AssignmentNotesUpdate(BaseModel):
    notes: str


class MoveAssignedRequest(BaseModel):
    to_location_id: int = Field(..., gt=0)
    notes: Optional[str] = None


class BulkDeleteRequest(BaseModel):
    assignment_ids: list[int] = Field(..., min_length=1)
    reason: Optional[str] = None


class AssignmentCreated(BaseModel):
    assignment_id: int
    message: str


class AssignmentDetail(BaseModel):
    assignment_id: int
    asset_id: int
    asset_name: str
    serial_number: Optional[str] = None
    is_bulk: bool
    assigned_to: str
    assigned_to_name: str
    assigned_by: str
    assigned_by_name: str
    date_issued: datetime
    date_due: Optional[datetime] = None
    condition_issued: Condition
    notes: Optional[str] = None
    quantity: int
    quantity_returned: int
    quantity_remaining: int
    status: AssignmentStatus
    date_returned: Optional[datetime] = None
    condition_returned: Optional[Condition] = None
    location_name: str


class AvailableAsset(BaseModel):
    asset_id: int
    name: str
    serial_number: Optional[str] = None
    is_bulk: bool
    current_stock_level: Optional[int] = None
    individual_status: Optional[IndividualStatus] = None
    location_name: str


class BulkDeleteItem(BaseModel):
    assignment_id: int
    success: bool
    message: str


class BulkDeleteSummary(BaseModel):
    requested: int
    deleted: int
    failed: int


class BulkDeleteResponse(BaseModel):
    success: bool
    results: list[BulkDeleteItem]
    summary: BulkDeleteSummary
    deleted_by: str
    reason: Optional[str] = None


# ---- movements -----------------------------------------------------------


class MovementRead(BaseModel):
    movement_id: int
    asset_id: int
    from_location_id: Optional[int] = None
    to_location_id: Optional[int] = None
    moved_by: str
    movement_type: MovementType
    quantity: int
    timestamp: datetime
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class MovementDetail(MovementRead):
    asset_name: Optional[str] = None
    from_location_name: Optional[str] = None
    to_location_name: Optional[str] = None
    moved_by_name: Optional[str] = None


class MovementSort(str, Enum):
    id_desc = "id_desc"
    id_asc = "id_asc"
    time_desc = "time_desc"
    time_asc = "time_asc"


class MovementListResponse(BaseModel):
    items: list[MovementRead]
    total: int
    limit: int
    offset: int


class RestockRead(BaseModel):
    log_id: int
    asset_id: int
    quantity_restocked: int
    restocked_by: str
    restocked_by_name: Optional[str] = None
    timestamp: datetime
    notes: Optional[str] = None


# ---- tracking ------------------------------------------------------------


class LocationBrief(BaseModel):
    location_id: int
    region_name: str
    department_name: str
    notes: Optional[str] = None


class PersonBrief(BaseModel):
    payroll_number: str
    first_name: str
    last_name: str
    full_name: str


class CurrentAssignment(BaseModel):
    assignment_id: int
    assigned_to: str
    assigned_to_name: str
    date_issued: datetime
    condition_issued: Condition
    quantity: int


class LatestMovement(BaseModel):
    movement_id: int
    from_location: Optional[str] = None
    to_location: Optional[str] = None
    moved_by: str
    moved_by_name: str
    movement_type: MovementType
    timestamp: datetime


class TrackedUniqueAsset(BaseModel):
    asset_id: int
    name: str
    serial_number: str
    model_number: Optional[str] = None
    individual_status: IndividualStatus
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    location: Optional[LocationBrief] = None
    keeper: Optional[PersonBrief] = None
    current_assignment: Optional[CurrentAssignment] = None
    latest_movement: Optional[LatestMovement] = None


class OverdueAssignment(BaseModel):
    asset_id: int
    asset_name: str
    serial_number: Optional[str] = None
    assignment_id: int
    assigned_to: str
    assigned_to_name: str
    date_issued: datetime
    days_since_issued: int
    location_name: Optional[str] = None


class UniqueAssetHistory(BaseModel):
    asset_id: int
    movements: list[MovementDetail]
    assignments: list[AssignmentDetail]


class TrackingSummary(BaseModel):
    total_unique_assets: int
    available: int
    in_use: int
    maintenance: int
    disposed: int
    currently_assigned: int


class StockMetrics(BaseModel):
    is_low_stock: bool
    stock_percentage: Optional[int] = None
    total_quantity_restocked: int
    total_restock_events: int
    average_restock_quantity: int


class RecentRestock(BaseModel):
    timestamp: datetime
    quantity_restocked: int
    restocker: Optional[PersonBrief] = None


class TrackedBulkAsset(BaseModel):
    asset_id: int
    name: str
    bulk_status: BulkStatus
    current_stock_level: int
    minimum_threshold: int
    last_restocked: Optional[datetime] = None
    model_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    location: Optional[LocationBrief] = None
    keeper: Optional[PersonBrief] = None
    stock_metrics: StockMetrics
    most_recent_restock: Optional[RecentRestock] = None


class BulkTrackingSummary(BaseModel):
    total_assets: int
    low_stock_assets: int
    active_assets: int
    out_of_stock_assets: int
    discontinued_assets: int


class TrackedBulkAssetPage(Page[TrackedBulkAsset]):
    summary: BulkTrackingSummary


class BulkAssignmentBrief(BaseModel):
    assignment_id: int
    assigned_to: str
    assigned_by: str
    quantity: int
    quantity_returned: int
    quantity_outstanding: int
    date_issued: datetime
    date_returned: Optional[datetime] = None
    condition_issued: Condition
    condition_returned: Optional[Condition] = None
    notes: Optional[str] = None
    is_active: bool


class BulkAssetDetails(TrackedBulkAsset):
    recent_restocks: list[RestockRead]
    recent_movements: list[MovementDetail]
    recent_assignments: list[BulkAssignmentBrief]


class LowStockAsset(BaseModel):
    asset_id: int
    name: str
    current_stock_level: int
    minimum_threshold: int


# ---- dashboard -----------------------------------------------------------


class UniqueDashboard(BaseModel):
    total_unique: int
    assigned_unique: int
    available_unique: int


class BulkDashboard(BaseModel):
    total_bulk: int
    low_stock_count: int


class TopKeeper(BaseModel):
    payroll_number: str
    first_name: str
    last_name: str
    asset_count: int


class ActivityDashboard(BaseModel):
    top_keepers: list[TopKeeper]
    recent_movements: list[MovementDetail]
