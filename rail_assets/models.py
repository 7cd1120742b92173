from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, Column
from sqlalchemy import Enum as SAEnum
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    # stored naive, always UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def enum_column(enum_cls, name: str, *, nullable: bool = False, index: bool = False) -> Column:
    # store the values ("return"), not the member names ("return_")
    return Column(
        SAEnum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e]),
        nullable=nullable,
        index=index,
    )


class UserRole(str, Enum):
    admin = "admin"
    keeper = "keeper"
    viewer = "viewer"


class IndividualStatus(str, Enum):
    available = "available"
    in_use = "in_use"
    maintenance = "maintenance"
    disposed = "disposed"


class BulkStatus(str, Enum):
    active = "active"
    out_of_stock = "out_of_stock"
    discontinued = "discontinued"


class MovementType(str, Enum):
    transfer = "transfer"
    assignment = "assignment"
    return_ = "return"
    adjustment = "adjustment"
    disposal = "disposal"


class Condition(str, Enum):
    excellent = "excellent"
    good = "good"
    fair = "fair"
    poor = "poor"
    damaged = "damaged"


class Location(SQLModel, table=True):
    __tablename__ = "locations"

    location_id: Optional[int] = Field(default=None, primary_key=True)
    region_name: str = Field(max_length=100, index=True)
    department_name: str = Field(max_length=100, index=True)
    notes: Optional[str] = Field(default=None, max_length=200)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def display_name(self) -> str:
        return f"{self.region_name} - {self.department_name}"


class User(SQLModel, table=True):
    __tablename__ = "users"

    payroll_number: str = Field(primary_key=True, max_length=50)
    first_name: str = Field(max_length=100)
    last_name: str = Field(max_length=100)
    role: UserRole = Field(default=UserRole.viewer, sa_column=enum_column(UserRole, "user_role"))
    password_hash: str
    must_change_password: bool = False
    default_location_id: Optional[int] = Field(
        default=None, foreign_key="locations.location_id", index=True
    )
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Asset(SQLModel, table=True):
    """One row per asset; `is_bulk` decides which variant columns are in use."""

    __tablename__ = "assets"
    __table_args__ = (
        CheckConstraint(
            "(is_bulk AND current_stock_level IS NOT NULL AND bulk_status IS NOT NULL"
            " AND serial_number IS NULL AND individual_status IS NULL)"
            " OR (NOT is_bulk AND serial_number IS NOT NULL AND individual_status IS NOT NULL"
            " AND current_stock_level IS NULL AND bulk_status IS NULL)",
            name="ck_assets_variant_shape",
        ),
        CheckConstraint(
            "current_stock_level IS NULL OR current_stock_level >= 0",
            name="ck_assets_stock_non_negative",
        ),
    )

    asset_id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=200, index=True)
    is_bulk: bool = Field(default=False, index=True)
    location_id: int = Field(foreign_key="locations.location_id", index=True)
    keeper_payroll_number: Optional[str] = Field(
        default=None, foreign_key="users.payroll_number", index=True
    )
    model_number: Optional[str] = Field(default=None, max_length=100)
    notes: Optional[str] = None

    # unique variant
    serial_number: Optional[str] = Field(default=None, max_length=100, unique=True)
    individual_status: Optional[IndividualStatus] = Field(
        default=None, sa_column=enum_column(IndividualStatus, "individual_status", nullable=True)
    )

    # bulk variant
    current_stock_level: Optional[int] = None
    minimum_threshold: Optional[int] = None
    last_restocked: Optional[datetime] = None
    bulk_status: Optional[BulkStatus] = Field(
        default=None, sa_column=enum_column(BulkStatus, "bulk_status", nullable=True)
    )

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class AssetAssignment(SQLModel, table=True):
    __tablename__ = "asset_assignment"

    assignment_id: Optional[int] = Field(default=None, primary_key=True)
    asset_id: int = Field(foreign_key="assets.asset_id", index=True)
    assigned_to: str = Field(foreign_key="users.payroll_number", index=True)
    assigned_by: str = Field(foreign_key="users.payroll_number", index=True)
    date_issued: datetime = Field(default_factory=utcnow, index=True)
    date_due: Optional[datetime] = None
    condition_issued: Condition = Field(
        default=Condition.good, sa_column=enum_column(Condition, "condition")
    )
    quantity: int = 1
    notes: Optional[str] = None

    date_returned: Optional[datetime] = None
    condition_returned: Optional[Condition] = Field(
        default=None, sa_column=enum_column(Condition, "condition", nullable=True)
    )
    quantity_returned: int = 0

    # holds asset_id while a unique asset is out; NULLs never collide,
    # so the unique index allows one open assignment per unique asset
    open_asset_id: Optional[int] = Field(default=None, unique=True)

    @property
    def is_active(self) -> bool:
        return self.date_returned is None

    @property
    def quantity_outstanding(self) -> int:
        return self.quantity - self.quantity_returned


class AssetMovement(SQLModel, table=True):
    """Append-only movement log."""

    __tablename__ = "asset_movement"

    movement_id: Optional[int] = Field(default=None, primary_key=True)
    asset_id: int = Field(foreign_key="assets.asset_id", index=True)
    from_location_id: Optional[int] = Field(default=None, foreign_key="locations.location_id")
    to_location_id: Optional[int] = Field(default=None, foreign_key="locations.location_id")
    moved_by: str = Field(foreign_key="users.payroll_number", index=True)
    movement_type: MovementType = Field(
        default=MovementType.transfer,
        sa_column=enum_column(MovementType, "movement_type", index=True),
    )
    quantity: int = 1
    timestamp: datetime = Field(default_factory=utcnow, index=True)
    notes: Optional[str] = None


class RestockLog(SQLModel, table=True):
    """Append-only log of stock added to a bulk asset."""

    __tablename__ = "restock_log"

    log_id: Optional[int] = Field(default=None, primary_key=True)
    asset_id: int = Field(foreign_key="assets.asset_id", index=True)
    quantity_restocked: int
    restocked_by: str = Field(foreign_key="users.payroll_number")
    timestamp: datetime = Field(default_factory=utcnow, index=True)
    notes: Optional[str] = None
