from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from rail_assets.db import get_session
from rail_assets.deps import require_keeper, require_user
from rail_assets.error import abort, raise_for_result
from rail_assets.models import User
from rail_assets.schemas import LocationCreate, LocationRead, LocationUpdate, Page
from rail_assets.services.locations import LocationService

router = APIRouter(prefix="/locations", tags=["locations"])


@router.get("", response_model=Page[LocationRead])
def list_locations(
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    return LocationService.list(session, search, page, limit)


@router.post("", response_model=LocationRead, status_code=201)
def create_location(
    data: LocationCreate,
    session: Session = Depends(get_session),
    _user: User = Depends(require_keeper),
):
    result = LocationService.create(session, data)
    raise_for_result(result)
    return result.data


@router.get("/{location_id}", response_model=LocationRead)
def get_location(
    location_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    location = LocationService.get(session, location_id)
    if not location:
        abort(404, "NOT_FOUND", "Location not found")
    return location


@router.patch("/{location_id}", response_model=LocationRead)
def update_location(
    location_id: int,
    data: LocationUpdate,
    session: Session = Depends(get_session),
    _user: User = Depends(require_keeper),
):
    result = LocationService.update(session, location_id, data)
    raise_for_result(result)
    return result.data


@router.delete("/{location_id}")
def delete_location(
    location_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(require_keeper),
):
    result = LocationService.delete(session, location_id)
    raise_for_result(result)
    return {"ok": True, "message": result.message}
