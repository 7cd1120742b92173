from fastapi import APIRouter, Depends
from sqlmodel import Session

from rail_assets.db import get_session
from rail_assets.deps import require_user
from rail_assets.error import abort
from rail_assets.models import Asset, User
from rail_assets.schemas import AssetRead, asset_read

router = APIRouter(prefix="/assets", tags=["assets"])


# lookup by id when the caller does not know which kind the asset is
@router.get("/{asset_id}", response_model=AssetRead)
def get_asset(
    asset_id: int,
    session: Session = Depends(get_session),
    _user: User = Depends(require_user),
):
    asset = session.get(Asset, asset_id)
    if not asset:
        abort(404, "NOT_FOUND", "Asset not found")
    return asset_read(asset)
