"""GET /api/capabilities — every stored capability record."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.dependencies import get_capabilities
from app.models.capability import CapabilityRecord
from app.storage.capabilities import CapabilityStore

router = APIRouter()


@router.get("/capabilities", response_model=list[CapabilityRecord], response_model_by_alias=True)
async def list_capabilities(store: CapabilityStore = Depends(get_capabilities)) -> list[CapabilityRecord]:
    return store.load_all()
