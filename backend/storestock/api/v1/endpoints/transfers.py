"""storestock — Transfer endpoints. The only HTTP path that writes the ledger."""
from uuid import UUID

from fastapi import APIRouter, status

from storestock.api.deps import DbSession
from storestock.schemas.common import ApiResponse
from storestock.schemas.transfer import ReverseRequest, TransferRequest, TransferResult
from storestock.services.transfer_service import TransferService

router = APIRouter()


@router.post("", response_model=ApiResponse[TransferResult], status_code=status.HTTP_201_CREATED)
async def create_transfer(body: TransferRequest, db: DbSession):
    """Move stock between locations, out to an external destination, or in as initial stock.

    All lines commit together or none do. Rejections list every failing line.
    """
    result = await TransferService.execute(db, body)
    return ApiResponse(data=result)


@router.post("/{movement_id}/reverse", response_model=ApiResponse[TransferResult], status_code=status.HTTP_201_CREATED)
async def reverse_movement(movement_id: UUID, body: ReverseRequest, db: DbSession):
    """Append the compensating entry for a movement."""
    result = await TransferService.reverse_movement(
        db, body.business_id, movement_id, actor_id=body.actor_id, reason=body.reason,
    )
    return ApiResponse(data=result)
