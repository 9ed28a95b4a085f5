"""Upload endpoint for images referenced by other payloads (e.g. pengeluaran items)."""

import logging

from fastapi import APIRouter, Depends, File, UploadFile, status

from rukun.api.deps import get_current_user, get_storage, save_upload
from rukun.api.schemas import UploadResponse
from rukun.models.user import User
from rukun.services.errors import ValidationError
from rukun.services.storage import FileStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/media", tags=["media"])


@router.post("", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
def upload(
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
    storage: FileStorage = Depends(get_storage),
) -> UploadResponse:
    url = save_upload(storage, file)
    if url is None:
        raise ValidationError("file is required")
    logger.info("User %s uploaded %s", user.id, url)
    return UploadResponse(url=url)
