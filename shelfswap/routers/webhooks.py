import logging
import secrets

from fastapi import APIRouter, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from shelfswap.config import Settings
from shelfswap.database import get_db
from shelfswap.errors import NotFoundError, UnauthorizedError
from shelfswap.schemas.request import MessageResponse
from shelfswap.schemas.webhook import IdentityWebhookEvent
from shelfswap.services import user_service
from shelfswap.utils.deps import get_settings

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = logging.getLogger(__name__)


@router.post("/identity", response_model=MessageResponse, summary="外部身份事件")
async def identity_event(
    event: IdentityWebhookEvent,
    x_webhook_secret: str = Header(""),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """目前只处理 user.deleted：删除本地用户及其书籍、请求"""
    expected = settings.IDENTITY_WEBHOOK_SECRET
    if not expected:
        raise NotFoundError("Not found")
    if not secrets.compare_digest(x_webhook_secret.encode(), expected.encode()):
        raise UnauthorizedError("Invalid webhook secret")

    if event.type != "user.deleted":
        return MessageResponse(message="ignored")

    external_id = event.data.get("id")
    if not external_id:
        return MessageResponse(message="ignored")

    try:
        user_id = await user_service.delete_user_by_external_identity(db, external_id)
    except NotFoundError:
        return MessageResponse(message="ignored")

    logger.info(f"Deleted user {user_id} for external identity {external_id}")
    return MessageResponse(message="deleted")
