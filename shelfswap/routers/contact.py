from fastapi import APIRouter, Depends

from shelfswap.adapters.base import EmailSender
from shelfswap.errors import InvalidInputError
from shelfswap.schemas.contact import ContactRequest
from shelfswap.schemas.request import MessageResponse
from shelfswap.utils.deps import get_email_sender

router = APIRouter(tags=["联系我们"])


@router.post("/contact", response_model=MessageResponse, summary="联系表单")
async def contact(body: ContactRequest, email_sender: EmailSender = Depends(get_email_sender)):
    if not body.is_complete():
        raise InvalidInputError("All fields are required")

    await email_sender.send_contact_message(
        body.name.strip(), body.email.strip(), body.subject.strip(), body.message
    )
    return MessageResponse(message="Message sent successfully")
