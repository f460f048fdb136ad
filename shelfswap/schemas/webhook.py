from pydantic import BaseModel, Field


class IdentityWebhookEvent(BaseModel):
    type: str
    data: dict = Field(default_factory=dict)
