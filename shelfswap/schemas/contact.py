from pydantic import BaseModel, Field


class ContactRequest(BaseModel):
    # 缺字段由路由统一返回 400，这里不设必填
    name: str = Field("", max_length=200)
    email: str = Field("", max_length=255)
    subject: str = Field("", max_length=200)
    message: str = Field("", max_length=10000)

    def is_complete(self) -> bool:
        return all(v.strip() for v in (self.name, self.email, self.subject, self.message))
