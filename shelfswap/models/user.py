from datetime import datetime

from sqlalchemy import Integer, String, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shelfswap.database import Base
from shelfswap.utils.timeutil import utcnow

# 外部身份托管账号没有本地密码，写入此占位值
EXTERNAL_PASSWORD_MARKER = "external_managed_account"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column("password", String(255), nullable=False)
    username: Mapped[str | None] = mapped_column(String(100))
    bio: Mapped[str | None] = mapped_column(Text)
    avatar_path: Mapped[str | None] = mapped_column(String(500))
    location: Mapped[str | None] = mapped_column(String(255))
    external_identity: Mapped[str | None] = mapped_column(String(255), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    # 关联
    books = relationship("Book", back_populates="owner")

    @property
    def is_externally_managed(self) -> bool:
        return self.password_hash == EXTERNAL_PASSWORD_MARKER
