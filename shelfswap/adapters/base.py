"""外部能力抽象基类 - 邮件、对象存储、外部身份

每种能力只有少量固定实现，应用启动时根据配置选定一次，
挂到 app.state 上注入，运行中不再切换。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from shelfswap.errors import DownstreamError, UnauthorizedError


class EmailDeliveryError(DownstreamError):
    """邮件发送失败"""


class StorageError(DownstreamError):
    """对象存储写入失败"""


class IdentityError(UnauthorizedError):
    """外部凭据缺失、无效或过期"""


@dataclass
class ExternalIdentity:
    subject: str
    email: str
    username: str = ""
    avatar_url: str = ""
    # "local" 表示本服务自己签发的 Token，不参与外部身份同步
    provider: str = "external"


class EmailSender(ABC):

    @abstractmethod
    async def send_password_reset(self, to: str, token: str) -> None:
        """发送密码重置链接"""
        ...

    @abstractmethod
    async def send_request_notification(
        self, to: str, owner_name: str, book_title: str, requester_email: str
    ) -> None:
        """通知书主有新的换书请求"""
        ...

    @abstractmethod
    async def send_contact_message(
        self, name: str, from_email: str, subject: str, message: str
    ) -> None:
        """把联系表单转发到站点收件箱"""
        ...


class ObjectStorage(ABC):

    @abstractmethod
    async def upload(self, filename: str, content: bytes, content_type: str) -> str:
        """保存上传文件，返回可访问的引用（路径或 URL）"""
        ...


class IdentityVerifier(ABC):

    @abstractmethod
    async def verify(self, token: str) -> ExternalIdentity:
        """校验 bearer 凭据，返回身份信息；失败抛 IdentityError"""
        ...
