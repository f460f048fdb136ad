import secrets
from datetime import timedelta

from jose import jwt, JWTError
from passlib.context import CryptContext

from shelfswap.utils.timeutil import utcnow

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """对密码进行 bcrypt 哈希"""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """验证密码；占位值等无法识别的哈希一律视为不匹配"""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        return False


def generate_reset_token() -> str:
    """32 字节随机数的十六进制串"""
    return secrets.token_hex(32)


def create_access_token(
    subject: str,
    secret_key: str,
    algorithm: str = "HS256",
    expire_minutes: int = 60,
    **claims,
) -> str:
    """生成 JWT Access Token，额外字段（email、username）随 claims 写入"""
    now = utcnow()
    payload = {
        **claims,
        "sub": subject,
        "exp": now + timedelta(minutes=expire_minutes),
        "iat": now,
    }
    return jwt.encode(payload, secret_key, algorithm=algorithm)


def decode_access_token(token: str, secret_key: str, algorithm: str = "HS256") -> dict | None:
    """解析 JWT Token，返回 payload，失败返回 None"""
    try:
        return jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError:
        return None
