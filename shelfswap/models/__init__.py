from shelfswap.models.user import User
from shelfswap.models.book import Book, BookRequest
from shelfswap.models.password_reset import PasswordReset

__all__ = [
    "User",
    "Book",
    "BookRequest",
    "PasswordReset",
]
