"""User model: principals for both the user site and the admin console"""
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from scriptdesk.database import Base


class User(Base):
    """An account that can hold a session.

    ``session_jti`` is the single-session marker: the token id of the most
    recently issued or refreshed session. Tokens carrying any other id are
    rejected as revoked. NULL means the account predates single-session
    enforcement and the check is skipped until its next login or refresh.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(255), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    is_admin = Column(Boolean, default=False, nullable=False)
    is_super_admin = Column(Boolean, default=False, nullable=False)
    session_jti = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
