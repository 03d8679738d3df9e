#backend/irrigation/models/auth.py
from sqlalchemy import Column, Integer, String, Boolean, BigInteger
from irrigation.database import BaseAuth

class User(BaseAuth):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String(20), default="user", nullable=False)
    refresh_token = Column(String, nullable=True)
    last_login = Column(BigInteger, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=False)
