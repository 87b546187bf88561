"""
Authentication: password hashing, bearer tokens and user registration.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

from fastapi import Request
from jose import JWTError, jwt
from loguru import logger
from passlib.context import CryptContext

import config
from database import create_document, get_document_by_id, get_documents
from errors import ConflictError, UnauthorizedError, ValidationError
from schemas import User

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(plain: str) -> str:
    return pwd_context.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def create_token(user_id: str) -> str:
    expire = datetime.now(tz=timezone.utc) + timedelta(days=config.TOKEN_EXPIRE_DAYS)
    payload = {"id": user_id, "exp": expire}
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def resolve_token(token: str) -> str:
    """Return the id of the user the token was issued to.

    Raises UnauthorizedError for bad signatures, expired tokens and
    tokens whose user has since disappeared.
    """
    try:
        claims = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except JWTError:
        raise UnauthorizedError("Authentication failed")
    user_id = claims.get("id")
    if not user_id or get_document_by_id("user", user_id) is None:
        raise UnauthorizedError("User not found")
    return user_id


def _public_user(user_id: str, user: dict) -> Dict[str, Any]:
    return {"_id": user_id, "name": user["name"], "email": user["email"]}


def register(name: str, email: str, password: str) -> Dict[str, Any]:
    if not name or not email or not password:
        raise ValidationError("Name, email, and password are required")
    if get_documents("user", {"email": email}, limit=1):
        raise ConflictError("User already exists")
    user = User(name=name, email=email, password_hash=hash_password(password))
    try:
        user_id = create_document("user", user)
    except ConflictError:
        # lost a race with a concurrent registration of the same email
        raise ConflictError("User already exists")
    logger.info("User registered: {}", email)
    return {"token": create_token(user_id), "user": _public_user(user_id, user.model_dump())}


def login(email: str, password: str) -> Dict[str, Any]:
    if not email or not password:
        raise ValidationError("Email and password are required")
    users = get_documents("user", {"email": email}, limit=1)
    if not users or not verify_password(password, users[0]["password_hash"]):
        raise UnauthorizedError("Invalid credentials")
    user = users[0]
    logger.info("User logged in: {}", email)
    return {"token": create_token(user["_id"]), "user": _public_user(user["_id"], user)}


def get_current_user_id(request: Request) -> str:
    """FastAPI dependency resolving the caller from its bearer token.

    Accepts ``Authorization: Bearer <token>`` as well as the older bare
    ``token`` header.
    """
    token = request.headers.get("token")
    auth_header = request.headers.get("Authorization", "")
    if not token and auth_header:
        token = auth_header.split(" ", 1)[1] if auth_header.startswith("Bearer ") else auth_header
    if not token:
        raise UnauthorizedError("Access token is required")
    return resolve_token(token)
