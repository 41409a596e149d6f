"""
Auth service: password hashing, bearer tokens, registration/login and the
FastAPI dependencies that guard private and admin-only routes.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, Optional

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

import metrics
from database import create_document, get_db, now, parse_object_id, serialize_doc
from errors import AuthError, ConflictError, NotFoundError
from schemas import User as UserSchema
from settings import Settings, get_settings

logger = logging.getLogger("velora.auth")

security = HTTPBearer(auto_error=False)
hasher = PasswordHasher()

PUBLIC_FIELDS = ("id", "name", "email", "role")
PROFILE_FIELDS = PUBLIC_FIELDS + ("phone", "address")


# ----------------------- Utils -----------------------
def hash_password(password: str) -> str:
    return hasher.hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    try:
        return hasher.verify(password_hash, password)
    except VerifyMismatchError:
        return False
    except (VerificationError, InvalidHashError):
        logger.warning("Stored password hash could not be verified")
        return False


def create_token(settings: Settings, user_id: str) -> str:
    issued = now()
    payload = {
        "id": user_id,
        "iat": issued,
        "exp": issued + timedelta(days=settings.jwt_expires_days),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(settings: Settings, token: str) -> dict:
    try:
        return jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp", "id"]},
        )
    except jwt.ExpiredSignatureError:
        raise AuthError("unauthorized", "Not authorized, token expired")
    except jwt.InvalidTokenError:
        raise AuthError("unauthorized", "Not authorized, token failed")


def public_user(user: Dict[str, Any], fields=PUBLIC_FIELDS) -> Dict[str, Any]:
    doc = serialize_doc(user)
    return {k: doc.get(k) for k in fields}


def ensure_indexes(db: Database) -> None:
    db["user"].create_index("email", unique=True)


# ----------------------- Operations -----------------------
def register(db: Database, settings: Settings, name: str, email: str, password: str) -> dict:
    if db["user"].find_one({"email": email}):
        logger.info("Registration rejected, user already exists: %s", email)
        raise ConflictError("User already exists")
    user = UserSchema(name=name, email=email, password_hash=hash_password(password), role="customer")
    try:
        user_id = create_document(db, "user", user)
    except DuplicateKeyError:
        logger.info("Registration lost a race on email: %s", email)
        raise ConflictError("User already exists")
    metrics.users_registered_total.inc()
    logger.info("User registered: %s (ID: %s)", email, user_id)
    body = public_user(db["user"].find_one({"_id": parse_object_id(user_id, "User not found")}))
    body["token"] = create_token(settings, user_id)
    return body


def login(db: Database, settings: Settings, email: str, password: str) -> dict:
    try:
        user = db["user"].find_one({"email": email})
        if not user:
            raise AuthError("user_not_found", "Invalid credentials")
        if not verify_password(user.get("password_hash", ""), password):
            raise AuthError("invalid_password", "Invalid credentials")
    except AuthError as e:
        metrics.auth_failures_total.labels(reason=e.reason).inc()
        logger.warning("Login failed for %s: %s", email, e.reason)
        raise

    if hasher.check_needs_rehash(user["password_hash"]):
        db["user"].update_one({"_id": user["_id"]}, {"$set": {"password_hash": hash_password(password)}})

    body = public_user(user)
    body["token"] = create_token(settings, body["id"])
    logger.info("User logged in: %s (ID: %s)", email, body["id"])
    return body


def verify_token(db: Database, settings: Settings, token: Optional[str]) -> dict:
    """Resolve a bearer token to the stored user, without the password hash."""
    if not token:
        raise AuthError("unauthorized", "Not authorized, no token")
    payload = decode_token(settings, token)
    user_id = payload.get("id")
    if not user_id:
        raise AuthError("unauthorized", "Not authorized, token failed")
    try:
        oid = parse_object_id(user_id, "User not found")
    except NotFoundError:
        raise AuthError("unauthorized", "Not authorized, token failed")
    user = db["user"].find_one({"_id": oid}, {"password_hash": 0})
    if not user:
        raise AuthError("unauthorized", "Not authorized, user not found")
    return serialize_doc(user)


def require_role(user: dict, role: str) -> None:
    if user.get("role") != role:
        logger.warning("User %s denied, role %s required", user.get("id"), role)
        raise AuthError("forbidden", f"Not authorized as an {role}", status_code=403)


def update_profile(db: Database, settings: Settings, user_id: str, patch: Dict[str, Any]) -> dict:
    oid = parse_object_id(user_id, "User not found")
    user = db["user"].find_one({"_id": oid})
    if not user:
        raise NotFoundError("User not found")

    update: Dict[str, Any] = {}
    for field in ("name", "email", "phone", "address"):
        value = patch.get(field)
        if value:
            update[field] = value

    if "email" in update and update["email"] != user["email"]:
        if db["user"].find_one({"email": update["email"], "_id": {"$ne": oid}}):
            raise ConflictError("Email already in use")

    if patch.get("password"):
        logger.info("Password update requested for user: %s", user_id)
        update["password_hash"] = hash_password(patch["password"])

    update["updated_at"] = now()
    try:
        db["user"].update_one({"_id": oid}, {"$set": update})
    except DuplicateKeyError:
        raise ConflictError("Email already in use")

    updated = db["user"].find_one({"_id": oid})
    logger.info("Profile updated: %s", updated["email"])
    body = public_user(updated, PROFILE_FIELDS)
    body["token"] = create_token(settings, user_id)
    return body


def seed_admin(db: Database, settings: Settings) -> Optional[str]:
    """Create the bootstrap admin account when no admin exists yet."""
    if db["user"].find_one({"role": "admin"}):
        logger.info("Admin user already exists")
        return None
    admin = UserSchema(
        name=settings.admin_name,
        email=settings.admin_email,
        password_hash=hash_password(settings.admin_password),
        role="admin",
        phone="+1234567890",
    )
    admin_id = create_document(db, "user", admin)
    logger.info("Admin user created: %s", settings.admin_email)
    logger.warning("Please change the default admin password after first login")
    return admin_id


# ----------------------- Dependencies -----------------------
def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> dict:
    token = credentials.credentials if credentials else None
    return verify_token(db, settings, token)


def require_admin(user: dict = Depends(get_current_user)) -> dict:
    require_role(user, "admin")
    return user
