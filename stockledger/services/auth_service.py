import logging
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from sqlalchemy.orm import Session

from stockledger.config import settings
from stockledger.models.user import User

logger = logging.getLogger(__name__)

# Capabilities per role; checked by the API before calling into the ledger
ROLE_PERMISSIONS: dict[str, set[str]] = {
    "admin": {
        "manage-users",
        "manage-roles",
        "manage-products",
        "manage-warehouses",
        "manage-stock",
        "view-audit-logs",
        "scan-barcode",
        "adjust-stock",
    },
    "manager": {"manage-products", "manage-warehouses", "manage-stock", "scan-barcode", "adjust-stock"},
    "user": {"scan-barcode", "adjust-stock"},
}


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), hashed.encode())
    except ValueError:
        # not a bcrypt hash, e.g. a placeholder on a service account
        return False


def create_access_token(user: User) -> str:
    expires = datetime.now(timezone.utc) + timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS)
    claims = {"sub": user.id, "username": user.username, "role": user.role, "exp": expires}
    return jwt.encode(claims, settings.SECRET_KEY, algorithm="HS256")


def decode_token(token: str) -> dict | None:
    """Verified claims, or None when the token is expired, tampered with or has no subject."""
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=["HS256"])
    except jwt.InvalidTokenError:
        return None
    return claims if claims.get("sub") else None


def _can_sign_in(user: User | None) -> bool:
    return user is not None and user.active and user.role in ROLE_PERMISSIONS


def authenticate(db: Session, username: str, password: str) -> User | None:
    """Active user with a known role whose password matches."""
    user = db.query(User).filter(User.username == username).first()
    if not _can_sign_in(user) or not verify_password(password, user.password_hash):
        return None
    return user


def get_active_user(db: Session, user_id: str) -> User | None:
    user = db.get(User, user_id)
    return user if _can_sign_in(user) else None


def create_user(db: Session, username: str, password: str, display_name: str = "", role: str = "user") -> User:
    if role not in ROLE_PERMISSIONS:
        raise ValueError(f"Unknown role '{role}'")
    existing = db.query(User).filter(User.username == username).first()
    if existing:
        raise ValueError(f"Username '{username}' already exists")
    user = User(
        username=username,
        display_name=display_name or username,
        password_hash=hash_password(password),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def ensure_default_admin(db: Session) -> None:
    """Create the configured admin account on an empty users table."""
    if db.query(User).count():
        return
    create_user(
        db,
        username=settings.DEFAULT_ADMIN_USERNAME,
        password=settings.DEFAULT_ADMIN_PASSWORD,
        display_name="Admin",
        role="admin",
    )
    logger.warning("Created default admin user '%s'; change its password", settings.DEFAULT_ADMIN_USERNAME)


def has_permission(user: User, permission: str) -> bool:
    return user.active and permission in ROLE_PERMISSIONS.get(user.role, set())
