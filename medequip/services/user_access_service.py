from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import os
import re
import secrets
import threading
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medequip.models.store_models import AppUser, UserRole
from medequip.services.authorization_service import CLINIC_ROLE, KNOWN_ROLES, normalize_role


SESSION_TTL_SECONDS = 60 * 60 * 12
MIN_PASSWORD_LENGTH = 6
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

LOGGER = logging.getLogger("medequip.auth")

_BASE_DIR = Path(__file__).resolve().parent.parent
_LOCK = threading.Lock()


class AuthError(ValueError):
    pass


def _require_session_secret() -> bytes:
    raw = (os.environ.get("SESSION_SIGNING_SECRET") or "").strip()
    if len(raw) < 32:
        raise RuntimeError("SESSION_SIGNING_SECRET must be set and at least 32 characters long.")
    return raw.encode("utf-8")


_SESSION_SECRET = _require_session_secret()


def data_dir() -> Path:
    raw = (os.environ.get("MEDEQUIP_DATA_DIR") or "").strip()
    path = Path(raw) if raw else _BASE_DIR / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def _revoked_tokens_path() -> Path:
    return data_dir() / "revoked_sessions.json"


def _password_hash(password: str, salt: str) -> str:
    raw = hashlib.pbkdf2_hmac(
        "sha256",
        (password or "").encode("utf-8"),
        salt.encode("utf-8"),
        120000,
    )
    return raw.hex()


def _normalize_email(raw_email: str | None) -> str:
    return (raw_email or "").strip().lower()


def _load_revoked_tokens_unlocked() -> dict[str, float]:
    path = _revoked_tokens_path()
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, ValueError):
        return {}
    if not isinstance(payload, dict):
        return {}
    out: dict[str, float] = {}
    for token, expires_at in payload.items():
        try:
            out[str(token)] = float(expires_at)
        except (TypeError, ValueError):
            continue
    return out


def _save_revoked_tokens_unlocked(tokens: dict[str, float]) -> None:
    _revoked_tokens_path().write_text(json.dumps(tokens, ensure_ascii=True, indent=2), encoding="utf-8")


def serialize_user(user: AppUser) -> dict[str, Any]:
    return {
        "id": user.UserID,
        "email": user.Email,
        "fullName": user.FullName,
    }


def get_user(db: Session, user_id: str) -> AppUser | None:
    return db.get(AppUser, user_id)


def get_user_by_email(db: Session, email: str) -> AppUser | None:
    return db.execute(select(AppUser).where(AppUser.Email == _normalize_email(email))).scalars().first()


def resolve_role(db: Session, user_id: str) -> str | None:
    try:
        row = db.get(UserRole, user_id)
    except SQLAlchemyError:
        LOGGER.exception("Role lookup failed user_id=%s", user_id)
        db.rollback()
        return None
    return normalize_role(row.Role) if row else None


def assign_role(db: Session, user_id: str, role: str) -> str:
    normalized = normalize_role(role)
    if normalized is None:
        raise ValueError(f"Role must be one of: {', '.join(KNOWN_ROLES)}.")
    row = db.get(UserRole, user_id)
    if row is None:
        db.add(UserRole(UserID=user_id, Role=normalized, CreatedDate=datetime.now()))
    else:
        row.Role = normalized
    db.commit()
    return normalized


def validate_credentials(email: str | None, password: str | None) -> str:
    normalized = _normalize_email(email)
    if not normalized or not password:
        raise AuthError("Please fill in all required fields")
    if not EMAIL_PATTERN.match(normalized):
        raise AuthError("Please enter a valid email address")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise AuthError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return normalized


def sign_up(db: Session, email: str | None, password: str | None, full_name: str | None) -> AppUser:
    normalized = validate_credentials(email, password)
    name = (full_name or "").strip()
    if not name:
        raise AuthError("Please enter your full name")
    if get_user_by_email(db, normalized):
        raise AuthError("An account with this email already exists")

    salt = secrets.token_hex(16)
    user = AppUser(
        UserID=uuid.uuid4().hex,
        Email=normalized,
        FullName=name,
        PasswordSalt=salt,
        PasswordHash=_password_hash(password or "", salt),
        CreatedDate=datetime.now(),
    )
    db.add(user)
    # Self-service accounts are always clinics; admins are granted out of band.
    db.add(UserRole(UserID=user.UserID, Role=CLINIC_ROLE, CreatedDate=datetime.now()))
    db.commit()
    return user


def verify_password(db: Session, email: str, password: str) -> AppUser | None:
    user = get_user_by_email(db, email)
    if not user or not password:
        return None
    candidate = _password_hash(password, user.PasswordSalt)
    if not hmac.compare_digest(candidate, user.PasswordHash):
        return None
    return user


def set_password(db: Session, user: AppUser, password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise AuthError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    salt = secrets.token_hex(16)
    user.PasswordSalt = salt
    user.PasswordHash = _password_hash(password, salt)
    db.commit()


def create_session(payload: dict[str, Any]) -> str:
    expires_at = time.time() + SESSION_TTL_SECONDS
    session_payload = dict(payload)
    session_payload["expiresAt"] = expires_at
    session_payload["nonce"] = secrets.token_hex(8)
    body = json.dumps(session_payload, ensure_ascii=True, separators=(",", ":")).encode("utf-8")
    encoded = base64.urlsafe_b64encode(body).decode("ascii").rstrip("=")
    signature = hmac.new(_SESSION_SECRET, encoded.encode("ascii"), hashlib.sha256).digest()
    encoded_sig = base64.urlsafe_b64encode(signature).decode("ascii").rstrip("=")
    return f"{encoded}.{encoded_sig}"


def _decode_token(token: str) -> dict[str, Any] | None:
    try:
        encoded, encoded_sig = token.split(".", 1)
        expected_sig = hmac.new(_SESSION_SECRET, encoded.encode("ascii"), hashlib.sha256).digest()
        supplied_sig = base64.urlsafe_b64decode(encoded_sig + "=" * (-len(encoded_sig) % 4))
        if not hmac.compare_digest(expected_sig, supplied_sig):
            return None
        payload_raw = base64.urlsafe_b64decode(encoded + "=" * (-len(encoded) % 4))
        decoded = json.loads(payload_raw.decode("utf-8"))
    except (ValueError, UnicodeError, json.JSONDecodeError):
        return None
    return decoded if isinstance(decoded, dict) else None


def get_session(token: str | None) -> dict[str, Any] | None:
    if not token:
        return None
    now = time.time()
    decoded_session = _decode_token(token)
    if decoded_session is None:
        return None

    expires_at = float(decoded_session.get("expiresAt") or 0.0)
    if now >= expires_at:
        return None

    with _LOCK:
        revoked = _load_revoked_tokens_unlocked()
        changed = False
        for revoked_token, revoked_exp in list(revoked.items()):
            if now >= float(revoked_exp):
                revoked.pop(revoked_token, None)
                changed = True
        if changed:
            _save_revoked_tokens_unlocked(revoked)
        if token in revoked:
            return None
    return decoded_session


def remove_session(token: str | None) -> None:
    if not token:
        return
    now = time.time()
    decoded = _decode_token(token)
    if decoded is None:
        return
    expires_at = float(decoded.get("expiresAt") or 0.0)
    if expires_at <= now:
        return
    with _LOCK:
        revoked = _load_revoked_tokens_unlocked()
        revoked[token] = expires_at
        _save_revoked_tokens_unlocked(revoked)
