"""
Identity Service — sign-in credentials (password and Google).

Identities are the external-auth half of a user: they prove who someone is
and carry a stable uid. Whether that person may see anything is decided by
the profile (see session_service), never here.

Failed sign-ins raise AuthError with one fixed message, whatever the cause,
and are not retried.
"""

import logging
from datetime import datetime, timezone

import httpx
from email_validator import EmailNotValidError, validate_email
from flask import current_app

from sitetrack.core.exceptions import AuthError, ConflictError, ValidationError
from sitetrack.models import db
from sitetrack.models.auth import Identity
from sitetrack.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
INVALID_CREDENTIALS = "Invalid email or password."
GOOGLE_FAILED = "Google sign-in failed."
GOOGLE_TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"


def normalize_email(email: str) -> str:
    try:
        return validate_email(email or "", check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": "invalid"})


def _touch(identity: Identity) -> None:
    identity.last_sign_in_at = datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════
# Password identities
# ═══════════════════════════════════════════════════════════════
def register_with_password(email: str, password: str, display_name: str | None = None) -> Identity:
    email = normalize_email(email)
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            details={"password": "too_short"},
        )
    if Identity.query.filter_by(email=email).first():
        raise ConflictError(resource="Identity", field="email", value=email)

    identity = Identity(
        email=email,
        password_hash=hash_password(password),
        display_name=(display_name or "").strip() or None,
        provider="password",
    )
    _touch(identity)
    db.session.add(identity)
    db.session.commit()
    logger.info("Identity %s registered", identity.uid, extra={"user_id": identity.uid, "event_type": "auth.registered"})
    return identity


def sign_in_with_password(email: str, password: str) -> Identity:
    try:
        email = normalize_email(email)
    except ValidationError:
        raise AuthError(INVALID_CREDENTIALS)

    identity = Identity.query.filter_by(email=email).first()
    if identity is None or not verify_password(password or "", identity.password_hash or ""):
        logger.warning("Password sign-in failed for %s", email, extra={"event_type": "auth.failed"})
        raise AuthError(INVALID_CREDENTIALS)

    _touch(identity)
    db.session.commit()
    return identity


# ═══════════════════════════════════════════════════════════════
# Google identities
# ═══════════════════════════════════════════════════════════════
def _verify_google_token(id_token: str) -> dict:
    """Validate a Google ID token via the tokeninfo endpoint."""
    try:
        resp = httpx.get(GOOGLE_TOKENINFO_URL, params={"id_token": id_token}, timeout=10)
        resp.raise_for_status()
        claims = resp.json()
    except Exception as e:
        logger.error("Google tokeninfo call failed: %s", e)
        raise AuthError(GOOGLE_FAILED)

    audience = current_app.config.get("GOOGLE_CLIENT_ID")
    if audience and claims.get("aud") != audience:
        logger.warning("Google token audience mismatch: %s", claims.get("aud"))
        raise AuthError(GOOGLE_FAILED)
    if not claims.get("sub"):
        raise AuthError(GOOGLE_FAILED)
    return claims


def sign_in_with_google(id_token: str) -> Identity:
    """Sign in with a Google ID token, linking to an existing email identity."""
    if not id_token:
        raise AuthError(GOOGLE_FAILED)
    claims = _verify_google_token(id_token)
    subject = claims["sub"]

    identity = Identity.query.filter_by(provider_subject=subject).first()
    email = None
    if claims.get("email") and str(claims.get("email_verified", "false")).lower() == "true":
        try:
            email = normalize_email(claims["email"])
        except ValidationError:
            email = None

    if identity is None and email:
        identity = Identity.query.filter_by(email=email).first()
        if identity is not None:
            identity.provider_subject = identity.provider_subject or subject
            logger.info("Linked Google subject to identity %s", identity.uid)

    if identity is None:
        identity = Identity(
            email=email,
            display_name=claims.get("name") or None,
            provider="google",
            provider_subject=subject,
        )
        db.session.add(identity)
        logger.info("Google identity created for subject %s", subject, extra={"event_type": "auth.registered"})

    _touch(identity)
    db.session.commit()
    return identity
