from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt
from carecircle.core.config import get_settings

ALG = "HS256"

_settings = get_settings()
SECRET = _settings.jwt_secret
TOKEN_EXP_HOURS = _settings.jwt_exp_hours


def create_token(account_id: str, role: str | None = None, email: str | None = None) -> str:
    """
    Mint a bearer token for an account.

    Production tokens are issued by the identity provider with the shared
    secret; this is used by local tooling and tests.
    """
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(account_id),
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(hours=TOKEN_EXP_HOURS)).timestamp()),
    }
    if role:
        claims["role"] = role
    if email:
        claims["email"] = email
    return jwt.encode(claims, SECRET, algorithm=ALG)

def decode_token(token: str) -> dict:
    """Decode a JWT token and return its claims."""
    payload = jwt.decode(token, SECRET, algorithms=[ALG])
    if not payload.get("sub"):
        raise JWTError("Token has no subject")
    return payload


def subject_from_authorization(header: str | None) -> str | None:
    """Account id carried by an `Authorization: Bearer` header, for log context only."""
    scheme, _, token = (header or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    try:
        return str(decode_token(token.strip())["sub"])
    except JWTError:
        # the auth dependency rejects the request; logs just show no account
        return None
