from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from passlib.context import CryptContext
from app.core.config import settings
from app.core.exceptions import AuthenticationError, ValidationError
import secrets
import re

# Password hashing context
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS
)

WALLET_ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")
TX_HASH_PATTERN = re.compile(r"^0x[a-fA-F0-9]{64}$")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against its hash"""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password"""
    return pwd_context.hash(password)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire, "type": "access"})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate JWT token"""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return payload
    except JWTError:
        raise AuthenticationError("Invalid or expired token")


def token_ttl_seconds(payload: Dict[str, Any]) -> int:
    """Seconds left before a decoded token expires (at least 1)"""
    exp = payload.get("exp")
    if exp is None:
        return settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    remaining = int(exp - datetime.utcnow().timestamp())
    return max(remaining, 1)


def generate_nonce() -> str:
    """Generate a one-time nonce for the wallet login challenge"""
    return secrets.token_hex(16)


def is_wallet_address(value: str) -> bool:
    return bool(value) and WALLET_ADDRESS_PATTERN.match(value) is not None


def normalize_wallet_address(address: str) -> str:
    """Lower-case an Ethereum address after validating its shape"""
    if not is_wallet_address(address):
        raise ValidationError("Invalid Ethereum wallet address format")
    return address.lower()


def wallet_login_message(nonce: str, timestamp_ms: int) -> str:
    """Challenge text the wallet owner signs"""
    return (
        "Sign this message to authenticate with OrbitLend.\n\n"
        f"Nonce: {nonce}\n"
        f"Timestamp: {timestamp_ms}"
    )
