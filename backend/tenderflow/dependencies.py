from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from tenderflow.config import settings
from tenderflow.database import get_db
from tenderflow.models.user import User
from tenderflow.services import analysis
from tenderflow.services.storage import LocalObjectStore
from tenderflow.utils.security import hash_token, tokens_match


def _bearer(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization[7:].strip() or None


async def require_user(
    authorization: str | None = Header(None),
    db: Session = Depends(get_db),
) -> User:
    token = _bearer(authorization)
    if token is None:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    user = db.query(User).filter(User.token_hash == hash_token(token)).first()
    if not user:
        raise HTTPException(status_code=401, detail="Invalid token")
    return user


async def require_service(authorization: str | None = Header(None)):
    # Privileged callers only: the processor trigger, the kick sweep and user provisioning.
    token = _bearer(authorization)
    if token is None or not tokens_match(settings.service_token, token):
        raise HTTPException(status_code=401, detail="Service token required")
    return token


def get_storage() -> LocalObjectStore:
    return LocalObjectStore(settings.storage_dir)


def get_analyzer():
    return analysis.get_analyzer(settings)
