import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from tenderflow.database import get_db
from tenderflow.dependencies import require_service
from tenderflow.models.user import User
from tenderflow.schemas.user import UserCreate, UserCreated
from tenderflow.utils.clock import utc_now
from tenderflow.utils.security import generate_token, hash_token

router = APIRouter(
    prefix="/users",
    tags=["users"],
    dependencies=[Depends(require_service)],
)


@router.post("", response_model=UserCreated, status_code=201)
async def create_user(req: UserCreate, db: Session = Depends(get_db)):
    """Provision a user and return its bearer token. The token is shown only once."""
    email = req.email.strip().lower()
    if "@" not in email:
        raise HTTPException(status_code=400, detail="Invalid email")
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=409, detail="User already exists")

    token = generate_token()
    user = User(id=str(uuid.uuid4()), email=email, token_hash=hash_token(token), created_at=utc_now())
    db.add(user)
    db.commit()
    db.refresh(user)
    return UserCreated(id=user.id, email=user.email, token=token, created_at=user.created_at)
