from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlmodel import Session, select

from app.api.deps import get_current_user
from app.core.config import settings
from app.core.database import get_db
from app.core.rate_limit import limiter
from app.core.security import create_access_token, hash_password, verify_password
from app.models import User
from app.schemas import Token, UserCreate, UserLogin, UserResponse

router = APIRouter(prefix="/auth", tags=["auth"])
_REGISTER_LIMIT = f"{settings.rate_limit_register_per_minute}/minute;100/hour"
_LOGIN_LIMIT = f"{settings.rate_limit_per_minute}/minute"


def _user_response(user: User) -> UserResponse:
    return UserResponse(id=user.id or 0, email=user.email, name=user.name or "")


@router.post("/register", response_model=UserResponse)
@limiter.limit(_REGISTER_LIMIT)
def register(request: Request, body: UserCreate, db: Session = Depends(get_db)):
    email = str(body.email).strip().lower()
    if db.exec(select(User).where(User.email == email)).first():
        raise HTTPException(status_code=400, detail="Email is already registered.")
    user = User(email=email, hashed_password=hash_password(body.password), name=body.name.strip())
    db.add(user)
    db.commit()
    db.refresh(user)
    return _user_response(user)


@router.post("/login", response_model=Token)
@limiter.limit(_LOGIN_LIMIT)
def login(request: Request, body: UserLogin, db: Session = Depends(get_db)):
    email = str(body.email).strip().lower()
    user = db.exec(select(User).where(User.email == email)).first()
    if not user or not verify_password(body.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Incorrect email or password.")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled.")
    user.last_login_at = datetime.utcnow()
    db.add(user)
    db.commit()
    return Token(access_token=create_access_token({"sub": str(user.id)}))


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return _user_response(user)
