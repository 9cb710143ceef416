from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from transportapp.db.session import get_db
from transportapp.core.config import settings
from transportapp.schemas.auth import LoginRequest, AccessToken
from transportapp.models.user import User
from transportapp.core.security import verify_password, create_access_token
from transportapp.api.deps import get_current_user

router = APIRouter(tags=["auth"])

@router.post("/auth/login", response_model=AccessToken)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == body.email.strip().lower()).first()
    if not user or not user.is_active or not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()
    return AccessToken(
        access_token=create_access_token(user.id),
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )

@router.get("/auth/me")
def me(me: User = Depends(get_current_user)):
    return {
        "id": me.id,
        "email": me.email,
        "fullName": me.full_name or "",
        "role": me.role,
    }
