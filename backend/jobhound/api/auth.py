from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging

from ..database import get_db
from ..models.user import User
from ..utils.dependencies import get_current_user
from ..utils.jwt import create_access_token
from ..utils.security import hash_password, verify_password
from ..utils.validation import validate_email, validate_password
from ..utils.error_handlers import get_error_message, handle_database_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


class SignupRequest(BaseModel):
    email: str
    password: str
    name: str | None = None


class LoginRequest(BaseModel):
    email: str
    password: str


def user_to_public(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "default_resume_id": user.default_resume_id,
        "job_search_goal": user.job_search_goal,
    }


@router.post("/signup")
def signup(payload: SignupRequest, db: Session = Depends(get_db)):
    email = validate_email(payload.email)
    validate_password(payload.password)

    # Check if email already exists
    try:
        existing = db.query(User).filter(User.email == email).first()
    except SQLAlchemyError as e:
        raise handle_database_error(e, "checking existing user")
    if existing:
        raise HTTPException(status_code=400, detail=get_error_message("email_exists"))

    try:
        hashed = hash_password(payload.password)
    except ValueError:
        raise HTTPException(status_code=400, detail=get_error_message("weak_password"))

    name = (payload.name or "").strip() or None
    user = User(name=name, email=email, password=hashed)
    try:
        db.add(user)
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as e:
        db.rollback()
        raise handle_database_error(e, "creating user")

    logger.info("user signed up user_id=%s", user.id)
    token = create_access_token({"sub": str(user.id)})
    return {
        "message": "User created successfully",
        "user": user_to_public(user),
        "access_token": token,
        "token_type": "bearer",
    }


@router.post("/login")
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    email = validate_email(payload.email)
    if not payload.password:
        raise HTTPException(status_code=400, detail="Password is required")

    try:
        user = db.query(User).filter(User.email == email).first()
    except SQLAlchemyError as e:
        raise handle_database_error(e, "login")

    if not user or not verify_password(payload.password, user.password):
        raise HTTPException(status_code=401, detail=get_error_message("invalid_credentials"))

    token = create_access_token({"sub": str(user.id)})
    return {
        "access_token": token,
        "token_type": "bearer",
        "user": user_to_public(user),
    }


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return {"user": user_to_public(user)}


@router.post("/logout")
def logout():
    return {"message": "Logged out successfully"}
