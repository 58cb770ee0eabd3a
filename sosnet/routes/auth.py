from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session
from datetime import timedelta
import logging

from sosnet.config import settings
from sosnet.database import get_db
from sosnet.models.db_models import User, UserRole, AccountType
from sosnet.models.schemas import UserCreate, Token
from sosnet.models.serializers import serialize_user
from sosnet.services.shadow_auth import normalize_phone
from sosnet.utils.security import hash_password, verify_password, create_access_token
from sosnet.auth.oauth2 import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

# ========== REGISTRATION ==========

@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(user_data: UserCreate, db: Session = Depends(get_db)):
    """Register a new citizen with email and password"""

    # Check if email already exists
    existing_email = db.query(User).filter(User.email == user_data.email).first()
    if existing_email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    # Check if username already exists
    existing_username = db.query(User).filter(User.username == user_data.username).first()
    if existing_username:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username already taken"
        )

    phone = normalize_phone(user_data.phone) if user_data.phone else None
    if phone:
        shadow = db.query(User).filter(User.phone == phone).first()
        if shadow and shadow.account_type != AccountType.SHADOW:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Phone number already registered"
            )
    else:
        shadow = None

    if shadow:
        # Upgrade the shadow account created by an earlier SOS
        new_user = shadow
        new_user.email = user_data.email
        new_user.username = user_data.username
        new_user.full_name = user_data.full_name
        new_user.hashed_password = hash_password(user_data.password)
        new_user.account_type = AccountType.REGISTERED
    else:
        new_user = User(
            email=user_data.email,
            username=user_data.username,
            hashed_password=hash_password(user_data.password),
            full_name=user_data.full_name,
            phone=phone,
            role=UserRole.CITIZEN,
            account_type=AccountType.REGISTERED
        )
        db.add(new_user)

    db.commit()
    db.refresh(new_user)
    logger.info(f"Registered user {new_user.id}")

    return {"success": True, "data": serialize_user(new_user)}

# ========== LOGIN (Form-based for OAuth2PasswordBearer) ==========

@router.post("/login", response_model=Token)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    """
    Login with email/password.
    Uses OAuth2PasswordRequestForm for Swagger UI compatibility.
    'username' field contains the email.
    """

    user = db.query(User).filter(User.email == form_data.username).first()

    if not user or not user.hashed_password or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled"
        )

    access_token = create_access_token(
        data={"user_id": user.id, "email": user.email, "role": user.role.value, "name": user.full_name},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )

    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user_id": user.id,
        "role": user.role.value
    }

# ========== GET CURRENT USER ==========

@router.get("/me")
def get_me(current_user: User = Depends(get_current_user)):
    """Get current authenticated user's profile"""
    return {"success": True, "data": serialize_user(current_user)}
