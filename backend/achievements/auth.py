# achievements/auth.py
from datetime import datetime, timedelta
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from achievements.models import User, Student
from achievements.database import get_session
from achievements.crud import get_student, get_user_by_email
from sqlalchemy.ext.asyncio import AsyncSession

import os

SECRET_KEY = os.getenv("SECRET_KEY", "super-secret-key")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/token")

STUDENT_SUBJECT_PREFIX = "student:"


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


async def authenticate_user(db: AsyncSession, email: str, password: str):
    user = await get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        return None
    return user


def create_access_token(data: dict, expires_delta: timedelta | None = None):
    to_encode = data.copy()
    expire = datetime.utcnow() + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def create_student_token(student: Student) -> str:
    return create_access_token(data={"sub": f"{STUDENT_SUBJECT_PREFIX}{student.id}"})


def _token_subject(token: str) -> str:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise credentials_exception
    sub = payload.get("sub")
    if not sub:
        raise credentials_exception
    return sub


async def get_current_identity(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_session),
) -> tuple[str, User | Student]:
    """Return ("user", User) or ("student", Student) based on token subject."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    sub = _token_subject(token)
    if sub.startswith(STUDENT_SUBJECT_PREFIX):
        try:
            student_id = int(sub[len(STUDENT_SUBJECT_PREFIX):])
        except ValueError:
            raise credentials_exception
        student = await get_student(db, student_id)
        if student is None:
            raise credentials_exception
        return "student", student
    user = await get_user_by_email(db, sub)
    if user is None:
        raise credentials_exception
    return "user", user


async def get_current_user(
    identity: tuple[str, User | Student] = Depends(get_current_identity),
) -> User:
    kind, obj = identity
    if kind != "user":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff account required",
        )
    return obj


async def get_current_student(
    identity: tuple[str, User | Student] = Depends(get_current_identity),
) -> Student:
    kind, obj = identity
    if kind != "student":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Student account required",
        )
    return obj


def require_role(*roles: str):
    """Dependency factory to require a staff role."""

    async def role_dependency(current_user: User = Depends(get_current_user)):
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return role_dependency
