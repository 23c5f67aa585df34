from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
import logging

from ..settings import settings
from sqlalchemy import select
from sqlalchemy.orm import Session
from ..db import get_db
from ..models import ROLE_ADMIN, ROLE_TEACHER, User as UserRow

router = APIRouter(prefix="/auth", tags=["auth"])

logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"


class User(BaseModel):
	id: str
	username: str
	role: str


def hash_password(password: str) -> str:
	# bcrypt only looks at the first 72 bytes
	return pwd_context.hash(password.encode('utf-8')[:72].decode('utf-8', errors='ignore'))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	return pwd_context.verify(plain_password, hashed_password)


def authenticate_user(db: Session, username: str, password: str) -> Optional[User]:
	row = db.scalars(select(UserRow).where(UserRow.username == username)).first()
	if row and row.password_hash and verify_password(password, row.password_hash):
		return User(id=row.id, username=row.username, role=row.role)
	return None


def _resolve_expiry(expires_delta: Optional[timedelta]) -> datetime:
	delta = expires_delta
	if delta is None:
		minutes = settings.access_token_expire_minutes
		delta = timedelta(minutes=minutes) if minutes > 0 else timedelta(days=30)
	return datetime.now(timezone.utc) + delta


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	to_encode.update({"exp": _resolve_expiry(expires_delta)})
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	user = authenticate_user(db, form_data.username, form_data.password)
	if not user:
		raise HTTPException(status_code=401, detail="Incorrect username or password")
	return Token(access_token=create_access_token({"sub": user.id}))


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
		user_id: str | None = payload.get("sub")
		if user_id is None:
			raise credentials_exception
	except JWTError:
		raise credentials_exception
	row = db.get(UserRow, user_id)
	if row is None:
		raise credentials_exception
	return User(id=row.id, username=row.username, role=row.role)


def require_admin(user: User = Depends(get_current_user)) -> User:
	if user.role != ROLE_ADMIN:
		raise HTTPException(status_code=403, detail="Admin only")
	return user


def require_teacher(user: User = Depends(get_current_user)) -> User:
	if user.role not in (ROLE_TEACHER, ROLE_ADMIN):
		raise HTTPException(status_code=403, detail="Teachers only")
	return user


@router.get("/me", response_model=User)
async def me(user: User = Depends(get_current_user)):
	return user
