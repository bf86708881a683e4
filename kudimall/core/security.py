# kudimall/core/security.py
# Проверка JWT провайдера идентификации и зависимости ролей для эндпоинтов.
from datetime import datetime, timedelta, timezone
from jose import jwt, JWTError
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from kudimall.core.config import settings
from kudimall.db.session import SessionLocal
from kudimall.models.user import User, Vendor, RoleEnum

# Токены выдаёт внешний провайдер; tokenUrl нужен только для OpenAPI-схемы
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")

def create_access_token(subject: str, expires_delta: timedelta | None = None) -> str:
    """Создаём JWT токен с полем sub = subject (обычно id пользователя)."""
    to_encode = {"sub": str(subject)}
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt

def get_db():
    """Зависимость для получения сессии БД в эндпоинтах."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> User:
    """Возвращает текущего пользователя по JWT или бросает 401."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        user_id: str = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError:
        raise credentials_exception
    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None:
        raise credentials_exception
    if getattr(user, "blacklisted", False):
        raise HTTPException(status_code=403, detail="User is blacklisted")
    return user

def require_role(*roles: RoleEnum):
    """Фабрика зависимости: проверяет роль пользователя."""
    def _checker(current_user: User = Depends(get_current_user)):
        if current_user.role not in roles:
            raise HTTPException(status_code=403, detail="Insufficient privileges")
        return current_user
    return _checker

def get_current_vendor(
    current_user: User = Depends(require_role(RoleEnum.vendor)),
    db: Session = Depends(get_db),
) -> Vendor:
    """Профиль продавца текущего пользователя или 403, если профиля нет."""
    vendor = db.query(Vendor).filter(Vendor.user_id == current_user.id).first()
    if vendor is None:
        raise HTTPException(status_code=403, detail="Vendor profile not found")
    return vendor
