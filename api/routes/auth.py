from fastapi import APIRouter, Depends, Request
from fastapi.security import OAuth2PasswordRequestForm

from app.errors import BadRequest, Unauthenticated
from app.logger import get_logger
from app.models import ROLE_CLIENT, User
from app.stores import UserStore, get_user_store
from auth.jwt_handler import create_access_token
from auth.oauth2 import get_current_user
from auth.security import hash_password, verify_password
from schemas.auth import AuthResponse, LoginRequest, RegisterRequest, Token, UserOut

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


def _issue_token(request: Request, user: User) -> str:
    return create_access_token(
        {"sub": user.id, "role": user.role},
        request.app.state.settings,
    )


def _authenticate(users: UserStore, email: str, password: str) -> User:
    user = users.get_by_email(email)
    if not user or not verify_password(password, user.password):
        raise Unauthenticated("Invalid email or password")
    return user


@router.post("/register", response_model=AuthResponse, status_code=201)
def register(
    body: RegisterRequest,
    request: Request,
    users: UserStore = Depends(get_user_store),
):
    """Self-registration always creates a client account."""
    if users.get_by_email(body.email):
        raise BadRequest("User already exists")

    user = users.create(
        name=body.name,
        email=body.email,
        password=hash_password(body.password),
        phone=body.phone,
        role=ROLE_CLIENT,
    )
    logger.info(f"Registered client {user.email}")
    return {"token": _issue_token(request, user), "user": user}


@router.post("/login", response_model=AuthResponse)
def login(
    body: LoginRequest,
    request: Request,
    users: UserStore = Depends(get_user_store),
):
    user = _authenticate(users, body.email, body.password)
    return {"token": _issue_token(request, user), "user": user}


@router.post("/token", response_model=Token, response_model_by_alias=False)
def login_form(
    request: Request,
    form: OAuth2PasswordRequestForm = Depends(),
    users: UserStore = Depends(get_user_store),
):
    """OAuth2 password flow for the interactive docs; ``username`` is the email."""
    user = _authenticate(users, form.username.strip().lower(), form.password)
    return {"access_token": _issue_token(request, user), "token_type": "bearer"}


@router.get("/me", response_model=UserOut)
def get_me(user: User = Depends(get_current_user)):
    return user
