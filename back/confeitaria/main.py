import logging
from datetime import datetime, timezone
from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from . import images, models, security
from .admin_routes import router as admin_router
from .bakery_routes import router as bakery_router
from .catalog_routes import router as catalog_router
from .clients_routes import router as clients_router
from .db import check_db_connection, create_db_and_tables, get_session
from .finance_routes import router as finance_router
from .inventory_routes import router as inventory_router
from .orders_routes import router as orders_router
from .products_routes import router as products_router
from .provisioning import ProvisioningError, create_account, find_user_by_email
from .settings import settings
from .subscription import compute_expiry, subscription_status
from .webhook_routes import router as webhook_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title=f"{settings.app_name} API",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Parse CORS origins from environment (comma-separated)
cors_origins_list = [
    origin.strip()
    for origin in settings.cors_origins.split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Product images, banners and logos
app.mount("/uploads", StaticFiles(directory=str(images.uploads_root())), name="uploads")

app.include_router(webhook_router, prefix="/webhooks", tags=["Webhooks"])
app.include_router(clients_router, prefix="/clients", tags=["Clients"])
app.include_router(products_router, tags=["Products"])
app.include_router(orders_router, prefix="/orders", tags=["Orders"])
app.include_router(inventory_router, prefix="/stock", tags=["Stock"])
app.include_router(finance_router, tags=["Finance"])
app.include_router(bakery_router, prefix="/bakery", tags=["Bakery"])
app.include_router(catalog_router, tags=["Catalog"])
app.include_router(admin_router, prefix="/admin", tags=["Admin"])


@app.on_event("startup")
def on_startup() -> None:
    logger.info("Starting application...")
    create_db_and_tables()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/health/db")
def health_db() -> dict:
    """Check database connection."""
    try:
        check_db_connection()
    except SQLAlchemyError as e:
        raise HTTPException(status_code=503, detail=f"Database error: {e}")
    return {"status": "ok", "database": "connected"}


# ============ AUTH ============

def _set_auth_cookie(response: JSONResponse, token: str) -> None:
    response.set_cookie(
        key="access_token",
        value=token,
        httponly=True,
        secure=settings.is_production,  # Only enforce HTTPS in production
        samesite="lax",
        path="/",
        max_age=settings.access_token_expire_minutes * 60,
    )


def _me(user: models.User) -> dict:
    data = user.model_dump(exclude={"hashed_password", "token_version"})
    data["subscription"] = subscription_status(user)
    return data


@app.post("/register")
def register(
    user_register: models.UserRegister,
    session: Session = Depends(get_session)
) -> dict:
    """Self-service signup: a trial account with its default bakery settings."""
    if not user_register.email.strip() or not user_register.full_name.strip():
        raise HTTPException(status_code=400, detail="Email and name are required")

    payment_date = datetime.now(timezone.utc)
    try:
        user, _ = create_account(
            session,
            email=user_register.email,
            full_name=user_register.full_name.strip(),
            phone=user_register.phone,
            plan=models.SubscriptionPlan.trial,
            payment_date=payment_date,
            expires_at=compute_expiry(payment_date, models.SubscriptionPlan.trial),
            created_via="register",
            password=user_register.password,
            product_name=f"{settings.app_name} - trial",
        )
    except ProvisioningError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "status": "created",
        "user_id": user.id,
        "email": user.email,
        "expires_at": user.expires_at.isoformat(),
    }


@app.post("/token")
def login_for_access_token(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
    session: Session = Depends(get_session)
):
    user = find_user_by_email(session, form_data.username)

    if not user or not security.verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = security.create_user_token(user)
    logger.info(f"User #{user.id} logged in")

    response = JSONResponse(content={
        "status": "success",
        "message": "Logged in",
        "access_token": access_token,
        "token_type": "bearer",
    })
    _set_auth_cookie(response, access_token)
    return response


@app.post("/logout")
def logout():
    response = JSONResponse(content={"status": "success", "message": "Logged out"})
    response.delete_cookie(key="access_token", path="/")  # Must match path used in set_cookie
    return response


@app.get("/users/me")
def read_users_me(
    current_user: Annotated[models.User, Depends(security.get_current_user)]
) -> dict:
    """Current account, including subscription status (also served when expired)."""
    return _me(current_user)


@app.put("/users/me")
def update_users_me(
    user_update: models.UserUpdate,
    current_user: Annotated[models.User, Depends(security.get_current_user)],
    session: Session = Depends(get_session)
) -> dict:
    update_data = user_update.model_dump(exclude_unset=True)
    if "full_name" in update_data:
        if not (update_data["full_name"] or "").strip():
            raise HTTPException(status_code=400, detail="Name is required")
        current_user.full_name = update_data["full_name"].strip()
    if "phone" in update_data:
        current_user.phone = update_data["phone"]
    current_user.updated_at = datetime.now(timezone.utc)
    session.add(current_user)

    profile = session.get(models.Profile, current_user.id)
    if profile is None:
        profile = models.Profile(id=current_user.id, email=current_user.email)
    profile.full_name = current_user.full_name
    profile.phone = current_user.phone
    profile.updated_at = current_user.updated_at
    session.add(profile)

    session.commit()
    session.refresh(current_user)
    return _me(current_user)


@app.put("/users/me/password")
def change_password(
    password_change: models.PasswordChange,
    current_user: Annotated[models.User, Depends(security.get_current_user)],
    session: Session = Depends(get_session)
):
    """Change the password. Other sessions are logged out; this one gets a fresh cookie."""
    if not security.verify_password(password_change.current_password, current_user.hashed_password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    current_user.hashed_password = security.get_password_hash(password_change.new_password)
    current_user.token_version += 1
    current_user.updated_at = datetime.now(timezone.utc)
    session.add(current_user)
    session.commit()
    session.refresh(current_user)

    access_token = security.create_user_token(current_user)
    response = JSONResponse(content={
        "status": "success",
        "message": "Password changed",
        "access_token": access_token,
        "token_type": "bearer",
    })
    _set_auth_cookie(response, access_token)
    return response
