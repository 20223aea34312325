from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, File, UploadFile
from sqlmodel import Session

from . import images, models
from .db import get_session
from .provisioning import default_bakery_name
from .security import get_current_subscriber

router = APIRouter()


def settings_to_dict(bakery: models.BakerySettings) -> dict:
    data = bakery.model_dump()
    data["logo_url"] = images.image_url(bakery.id, images.LOGO, bakery.logo_filename)
    return data


def get_or_create_settings(session: Session, user: models.User) -> models.BakerySettings:
    """Settings row of the user; accounts created before it existed get the defaults."""
    bakery = session.get(models.BakerySettings, user.id)
    if bakery is None:
        bakery = models.BakerySettings(
            id=user.id,
            bakery_name=default_bakery_name(user.full_name or ""),
            email=user.email,
            phone=user.phone,
        )
        session.add(bakery)
        session.commit()
        session.refresh(bakery)
    return bakery


@router.get("/settings")
def get_bakery_settings(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    return settings_to_dict(get_or_create_settings(session, current_user))


@router.put("/settings")
def update_bakery_settings(
    settings_update: models.BakerySettingsUpdate,
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Update storefront settings. Only the fields sent are changed."""
    bakery = get_or_create_settings(session, current_user)

    update_data = settings_update.model_dump(exclude_unset=True)
    for key, value in update_data.items():
        setattr(bakery, key, value.strip() if isinstance(value, str) else value)

    bakery.updated_at = datetime.now(timezone.utc)
    session.add(bakery)
    session.commit()
    session.refresh(bakery)
    return settings_to_dict(bakery)


@router.post("/logo")
async def upload_bakery_logo(
    file: Annotated[UploadFile, File()],
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    """Upload the bakery logo shown on the public catalog."""
    bakery = get_or_create_settings(session, current_user)

    bakery.logo_filename = await images.store_image(
        current_user.id, images.LOGO, file, previous_filename=bakery.logo_filename
    )
    bakery.updated_at = datetime.now(timezone.utc)
    session.add(bakery)
    session.commit()
    session.refresh(bakery)

    data = settings_to_dict(bakery)
    size = images.file_size(current_user.id, images.LOGO, bakery.logo_filename)
    data["logo_size_bytes"] = size
    data["logo_size_formatted"] = images.format_file_size(size)
    return data


@router.delete("/logo")
def delete_bakery_logo(
    current_user: Annotated[models.User, Depends(get_current_subscriber)],
    session: Session = Depends(get_session),
):
    bakery = get_or_create_settings(session, current_user)

    images.delete_image(current_user.id, images.LOGO, bakery.logo_filename)
    bakery.logo_filename = None
    bakery.updated_at = datetime.now(timezone.utc)
    session.add(bakery)
    session.commit()
    session.refresh(bakery)
    return settings_to_dict(bakery)
