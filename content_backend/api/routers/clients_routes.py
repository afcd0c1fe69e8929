from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..content_models import Client, User, utcnow
from ..content_schemas import ClientCreate, ClientOut, ClientUpdate
from ..db import get_db

router = APIRouter(prefix="/api/clients", tags=["clients"])

_CLIENT_FIELDS = (
    "business_name",
    "city",
    "state",
    "street_address",
    "postal_code",
    "phone",
    "email",
    "website",
    "logo_url",
    "primary_color",
    "brand_voice",
    "cta_text",
    "cta_url",
    "service_areas",
    "has_adas_calibration",
    "offers_mobile_service",
    "google_rating",
    "google_review_count",
    "wordpress_url",
    "wordpress_username",
    "wordpress_app_password",
    "social_platforms",
    "social_account_ids",
    "podbean_enabled",
    "status",
)


def client_to_out(client: Client) -> ClientOut:
    return ClientOut(
        id=client.id,
        business_name=client.business_name,
        city=client.city,
        state=client.state,
        street_address=client.street_address,
        postal_code=client.postal_code,
        phone=client.phone,
        email=client.email,
        website=client.website,
        logo_url=client.logo_url,
        primary_color=client.primary_color,
        brand_voice=client.brand_voice,
        cta_text=client.cta_text,
        cta_url=client.cta_url,
        service_areas=list(client.service_areas or []),
        has_adas_calibration=bool(client.has_adas_calibration),
        offers_mobile_service=bool(client.offers_mobile_service),
        google_rating=client.google_rating,
        google_review_count=client.google_review_count,
        wordpress_url=client.wordpress_url,
        wordpress_username=client.wordpress_username,
        has_wordpress_credentials=bool(
            client.wordpress_url and client.wordpress_username and client.wordpress_app_password
        ),
        social_platforms=list(client.social_platforms or []),
        social_account_ids=dict(client.social_account_ids or {}),
        podbean_enabled=bool(client.podbean_enabled),
        status=client.status,
        created_at=client.created_at,
        updated_at=client.updated_at,
    )


def _get_client_or_404(db: Session, client_id: UUID) -> Client:
    client = db.query(Client).filter(Client.id == client_id).first()
    if not client:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found.")
    return client


@router.get("", response_model=List[ClientOut])
def list_clients(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> List[ClientOut]:
    query = db.query(Client)
    if status_filter:
        query = query.filter(Client.status == status_filter.strip().lower())
    return [client_to_out(client) for client in query.order_by(Client.business_name.asc()).all()]


@router.get("/{client_id}", response_model=ClientOut)
def get_client(
    client_id: UUID,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> ClientOut:
    return client_to_out(_get_client_or_404(db, client_id))


@router.post("", response_model=ClientOut, status_code=status.HTTP_201_CREATED)
def create_client(
    payload: ClientCreate,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> ClientOut:
    client = Client(**{field: getattr(payload, field) for field in _CLIENT_FIELDS})
    if client.email is not None:
        client.email = str(client.email)
    db.add(client)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Client conflict.") from exc
    db.refresh(client)
    return client_to_out(client)


@router.patch("/{client_id}", response_model=ClientOut)
def update_client(
    client_id: UUID,
    payload: ClientUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(require_admin),
) -> ClientOut:
    client = _get_client_or_404(db, client_id)
    for field in _CLIENT_FIELDS:
        if field not in payload.__fields_set__:
            continue
        value = getattr(payload, field)
        if value is None and field in {"business_name", "city", "state", "status"}:
            continue
        if field == "email" and value is not None:
            value = str(value)
        setattr(client, field, value)
    client.updated_at = utcnow()
    db.add(client)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Client conflict.") from exc
    db.refresh(client)
    return client_to_out(client)
