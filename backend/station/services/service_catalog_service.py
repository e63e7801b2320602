# Overview: Service-layer operations for the labour catalog (services offered at the station).

from __future__ import annotations

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Service, BillLine
from ..validation import ConflictError, NotFoundError, parse_sort

SERVICE_MUTABLE_FIELDS = {"name", "description", "price", "duration", "category", "is_active"}

SERVICE_SORTABLE = {
    "name": Service.name,
    "price": Service.price,
    "duration": Service.duration,
    "category": Service.category,
    "created_at": Service.created_at,
    "createdAt": Service.created_at,
}


def _require_name_available(name: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Service).filter(func.lower(Service.name) == name.lower())
    if exclude_id is not None:
        q = q.filter(Service.id != exclude_id)
    if q.first() is not None:
        raise ConflictError("Service with this name already exists")


def list_services(
    *,
    category: str | None = None,
    active: bool | None = None,
    search: str | None = None,
    sort: str | None = None,
) -> list[Service]:
    q = db.session.query(Service)
    if category:
        q = q.filter(Service.category == category)
    if active is not None:
        q = q.filter(Service.is_active.is_(active))
    if search:
        q = q.filter(Service.name.icontains(search, autoescape=True))

    order = parse_sort(sort, SERVICE_SORTABLE, default=[Service.name.asc()])
    return q.order_by(*order, Service.id.asc()).all()


def get_service(service_id: int) -> Service:
    s = db.session.get(Service, service_id)
    if s is None:
        raise NotFoundError("Service not found")
    return s


def create_service(*, patch: dict, created_by_user_id: int | None = None) -> Service:
    _require_name_available(patch["name"])

    s = Service(created_by_user_id=created_by_user_id)
    for k, v in patch.items():
        if k in SERVICE_MUTABLE_FIELDS:
            setattr(s, k, v)

    db.session.add(s)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Service with this name already exists")

    current_app.logger.info("Created service id=%s name=%r", s.id, s.name)
    return s


def update_service(*, service_id: int, patch: dict) -> Service:
    s = get_service(service_id)

    if "name" in patch and patch["name"] != s.name:
        _require_name_available(patch["name"], exclude_id=s.id)

    for k, v in patch.items():
        if k in SERVICE_MUTABLE_FIELDS:
            setattr(s, k, v)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Service with this name already exists")
    return s


def delete_service(*, service_id: int) -> bool:
    """
    Remove a service, or deactivate it when historical bills reference it.

    Returns True when deactivated.
    """
    s = get_service(service_id)

    referenced = db.session.query(BillLine.id).filter(BillLine.service_id == s.id).first()
    if referenced is not None:
        s.is_active = False
        db.session.commit()
        current_app.logger.info("Deactivated referenced service id=%s", s.id)
        return True

    db.session.delete(s)
    db.session.commit()
    current_app.logger.info("Deleted service id=%s", service_id)
    return False
