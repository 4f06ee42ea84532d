from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from psycopg import Connection, errors as pg_errors

from ..domain import Profile, Service
from ..errors import NotFoundError, PermissionDenied, ValidationError
from ..repositories.service_repo import ServiceRepository

logger = logging.getLogger(__name__)


def _parse_price(raw) -> Decimal:
    try:
        price = Decimal(str(raw).strip())
    except InvalidOperation:
        raise ValidationError(f"Price is not a number: {raw!r}") from None
    if not price.is_finite() or price <= 0:
        raise ValidationError("Price must be greater than 0.")
    return price


def _parse_duration(raw) -> int:
    try:
        days = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Duration is not a whole number of days: {raw!r}") from None
    if days < 1:
        raise ValidationError("Duration must be at least 1 day.")
    return days


class CatalogService:
    def __init__(self, *, service_repo: ServiceRepository) -> None:
        self.service_repo = service_repo

    @staticmethod
    def _require_admin(actor: Profile) -> None:
        if not actor.is_admin:
            raise PermissionDenied("Only an administrator can manage services.")

    def list_services(self, conn: Connection, *, include_inactive: bool = True) -> list[Service]:
        return self.service_repo.list(conn, include_inactive=include_inactive)

    def active_services(self, conn: Connection) -> list[Service]:
        return self.service_repo.list(conn, include_inactive=False)

    def get_service(self, conn: Connection, service_id: int) -> Service:
        service = self.service_repo.get(conn, service_id)
        if service is None:
            raise NotFoundError(f"Service not found: {service_id}")
        return service

    def create_service(
        self,
        conn: Connection,
        *,
        actor: Profile,
        name: str,
        description: str | None,
        price,
        duration_days,
    ) -> int:
        self._require_admin(actor)
        if not name.strip():
            raise ValidationError("Service name cannot be empty.")
        service_id = self.service_repo.create(
            conn,
            name=name.strip(),
            description=(description.strip() if description and description.strip() else None),
            price=_parse_price(price),
            duration_days=_parse_duration(duration_days),
        )
        logger.info("Service %s created (id=%s)", name.strip(), service_id)
        return service_id

    def update_service(
        self,
        conn: Connection,
        *,
        actor: Profile,
        service_id: int,
        name: str,
        description: str | None,
        price,
        duration_days,
    ) -> None:
        self._require_admin(actor)
        if not name.strip():
            raise ValidationError("Service name cannot be empty.")
        updated = self.service_repo.update(
            conn,
            service_id=service_id,
            name=name.strip(),
            description=(description.strip() if description and description.strip() else None),
            price=_parse_price(price),
            duration_days=_parse_duration(duration_days),
        )
        if not updated:
            raise NotFoundError(f"Service not found: {service_id}")

    def set_active(self, conn: Connection, *, actor: Profile, service_id: int, is_active: bool) -> None:
        self._require_admin(actor)
        if not self.service_repo.set_active(conn, service_id=service_id, is_active=is_active):
            raise NotFoundError(f"Service not found: {service_id}")
        logger.info("Service %s %s", service_id, "activated" if is_active else "deactivated")

    def delete_service(self, conn: Connection, *, actor: Profile, service_id: int) -> None:
        self._require_admin(actor)
        try:
            deleted = self.service_repo.delete(conn, service_id)
        except pg_errors.ForeignKeyViolation as e:
            raise ValidationError("Service is used by existing orders; deactivate it instead.") from e
        if not deleted:
            raise NotFoundError(f"Service not found: {service_id}")
        logger.info("Service %s deleted", service_id)
