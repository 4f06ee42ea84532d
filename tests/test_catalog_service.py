from decimal import Decimal

import pytest

from cleanstride.errors import NotFoundError, PermissionDenied, ValidationError


def test_admin_manages_services(catalog_service, admin, store):
    sid = catalog_service.create_service(
        None, actor=admin, name=" Deep Clean ", description="", price="65000", duration_days="4"
    )
    s = store.services[sid]
    assert (s.name, s.description, s.price, s.duration_days, s.is_active) == ("Deep Clean", None, Decimal("65000"), 4, True)

    catalog_service.update_service(
        None, actor=admin, service_id=sid, name="Deep Clean+", description="with sole whitening", price="70000", duration_days=3
    )
    assert store.services[sid].price == Decimal("70000")

    catalog_service.set_active(None, actor=admin, service_id=sid, is_active=False)
    assert catalog_service.active_services(None) == []
    assert [s.id for s in catalog_service.list_services(None)] == [sid]

    catalog_service.delete_service(None, actor=admin, service_id=sid)
    assert store.services == {}


@pytest.mark.parametrize(
    "name,price,days",
    [("", "1000", 1), ("X", "0", 1), ("X", "-5", 1), ("X", "abc", 1), ("X", "1000", 0), ("X", "1000", "two")],
)
def test_invalid_service_values(catalog_service, admin, name, price, days):
    with pytest.raises(ValidationError):
        catalog_service.create_service(None, actor=admin, name=name, description=None, price=price, duration_days=days)


def test_only_admin_can_change_catalog(catalog_service, customer, courier, basic_service):
    for actor in (customer, courier):
        with pytest.raises(PermissionDenied):
            catalog_service.create_service(None, actor=actor, name="X", description=None, price="1", duration_days=1)
        with pytest.raises(PermissionDenied):
            catalog_service.delete_service(None, actor=actor, service_id=basic_service.id)


def test_service_in_use_cannot_be_deleted(catalog_service, admin, basic_service, repos, store):
    repos.service.referenced.add(basic_service.id)
    with pytest.raises(ValidationError, match="deactivate"):
        catalog_service.delete_service(None, actor=admin, service_id=basic_service.id)
    assert basic_service.id in store.services


def test_missing_service(catalog_service, admin):
    with pytest.raises(NotFoundError):
        catalog_service.get_service(None, 77)
    with pytest.raises(NotFoundError):
        catalog_service.set_active(None, actor=admin, service_id=77, is_active=True)
    with pytest.raises(NotFoundError):
        catalog_service.update_service(None, actor=admin, service_id=77, name="x", description=None, price="1", duration_days=1)
