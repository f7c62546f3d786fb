import pytest
from sqlalchemy.exc import OperationalError

from storefront.data.models import ProductModel
from storefront.data.unit_of_work import unit_of_work
from storefront.domain.errors import TransientStorageError
from storefront.repos.inventory_repo import InventoryRepo
from storefront.services.checkout_service import CheckoutService


def test_commits_on_success(db, fresh_session, make_product):
    product = make_product(stock=4)

    with unit_of_work(db):
        assert InventoryRepo(db).try_reserve(product.id, 3)

    assert fresh_session().get(ProductModel, product.id).stock == 1


def test_rolls_back_and_reraises_on_error(db, fresh_session, make_product):
    product = make_product(stock=4)

    with pytest.raises(RuntimeError):
        with unit_of_work(db):
            InventoryRepo(db).try_reserve(product.id, 3)
            raise RuntimeError("boom")

    assert fresh_session().get(ProductModel, product.id).stock == 4


def test_operational_error_becomes_transient(db, fresh_session, make_product):
    product = make_product(stock=4)

    with pytest.raises(TransientStorageError) as exc:
        with unit_of_work(db):
            InventoryRepo(db).try_reserve(product.id, 3)
            raise OperationalError("UPDATE products", {}, Exception("connection lost"))

    assert exc.value.status_code == 503
    assert fresh_session().get(ProductModel, product.id).stock == 4


def test_checkout_retries_transient_failures(db, monkeypatch, make_user, make_product, make_cart):
    user = make_user()
    make_cart(user, [(make_product(stock=2), 1)])

    original = InventoryRepo.try_reserve
    calls = []

    def flaky(self, product_id, quantity):
        calls.append(product_id)
        if len(calls) == 1:
            raise OperationalError("UPDATE products", {}, Exception("deadlock"))
        return original(self, product_id, quantity)

    monkeypatch.setattr(InventoryRepo, "try_reserve", flaky)

    order = CheckoutService(db).checkout(user.id, "1 Main St")

    assert order["status"] == "pending"
    assert len(calls) == 2


def test_transient_error_surfaces_as_503(client, monkeypatch, make_user, make_product, make_cart, auth_headers):
    user = make_user()
    make_cart(user, [(make_product(stock=2), 1)])

    def broken(self, product_id, quantity):
        raise OperationalError("UPDATE products", {}, Exception("password=hunter2"))

    monkeypatch.setattr(InventoryRepo, "try_reserve", broken)

    resp = client.post("/orders", json={"shipping_address": "1 Main St"}, headers=auth_headers(user))

    assert resp.status_code == 503
    assert "hunter2" not in resp.text
