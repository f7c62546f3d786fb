from storefront.data import seed as seed_module
from storefront.data.models import ProductModel, UserModel
from storefront.services.auth_service import verify_password


def test_seed_is_idempotent_and_creates_admin(engine, session_factory, fresh_session, monkeypatch):
    monkeypatch.setattr(seed_module, "engine", engine)
    monkeypatch.setattr(seed_module, "SessionLocal", session_factory)
    monkeypatch.setattr(seed_module, "ADMIN_PASSWORD", "admin-pass")
    monkeypatch.setattr(seed_module, "ADMIN_EMAIL", "admin@example.com")

    seed_module.seed()
    seed_module.seed()

    check = fresh_session()
    assert check.query(ProductModel).count() == len(seed_module.PRODUCTS)
    admin = check.query(UserModel).filter_by(username="admin").one()
    assert admin.is_admin
    assert verify_password("admin-pass", admin.password_hash)
