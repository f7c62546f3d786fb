# storefront/data/seed.py
from decimal import Decimal

from storefront.data.database import Base, SessionLocal, engine
from storefront.data.models import ProductModel, UserModel
from storefront.services.auth_service import hash_password
from storefront.utils.logging import get_logger
from storefront.utils.settings import ADMIN_EMAIL, ADMIN_PASSWORD

logger = get_logger(__name__)

PRODUCTS = [
    {"id": 1, "name": "Keyboard", "price": Decimal("199.99"), "stock": 25},
    {"id": 2, "name": "Mouse", "price": Decimal("49.50"), "stock": 100},
    {"id": 3, "name": "Monitor", "price": Decimal("899.00"), "stock": 5},
]


def seed():
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        # not forcing: only seed if empty
        if db.query(ProductModel).first():
            return

        db.add_all(ProductModel(**p) for p in PRODUCTS)

        if ADMIN_PASSWORD:
            db.add(
                UserModel(
                    username="admin",
                    email=ADMIN_EMAIL,
                    password_hash=hash_password(ADMIN_PASSWORD),
                    is_admin=True,
                )
            )

        db.commit()
        logger.info(f"Seeded {len(PRODUCTS)} products")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
