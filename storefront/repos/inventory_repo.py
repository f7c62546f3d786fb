# storefront/repos/inventory_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from storefront.data.models.product import ProductModel


class InventoryRepo:
    """
    Księga stanów magazynowych. Stock zmieniany wyłącznie warunkowym dekrementem,
    nigdy nadpisaniem wartości.
    """

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: int) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def get_products(self, product_ids, for_update: bool = False) -> dict[int, ProductModel]:
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        # FOR UPDATE w stałej kolejności id (brak deadlocków), sqlite ignoruje
        stmt = (
            select(ProductModel)
            .where(ProductModel.id.in_(ids))
            .order_by(ProductModel.id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return {p.id: p for p in self.db.execute(stmt).scalars()}

    def try_reserve(self, product_id: int, quantity: int) -> bool:
        """
        UPDATE ... SET stock = stock - q WHERE id = :id AND stock >= q
        True tylko gdy dokładnie jeden wiersz został zmieniony.
        """
        result = self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id, ProductModel.stock >= quantity)
            .values(stock=ProductModel.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def current_stock(self, product_id: int) -> int:
        return self.db.execute(
            select(ProductModel.stock).where(ProductModel.id == product_id)
        ).scalar_one_or_none() or 0
