# storefront/repos/order_repo.py
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, selectinload

from storefront.data.models.order import OrderModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int, for_update: bool = False) -> OrderModel | None:
        stmt = (
            select(OrderModel)
            .where(OrderModel.id == order_id)
            .options(selectinload(OrderModel.items))
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalar_one_or_none()

    def list_by_user(self, user_id: int) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .where(OrderModel.user_id == user_id)
                .options(selectinload(OrderModel.items))
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            ).scalars()
        )

    def list_orders(self, offset: int, limit: int, status: str | None = None) -> tuple[list[OrderModel], int]:
        stmt = select(OrderModel)
        count_stmt = select(func.count()).select_from(OrderModel)
        if status:
            stmt = stmt.where(OrderModel.status == status)
            count_stmt = count_stmt.where(OrderModel.status == status)

        orders = list(
            self.db.execute(
                stmt.options(selectinload(OrderModel.items))
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
                .offset(offset)
                .limit(limit)
            ).scalars()
        )
        total = self.db.execute(count_stmt).scalar_one()
        return orders, total

    def transition_status(self, order_id: int, expected: str, new_status: str) -> int:
        """Compare-and-set statusu: 0 wierszy = ktoś inny zmienił status wcześniej."""
        result = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == expected)
            .values(status=new_status, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
