from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from storefront.data.models.user import UserModel


class UserRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: int) -> UserModel | None:
        return self.db.get(UserModel, user_id)

    def get_by_username(self, username: str) -> UserModel | None:
        return self.db.execute(
            select(UserModel).where(UserModel.username == username)
        ).scalar_one_or_none()

    def get_by_email(self, email: str) -> UserModel | None:
        return self.db.execute(
            select(UserModel).where(func.lower(UserModel.email) == email.lower())
        ).scalar_one_or_none()

    def exists(self, username: str, email: str) -> bool:
        return self.db.execute(
            select(UserModel.id).where(
                or_(UserModel.username == username, func.lower(UserModel.email) == email.lower())
            )
        ).first() is not None

    def create_user(self, user: UserModel) -> UserModel:
        self.db.add(user)
        self.db.flush()
        return user

    def update_password(self, email: str, password_hash: str) -> int:
        result = self.db.execute(
            update(UserModel)
            .where(func.lower(UserModel.email) == email.lower())
            .values(password_hash=password_hash)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def set_password(self, user_id: int, password_hash: str) -> int:
        result = self.db.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(password_hash=password_hash)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
