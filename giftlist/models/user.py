# giftlist/models/user.py

from sqlalchemy import Column, String, DateTime

from giftlist.db import Base
from giftlist.utils.ids import new_id, utcnow


class User(Base):
    """
    Внутренняя запись пользователя, 1:1 со стабильным subject id внешнего
    провайдера аутентификации (external_id). Создаётся/обновляется/удаляется
    вебхуками провайдера; email используется для сопоставления приглашений.
    """
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_id)
    external_id = Column(String(255), unique=True, nullable=False, index=True)
    email = Column(String(320), nullable=False, index=True)
    name = Column(String(255), nullable=True)  # Отображаемое имя
    avatar_url = Column(String(2048), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def display_name(self) -> str:
        return self.name or self.email

    def __repr__(self):
        return f"<User(id={self.id}, external_id={self.external_id}, email={self.email})>"
