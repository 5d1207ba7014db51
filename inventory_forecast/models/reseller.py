from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from inventory_forecast.database import Base


class Reseller(Base):
    """Reseller directory entry, used only to label sales attribution."""
    __tablename__ = "resellers"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    nome: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Reseller(id='{self.id}', nome='{self.nome}')>"
