from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, LargeBinary, String, func, text as sa_text
from sqlalchemy.orm import Mapped, mapped_column

from novella.storage.base import Base


class KeyValueEntry(Base):
    __tablename__ = "kv_store"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=sa_text("CURRENT_TIMESTAMP"),
        onupdate=func.now(),
        nullable=False,
    )
