from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def import_all_models() -> None:
    from novella.storage.models import KeyValueEntry

    _ = (KeyValueEntry,)
