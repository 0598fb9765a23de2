"""Transaction boundary around one interaction with the voucher store."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .repository import VoucherRepository


class UnitOfWorkError(RuntimeError):
    """Commit failed and the transaction was rolled back."""


SessionFactory = Callable[[], Session]


@dataclass(slots=True)
class VoucherUnitOfWork:
    """One session and its :class:`VoucherRepository`.

    Leaving the block normally commits; leaving it with an exception rolls the
    transaction back. The session is always closed.
    """

    session_factory: SessionFactory
    session: Session = field(init=False)
    vouchers: VoucherRepository = field(init=False)

    def __post_init__(self) -> None:
        self.session = self.session_factory()
        self.vouchers = VoucherRepository(self.session)

    def __enter__(self) -> "VoucherUnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            if exc is not None:
                self.session.rollback()
            else:
                self.commit()
        finally:
            self.session.close()
        return False

    def commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise UnitOfWorkError("COMMIT_FAILED") from exc


class UnitOfWorkFactory(Protocol):
    def __call__(self) -> VoucherUnitOfWork:
        """Return a fresh unit of work."""


def sqlalchemy_uow_factory(session_factory: SessionFactory) -> UnitOfWorkFactory:
    def factory() -> VoucherUnitOfWork:
        return VoucherUnitOfWork(session_factory=session_factory)

    return factory


__all__ = ["UnitOfWorkError", "UnitOfWorkFactory", "VoucherUnitOfWork", "sqlalchemy_uow_factory"]
