"""Atomic unit-of-work abstraction.

Services never import ``django.db.transaction`` for their own boundaries;
they receive an ``IUnitOfWork`` and open ``with uow.atomic():`` blocks.
Everything executed inside the block commits together or not at all.
Nested blocks join the outer unit (savepoints in the Django implementation).

``on_commit`` defers a callback until the outermost unit commits; it is
discarded when the unit aborts.  Domain events describing committed facts
are published this way.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Callable, Optional

from django.db import DEFAULT_DB_ALIAS, transaction


class IUnitOfWork(ABC):
    """Storage-agnostic transaction boundary (begin / commit / abort)."""

    @abstractmethod
    def atomic(self) -> AbstractContextManager:
        """Return a context manager: begin on enter, commit on clean exit,
        abort when an exception escapes."""

    @abstractmethod
    def on_commit(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` after the outermost unit commits."""

    @property
    @abstractmethod
    def in_unit(self) -> bool:
        """``True`` while a unit is open on the current thread."""


class DjangoUnitOfWork(IUnitOfWork):
    """``IUnitOfWork`` backed by ``django.db.transaction``."""

    def __init__(self, using: Optional[str] = None) -> None:
        self._using = using or DEFAULT_DB_ALIAS

    def atomic(self) -> AbstractContextManager:
        return transaction.atomic(using=self._using)

    def on_commit(self, callback: Callable[[], None]) -> None:
        transaction.on_commit(callback, using=self._using)

    @property
    def in_unit(self) -> bool:
        return transaction.get_connection(self._using).in_atomic_block
