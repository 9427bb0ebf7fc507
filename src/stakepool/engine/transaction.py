"""Transaction scopes - serialized access to the ledger's shared resources.

Vault, registry and strategy each own one re-entrant lock. Reads and writes
take the same lock so multi-field reads see one consistent snapshot. A
transaction over several resources acquires their locks in a fixed global
order (by resource name, then creation order) so two overlapping scopes can
never deadlock.
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Generator
from contextlib import ExitStack, contextmanager
from typing import ClassVar

_creation_order = itertools.count()


class SharedResource:
    """Mixin giving a ledger entity its own mutual-exclusion lock."""

    resource_name: ClassVar[str] = "resource"

    def _init_resource(self) -> None:
        self._lock = threading.RLock()
        self._order = next(_creation_order)

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def _sort_key(self) -> tuple[str, int]:
        return (self.resource_name, self._order)


@contextmanager
def transaction(*resources: SharedResource) -> Generator[None, None, None]:
    """Hold the locks of all given resources for the duration of the block.

    Duplicates are ignored. Locks are re-entrant, so a method that already
    holds a resource may open a nested transaction that includes it.
    """
    unique = {id(r): r for r in resources}.values()
    ordered = sorted(unique, key=lambda r: r._sort_key())
    with ExitStack() as stack:
        for resource in ordered:
            stack.enter_context(resource.lock)
        yield
