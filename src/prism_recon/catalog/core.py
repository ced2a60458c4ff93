from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping


class CatalogResolver(ABC):
    """
    Master-data collaborator consulted by the loader.

    Resolves child variants to the item id that reconstruction runs on and
    decides which items are in scope for the run.
    """

    @abstractmethod
    def normalize(self, item: str) -> str:
        """Return the canonical item id for a raw item id."""

    @abstractmethod
    def in_scope(self, item: str) -> bool:
        """True if the (normalized) item takes part in the run."""


class StaticCatalog(CatalogResolver):
    """
    Catalog backed by an explicit parent map and scope set.

    A scope of None means every item is in scope.
    """

    def __init__(
        self,
        scope: Iterable[str] | None = None,
        parents: Mapping[str, str] | None = None,
    ) -> None:
        self.scope: frozenset[str] | None = (
            frozenset(scope) if scope is not None else None
        )
        self.parents: dict[str, str] = dict(parents or {})

    def normalize(self, item: str) -> str:
        # Follow chains (size -> colour -> style) but stop on cycles
        seen: set[str] = set()
        while item in self.parents and item not in seen:
            seen.add(item)
            item = self.parents[item]
        return item

    def in_scope(self, item: str) -> bool:
        return self.scope is None or item in self.scope
