"""Transaction registry and dependency resolution."""

import logging
from collections.abc import Iterable

from app.orchestrator.base import BaseTransaction
from app.orchestrator.exceptions import CycleError, TransactionNotFoundError
from app.orchestrator.states import StateCatalog
from app.schemas.workspace import TransactionID

logger = logging.getLogger(__name__)


class TransactionRegistry:
    """Holds the transaction set and orders it by dependency.

    Requirements are static, so each distinct requirement list is resolved
    once and served from cache afterwards.
    """

    def __init__(self, transactions: Iterable[BaseTransaction] | None = None):
        self._transactions: dict[TransactionID, BaseTransaction] = {}
        self._order_cache: dict[tuple[TransactionID, ...], list[TransactionID]] = {}
        for transaction in transactions or []:
            self.register(transaction)

    def register(self, transaction: BaseTransaction) -> None:
        """Register (or replace) the implementation of a transaction ID."""
        transaction_id = TransactionID(transaction.transaction_id)
        if transaction_id in self._transactions:
            logger.warning(f"Replacing registered transaction {transaction_id.value}")
        self._transactions[transaction_id] = transaction
        self._order_cache.clear()

    def get(self, transaction_id: TransactionID | str) -> BaseTransaction:
        try:
            return self._transactions[TransactionID(transaction_id)]
        except (KeyError, ValueError):
            raise TransactionNotFoundError(
                f"Transaction {transaction_id} is not registered"
            ) from None

    def __contains__(self, transaction_id: object) -> bool:
        try:
            return TransactionID(transaction_id) in self._transactions
        except ValueError:
            return False

    def __len__(self) -> int:
        return len(self._transactions)

    def resolve(self, required: Iterable[TransactionID | str]) -> list[TransactionID]:
        """Order ``required`` and everything it depends on.

        Every transaction's own requirements appear strictly before it.
        Independent transactions keep the order in which ``required`` lists
        them; an unlisted requirement lands just before its first dependent.
        Raises CycleError if the requirements are not a DAG.
        """
        key = tuple(TransactionID(t) for t in required)
        cached = self._order_cache.get(key)
        if cached is not None:
            return list(cached)

        ordered: list[TransactionID] = []
        done: set[TransactionID] = set()
        path: list[TransactionID] = []

        # Depth-first, post-order; ``path`` is the current requirement chain
        def visit(node: TransactionID) -> None:
            if node in done:
                return
            if node in path:
                cycle = path[path.index(node):] + [node]
                raise CycleError([t.value for t in cycle])
            path.append(node)
            for dependency in self.get(node).requirements():
                visit(TransactionID(dependency))
            path.pop()
            done.add(node)
            ordered.append(node)

        for transaction_id in key:
            visit(transaction_id)

        self._order_cache[key] = ordered
        return list(ordered)

    def validate(self, catalog: StateCatalog) -> None:
        """Resolve every state's requirements once; fail fast on bad config."""
        for state in catalog.states():
            ordered = self.resolve(state.requirements())
            logger.info(
                f"State {state.processing_state_id.value} resolves to "
                f"{len(ordered)} transactions: {', '.join(t.value for t in ordered)}"
            )
