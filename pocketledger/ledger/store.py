"""
Ledger Store

The single owner of ledger state. Holds the five collections in memory,
applies every mutation, keeps the credit ledgers and their mirrored
transactions consistent, and mirrors each touched collection to
key-value storage after every change.

DESIGN DECISION: A mutation is all-or-nothing. Each one runs inside
_mutation(), which snapshots the touched collections first and puts them
back if the change or the save fails. Audit events are only logged once
the new state is safely stored.

Balances are never stored; see pocketledger.ledger.balances.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, Iterator, Optional, Union

import structlog

from pocketledger.audit import AuditLogger, create_correlation_id
from pocketledger.ledger.balances import compute_balances, total_balance
from pocketledger.ledger.defaults import default_categories
from pocketledger.ledger.errors import (
    CardInUseError,
    LedgerConsistencyError,
    LedgerValidationError,
    ReservedCategoryError,
)
from pocketledger.ledger.persistence import (
    CARDS_KEY,
    CATEGORIES_KEY,
    COLLECTION_KEYS,
    CREDIT_ENTRIES_KEY,
    CREDIT_RECEIVED_ENTRIES_KEY,
    TRANSACTIONS_KEY,
    LedgerPersistence,
)
from pocketledger.models.audit import AuditEvent, AuditEventBuilder
from pocketledger.models.ledger import (
    CREDIT_CATEGORY,
    CREDIT_RECEIVED_CATEGORY,
    CREDIT_RETURN_CATEGORY,
    CREDIT_RETURN_PAID_CATEGORY,
    CardCreate,
    CardDetails,
    Category,
    CategoryCreate,
    CreditEntry,
    CreditEntryCreate,
    CreditHistoryItem,
    CreditMovement,
    CreditReceivedEntry,
    CreditReceivedEntryCreate,
    CreditReceivedHistoryItem,
    PaymentMethod,
    Transaction,
    TransactionCreate,
    TransactionType,
    User,
    ValidationResult,
    is_reserved_category,
    utcnow,
)
from pocketledger.services.storage import (
    DuplicateError,
    InMemoryKeyValueStorage,
    KeyValueStorageInterface,
    NotFoundError,
    StorageError,
)
from pocketledger.validation import LedgerValidator


logger = structlog.get_logger("pocketledger.ledger")

Amount = Union[Decimal, int, float, str]

# Fields a credit-linked transaction may still change
_EDITABLE_LINKED_FIELDS = frozenset({"date", "note"})


def _as_decimal(value: Amount) -> Decimal:
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except InvalidOperation as e:
            raise ValueError(f"Invalid amount: {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return result


class LedgerStore:
    """
    Personal ledger state with consistency rules.

    Usage:
        store = LedgerStore(storage=JsonFileKeyValueStorage("ledger.json"))
        store.add_transaction(TransactionCreate(
            type=TransactionType.EXPENSE,
            category="Food",
            amount=Decimal("1200"),
            payment_method=PaymentMethod.CASH,
        ))
        store.balances["cash"]
    """

    def __init__(
        self,
        storage: Optional[KeyValueStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[LedgerValidator] = None,
        owner: Optional[User] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Initialize the store and load every collection from storage.

        Args:
            storage: Key-value backend. In-memory when None.
            audit_logger: Audit trail. Local logging only when None.
            validator: Business-rule validator.
            owner: The ledger owner.
            clock: Source of "now" for credit movements and defaults.

        Raises:
            StorageError: If the backend cannot be read
        """
        self._storage = storage if storage is not None else InMemoryKeyValueStorage()
        self._audit = audit_logger or AuditLogger()
        self._persistence = LedgerPersistence(self._storage, self._audit)
        self._validator = validator or LedgerValidator()
        self._owner = owner or User(name="Ledger Owner", email="owner@example.com")
        self._clock = clock
        self._collections: dict[str, list] = {key: [] for key in COLLECTION_KEYS}
        self.reload()

    # =========================================================================
    # READ ACCESS
    # =========================================================================

    @property
    def user(self) -> User:
        return self._owner.model_copy()

    @property
    def storage(self) -> KeyValueStorageInterface:
        return self._storage

    @property
    def transactions(self) -> list[Transaction]:
        """All transactions, newest first."""
        return self._copies(TRANSACTIONS_KEY)

    @property
    def categories(self) -> list[Category]:
        return self._copies(CATEGORIES_KEY)

    @property
    def cards(self) -> list[CardDetails]:
        return self._copies(CARDS_KEY)

    @property
    def credit_entries(self) -> list[CreditEntry]:
        """Money lent, newest first."""
        return self._copies(CREDIT_ENTRIES_KEY)

    @property
    def credit_received_entries(self) -> list[CreditReceivedEntry]:
        """Money borrowed, newest first."""
        return self._copies(CREDIT_RECEIVED_ENTRIES_KEY)

    @property
    def balances(self) -> dict[str, Decimal]:
        """Balance of cash and of every card, derived from transactions."""
        return compute_balances(
            self._collections[TRANSACTIONS_KEY],
            self._collections[CARDS_KEY],
        )

    @property
    def total_balance(self) -> Decimal:
        return total_balance(self.balances)

    @property
    def is_empty(self) -> bool:
        """No transactions, cards or credits recorded yet."""
        return not any(
            self._collections[key]
            for key in (
                TRANSACTIONS_KEY,
                CARDS_KEY,
                CREDIT_ENTRIES_KEY,
                CREDIT_RECEIVED_ENTRIES_KEY,
            )
        )

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self._copy_of(self._find(TRANSACTIONS_KEY, transaction_id))

    def get_category(self, category_id: str) -> Optional[Category]:
        return self._copy_of(self._find(CATEGORIES_KEY, category_id))

    def get_card(self, card_id: str) -> Optional[CardDetails]:
        return self._copy_of(self._find(CARDS_KEY, card_id))

    def get_credit_entry(self, credit_id: str) -> Optional[CreditEntry]:
        return self._copy_of(self._find(CREDIT_ENTRIES_KEY, credit_id))

    def get_credit_received_entry(self, entry_id: str) -> Optional[CreditReceivedEntry]:
        return self._copy_of(self._find(CREDIT_RECEIVED_ENTRIES_KEY, entry_id))

    def card_references(self, card_id: str) -> int:
        """
        Count everything that points at a card.

        Transactions, initial cards and history items of both credit
        ledgers all count.
        """
        count = sum(
            1 for t in self._collections[TRANSACTIONS_KEY] if t.card_id == card_id
        )
        for key in (CREDIT_ENTRIES_KEY, CREDIT_RECEIVED_ENTRIES_KEY):
            for entry in self._collections[key]:
                if entry.initial_card_id == card_id:
                    count += 1
                count += sum(1 for h in entry.history if h.card_id == card_id)
        return count

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def add_transaction(self, draft: TransactionCreate) -> Transaction:
        """
        Add a manual transaction.

        Raises:
            LedgerConsistencyError: The draft carries credit linkage
            LedgerValidationError: Unknown category or card, reserved
                category, or not enough money in the paying account
        """
        if draft.is_credit_linked:
            raise LedgerConsistencyError(
                "Credit transactions are created through the credit ledgers"
            )

        self._require_valid(self._validator.validate_transaction(
            draft,
            self._collections[CATEGORIES_KEY],
            self._collections[CARDS_KEY],
            self.balances,
        ))

        category = self._find_category(draft.category, draft.type)
        transaction = Transaction(**{
            **draft.model_dump(),
            "category": category.name,
            "date": self._resolve_time(draft.date),
        })

        with self._mutation(TRANSACTIONS_KEY) as events:
            self._collections[TRANSACTIONS_KEY].insert(0, transaction)
            events.append(AuditEventBuilder.transaction_added(transaction))

        return transaction.model_copy(deep=True)

    def update_transaction(self, transaction: Transaction) -> Transaction:
        """
        Replace a transaction by id.

        Credit-linked transactions only accept a new date or note. A new
        date is carried over to the credit history item they mirror.

        Raises:
            NotFoundError: No transaction with that id
            LedgerConsistencyError: The edit would break credit linkage
            LedgerValidationError: The new state is invalid
        """
        existing = self._find(TRANSACTIONS_KEY, transaction.id)
        if existing is None:
            raise NotFoundError(f"Transaction {transaction.id} not found")

        updated = Transaction.model_validate(transaction.model_dump())

        if existing.is_credit_linked:
            changed = {
                field for field in Transaction.model_fields
                if getattr(existing, field) != getattr(updated, field)
            }
            if changed - _EDITABLE_LINKED_FIELDS:
                raise LedgerConsistencyError(
                    "Only the date and note of a credit transaction can be edited"
                )
        else:
            if updated.is_credit_linked:
                raise LedgerConsistencyError(
                    "A manual transaction cannot be linked to a credit entry"
                )
            others = [
                t for t in self._collections[TRANSACTIONS_KEY] if t.id != existing.id
            ]
            self._require_valid(self._validator.validate_transaction(
                updated,
                self._collections[CATEGORIES_KEY],
                self._collections[CARDS_KEY],
                compute_balances(others, self._collections[CARDS_KEY]),
            ))
            category = self._find_category(updated.category, updated.type)
            updated = updated.model_copy(update={"category": category.name})

        redated = None
        if existing.is_credit_linked and updated.date != existing.date:
            redated = self._redated_credit_entry(updated)

        keys = (TRANSACTIONS_KEY,) if redated is None else (redated[0], TRANSACTIONS_KEY)
        with self._mutation(*keys) as events:
            self._replace(TRANSACTIONS_KEY, updated)
            if redated is not None:
                self._replace(*redated)
            events.append(AuditEventBuilder.transaction_updated(existing, updated))

        return updated.model_copy(deep=True)

    def delete_transaction(self, transaction_id: str) -> bool:
        """
        Delete a transaction.

        Deleting the transaction of a credit return reverses the return on
        its credit entry as well. Other credit transactions can only go
        away with their credit entry.

        Returns:
            True if deleted, False if not found

        Raises:
            LedgerConsistencyError: The transaction mirrors a credit being
                given or received
        """
        transaction = self._find(TRANSACTIONS_KEY, transaction_id)
        if transaction is None:
            return False

        if transaction.credit_id:
            entry = self._find(CREDIT_ENTRIES_KEY, transaction.credit_id)
            item = (
                entry.find_history(transaction.credit_history_id)
                if entry and transaction.credit_history_id else None
            )
            if item is not None and item.type == CreditMovement.RETURNED:
                return self.delete_credit_return_history(entry.id, item.id)
            if entry is not None and (item is not None or not transaction.credit_history_id):
                raise LedgerConsistencyError(
                    f"Transaction {transaction_id} records credit given to "
                    f"{entry.person_name}; delete the credit entry instead"
                )
        elif transaction.credit_received_id:
            entry = self._find(CREDIT_RECEIVED_ENTRIES_KEY, transaction.credit_received_id)
            history_id = transaction.credit_received_history_id
            if entry is not None and history_id is None:
                raise LedgerConsistencyError(
                    f"Transaction {transaction_id} records credit received from "
                    f"{entry.person_name}; delete the credit entry instead"
                )
            if entry is not None and entry.find_history(history_id) is not None:
                return self.delete_credit_received_return_history(entry.id, history_id)

        # Plain transaction, or one whose credit entry no longer exists
        with self._mutation(TRANSACTIONS_KEY) as events:
            self._remove(TRANSACTIONS_KEY, transaction_id)
            events.append(AuditEventBuilder.transaction_deleted(transaction))

        return True

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    def add_category(self, draft: CategoryCreate) -> Category:
        """
        Add a category.

        Raises:
            ReservedCategoryError: The name belongs to the credit ledgers
            DuplicateError: Same name and type already exists
        """
        if is_reserved_category(draft.name):
            raise ReservedCategoryError(f"'{draft.name}' is a reserved category name")
        if any(draft.same_name(c) for c in self._collections[CATEGORIES_KEY]):
            raise DuplicateError(
                f"A {draft.type.value} category named '{draft.name}' already exists"
            )

        category = Category(name=draft.name, type=draft.type)
        with self._mutation(CATEGORIES_KEY) as events:
            self._collections[CATEGORIES_KEY].append(category)
            events.append(AuditEventBuilder.category_added(category))

        return category.model_copy()

    def update_category(self, category: Category) -> Category:
        """
        Update a category; a rename carries over to its transactions.

        Raises:
            NotFoundError: No category with that id
            ReservedCategoryError: Renaming a credit category, or renaming
                something to a credit category's name
            DuplicateError: Another category already has the new name
            LedgerConsistencyError: Changing the type of a category in use
        """
        existing = self._find(CATEGORIES_KEY, category.id)
        if existing is None:
            raise NotFoundError(f"Category {category.id} not found")

        updated = Category.model_validate(category.model_dump())
        if updated == existing:
            return updated

        if is_reserved_category(existing.name) or is_reserved_category(updated.name):
            raise ReservedCategoryError(
                f"'{existing.name}' cannot be changed to '{updated.name}'"
            )
        if any(
            c.id != updated.id and updated.same_name(c)
            for c in self._collections[CATEGORIES_KEY]
        ):
            raise DuplicateError(
                f"A {updated.type.value} category named '{updated.name}' already exists"
            )

        in_use = [
            t for t in self._collections[TRANSACTIONS_KEY]
            if t.category == existing.name and t.type == existing.type
        ]
        if updated.type != existing.type and in_use:
            raise LedgerConsistencyError(
                f"'{existing.name}' is used by {len(in_use)} transactions; "
                "its type cannot change"
            )

        renamed = 0
        with self._mutation(CATEGORIES_KEY, TRANSACTIONS_KEY) as events:
            self._replace(CATEGORIES_KEY, updated)
            if updated.name != existing.name:
                transactions = self._collections[TRANSACTIONS_KEY]
                for index, t in enumerate(transactions):
                    if t.category == existing.name and t.type == existing.type:
                        transactions[index] = t.model_copy(update={"category": updated.name})
                        renamed += 1
            events.append(AuditEventBuilder.category_updated(existing, updated, renamed))

        return updated.model_copy()

    def delete_category(self, category_id: str) -> bool:
        """
        Delete a category and every transaction filed under it.

        Returns:
            True if deleted, False if not found

        Raises:
            ReservedCategoryError: The category belongs to the credit ledgers
        """
        category = self._find(CATEGORIES_KEY, category_id)
        if category is None:
            return False
        if is_reserved_category(category.name):
            raise ReservedCategoryError(f"'{category.name}' cannot be deleted")

        with self._mutation(CATEGORIES_KEY, TRANSACTIONS_KEY) as events:
            self._remove(CATEGORIES_KEY, category_id)
            removed = self._remove_transactions(
                lambda t: t.category == category.name and t.type == category.type
            )
            events.append(AuditEventBuilder.category_deleted(category, removed))

        return True

    # =========================================================================
    # WALLET CARDS
    # =========================================================================

    def add_card(self, draft: CardCreate) -> CardDetails:
        card = CardDetails(**draft.model_dump())
        with self._mutation(CARDS_KEY) as events:
            self._collections[CARDS_KEY].append(card)
            events.append(AuditEventBuilder.card_added(card))
        return card.model_copy()

    def update_card(self, card: CardDetails) -> CardDetails:
        """
        Replace a card's details.

        Raises:
            NotFoundError: No card with that id
        """
        if self._find(CARDS_KEY, card.id) is None:
            raise NotFoundError(f"Card {card.id} not found")

        updated = CardDetails.model_validate(card.model_dump())
        with self._mutation(CARDS_KEY) as events:
            self._replace(CARDS_KEY, updated)
            events.append(AuditEventBuilder.card_updated(updated))
        return updated.model_copy()

    def delete_card(self, card_id: str) -> bool:
        """
        Delete a card that nothing refers to.

        Returns:
            True if deleted, False if not found

        Raises:
            CardInUseError: Transactions or credit entries still use the card
        """
        card = self._find(CARDS_KEY, card_id)
        if card is None:
            return False

        references = self.card_references(card_id)
        if references:
            self._audit.log(AuditEventBuilder.card_delete_blocked(card, references))
            raise CardInUseError(card_id, references)

        with self._mutation(CARDS_KEY) as events:
            self._remove(CARDS_KEY, card_id)
            events.append(AuditEventBuilder.card_deleted(card))
        return True

    # =========================================================================
    # CREDIT LENT
    # =========================================================================

    def add_credit_entry(
        self,
        draft: CreditEntryCreate,
        when: Optional[datetime] = None,
    ) -> CreditEntry:
        """
        Record money lent to someone.

        Adds a 'given' history item and an expense in the Credit category
        paid from the chosen account.

        Raises:
            LedgerValidationError: Unknown card or not enough money
        """
        self._require_valid(self._validator.validate_credit_given(
            draft, self._collections[CARDS_KEY], self.balances
        ))

        now = self._resolve_time(when)
        item = CreditHistoryItem(
            date=now,
            amount=draft.amount,
            type=CreditMovement.GIVEN,
            payment_method=draft.initial_payment_method,
            card_id=draft.initial_card_id,
            note=draft.initial_note,
        )
        entry = CreditEntry(**draft.model_dump(), given_date=now, history=[item])
        transaction = Transaction(
            type=TransactionType.EXPENSE,
            category=CREDIT_CATEGORY,
            amount=draft.amount,
            date=now,
            note=f"Credit given to {entry.person_name}",
            payment_method=draft.initial_payment_method,
            card_id=draft.initial_card_id,
            credit_id=entry.id,
            credit_history_id=item.id,
        )

        correlation_id = create_correlation_id()
        with self._mutation(CREDIT_ENTRIES_KEY, TRANSACTIONS_KEY) as events:
            self._collections[CREDIT_ENTRIES_KEY].insert(0, entry)
            self._collections[TRANSACTIONS_KEY].insert(0, transaction)
            events.append(AuditEventBuilder.credit_given(entry, correlation_id))
            events.append(AuditEventBuilder.transaction_added(transaction, correlation_id))

        return entry.model_copy(deep=True)

    def add_credit_return(
        self,
        credit_id: str,
        amount: Amount,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        card_id: Optional[str] = None,
        note: Optional[str] = None,
        when: Optional[datetime] = None,
    ) -> CreditEntry:
        """
        Record money paid back on a lent credit.

        The return is added to the history, the returned amount grows and
        an income in the Credit Return category lands in the chosen account.

        Raises:
            NotFoundError: No credit entry with that id
            LedgerValidationError: Amount above what is still owed, or
                an invalid account
        """
        entry = self._find(CREDIT_ENTRIES_KEY, credit_id)
        if entry is None:
            raise NotFoundError(f"Credit entry {credit_id} not found")

        amount = _as_decimal(amount)
        self._require_valid(self._validator.validate_credit_return(
            entry.remaining_amount,
            amount,
            payment_method,
            card_id,
            self._collections[CARDS_KEY],
        ))

        now = self._resolve_time(when)
        item = CreditHistoryItem(
            date=now,
            amount=amount,
            type=CreditMovement.RETURNED,
            payment_method=payment_method,
            card_id=card_id,
            note=note,
        )
        updated = entry.model_copy(update={
            "returned_amount": entry.returned_amount + amount,
            "history": [item, *entry.history],
        })
        transaction = Transaction(
            type=TransactionType.INCOME,
            category=CREDIT_RETURN_CATEGORY,
            amount=amount,
            date=now,
            note=f"Credit return from {entry.person_name}",
            payment_method=payment_method,
            card_id=card_id,
            credit_id=entry.id,
            credit_history_id=item.id,
        )

        correlation_id = create_correlation_id()
        with self._mutation(CREDIT_ENTRIES_KEY, TRANSACTIONS_KEY) as events:
            self._replace(CREDIT_ENTRIES_KEY, updated)
            self._collections[TRANSACTIONS_KEY].insert(0, transaction)
            events.append(AuditEventBuilder.credit_return_recorded(updated, item, correlation_id))
            events.append(AuditEventBuilder.transaction_added(transaction, correlation_id))

        return updated.model_copy(deep=True)

    def delete_credit_return_history(self, credit_id: str, history_id: str) -> bool:
        """
        Undo a return on a lent credit together with its income.

        Returns:
            True if reversed, False if the entry or history item is missing

        Raises:
            LedgerConsistencyError: The item records the money being given
        """
        entry = self._find(CREDIT_ENTRIES_KEY, credit_id)
        item = entry.find_history(history_id) if entry else None
        if item is None:
            return False
        if item.type == CreditMovement.GIVEN:
            raise LedgerConsistencyError(
                "The original loan cannot be removed from the history; "
                "delete the credit entry instead"
            )

        updated = entry.model_copy(update={
            "returned_amount": max(entry.returned_amount - item.amount, Decimal("0")),
            "history": [h for h in entry.history if h.id != history_id],
        })

        correlation_id = create_correlation_id()
        with self._mutation(CREDIT_ENTRIES_KEY, TRANSACTIONS_KEY) as events:
            self._replace(CREDIT_ENTRIES_KEY, updated)
            removed = self._remove_transactions(
                lambda t: t.credit_history_id == history_id
            )
            events.append(AuditEventBuilder.credit_return_reversed(updated, item, correlation_id))

        logger.info(
            "credit_return_reversed",
            credit_id=credit_id,
            history_id=history_id,
            removed_transactions=len(removed),
        )
        return True

    def delete_credit_entry(self, credit_id: str) -> bool:
        """
        Delete a lent credit and every transaction linked to it.

        Returns:
            True if deleted, False if not found
        """
        entry = self._find(CREDIT_ENTRIES_KEY, credit_id)
        if entry is None:
            return False

        with self._mutation(CREDIT_ENTRIES_KEY, TRANSACTIONS_KEY) as events:
            self._remove(CREDIT_ENTRIES_KEY, credit_id)
            removed = self._remove_transactions(lambda t: t.credit_id == credit_id)
            events.append(AuditEventBuilder.credit_deleted(entry, removed))

        return True

    # =========================================================================
    # CREDIT RECEIVED
    # =========================================================================

    def add_credit_received_entry(
        self,
        draft: CreditReceivedEntryCreate,
        when: Optional[datetime] = None,
    ) -> CreditReceivedEntry:
        """
        Record money borrowed from someone.

        The money arrives as an income in the Credit Received category,
        in cash or on the chosen card.

        Raises:
            LedgerValidationError: Unknown card
        """
        self._require_valid(self._validator.validate_credit_received(
            draft, self._collections[CARDS_KEY]
        ))

        now = self._resolve_time(when)
        entry = CreditReceivedEntry(**draft.model_dump(), received_date=now)
        transaction = Transaction(
            type=TransactionType.INCOME,
            category=CREDIT_RECEIVED_CATEGORY,
            amount=draft.amount,
            date=now,
            note=f"Credit received from {entry.person_name}",
            payment_method=draft.initial_payment_method,
            card_id=draft.initial_card_id,
            credit_received_id=entry.id,
        )

        correlation_id = create_correlation_id()
        with self._mutation(CREDIT_RECEIVED_ENTRIES_KEY, TRANSACTIONS_KEY) as events:
            self._collections[CREDIT_RECEIVED_ENTRIES_KEY].insert(0, entry)
            self._collections[TRANSACTIONS_KEY].insert(0, transaction)
            events.append(AuditEventBuilder.credit_received(entry, correlation_id))
            events.append(AuditEventBuilder.transaction_added(transaction, correlation_id))

        return entry.model_copy(deep=True)

    def add_credit_received_return(
        self,
        entry_id: str,
        amount: Amount,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        card_id: Optional[str] = None,
        note: Optional[str] = None,
        when: Optional[datetime] = None,
    ) -> CreditReceivedEntry:
        """
        Record a repayment on borrowed money.

        The repayment is paid out of the chosen account as an expense in
        the Credit Return Paid category.

        Raises:
            NotFoundError: No credit received entry with that id
            LedgerValidationError: Amount above what is still owed, an
                invalid account, or not enough money to pay
        """
        entry = self._find(CREDIT_RECEIVED_ENTRIES_KEY, entry_id)
        if entry is None:
            raise NotFoundError(f"Credit received entry {entry_id} not found")

        amount = _as_decimal(amount)
        self._require_valid(self._validator.validate_credit_return(
            entry.remaining_amount,
            amount,
            payment_method,
            card_id,
            self._collections[CARDS_KEY],
            balances=self.balances,
        ))

        now = self._resolve_time(when)
        item = CreditReceivedHistoryItem(
            date=now,
            amount=amount,
            payment_method=payment_method,
            card_id=card_id,
            note=note,
        )
        updated = entry.model_copy(update={
            "returned_amount": entry.returned_amount + amount,
            "history": [item, *entry.history],
        })
        transaction = Transaction(
            type=TransactionType.EXPENSE,
            category=CREDIT_RETURN_PAID_CATEGORY,
            amount=amount,
            date=now,
            note=f"Repayment to {entry.person_name}",
            payment_method=payment_method,
            card_id=card_id,
            credit_received_id=entry.id,
            credit_received_history_id=item.id,
        )

        correlation_id = create_correlation_id()
        with self._mutation(CREDIT_RECEIVED_ENTRIES_KEY, TRANSACTIONS_KEY) as events:
            self._replace(CREDIT_RECEIVED_ENTRIES_KEY, updated)
            self._collections[TRANSACTIONS_KEY].insert(0, transaction)
            events.append(AuditEventBuilder.credit_repayment_recorded(updated, item, correlation_id))
            events.append(AuditEventBuilder.transaction_added(transaction, correlation_id))

        return updated.model_copy(deep=True)

    def delete_credit_received_return_history(self, entry_id: str, history_id: str) -> bool:
        """
        Undo a repayment on borrowed money together with its expense.

        Returns:
            True if reversed, False if the entry or history item is missing
        """
        entry = self._find(CREDIT_RECEIVED_ENTRIES_KEY, entry_id)
        item = entry.find_history(history_id) if entry else None
        if item is None:
            return False

        updated = entry.model_copy(update={
            "returned_amount": max(entry.returned_amount - item.amount, Decimal("0")),
            "history": [h for h in entry.history if h.id != history_id],
        })

        correlation_id = create_correlation_id()
        with self._mutation(CREDIT_RECEIVED_ENTRIES_KEY, TRANSACTIONS_KEY) as events:
            self._replace(CREDIT_RECEIVED_ENTRIES_KEY, updated)
            self._remove_transactions(
                lambda t: t.credit_received_history_id == history_id
            )
            events.append(
                AuditEventBuilder.credit_repayment_reversed(updated, item, correlation_id)
            )

        return True

    def delete_credit_received_entry(self, entry_id: str) -> bool:
        """
        Delete a borrowed credit and every transaction linked to it.

        Returns:
            True if deleted, False if not found
        """
        entry = self._find(CREDIT_RECEIVED_ENTRIES_KEY, entry_id)
        if entry is None:
            return False

        with self._mutation(CREDIT_RECEIVED_ENTRIES_KEY, TRANSACTIONS_KEY) as events:
            self._remove(CREDIT_RECEIVED_ENTRIES_KEY, entry_id)
            removed = self._remove_transactions(
                lambda t: t.credit_received_id == entry_id
            )
            events.append(AuditEventBuilder.credit_received_deleted(entry, removed))

        return True

    # =========================================================================
    # WHOLE LEDGER
    # =========================================================================

    def reset_to_defaults(self) -> None:
        """
        Clear all financial data.

        Transactions, cards and both credit ledgers are emptied; the
        default categories are restored. The owner is kept.
        """
        with self._mutation(*COLLECTION_KEYS) as events:
            self._collections[TRANSACTIONS_KEY] = []
            self._collections[CARDS_KEY] = []
            self._collections[CREDIT_ENTRIES_KEY] = []
            self._collections[CREDIT_RECEIVED_ENTRIES_KEY] = []
            self._collections[CATEGORIES_KEY] = default_categories()
            events.append(AuditEventBuilder.ledger_reset())

    def import_data(
        self,
        transactions: Optional[list[Transaction]] = None,
        categories: Optional[list[Category]] = None,
        cards: Optional[list[CardDetails]] = None,
        credit_entries: Optional[list[CreditEntry]] = None,
        credit_received_entries: Optional[list[CreditReceivedEntry]] = None,
    ) -> None:
        """
        Replace whole collections at once, e.g. to load demo data.

        Collections passed as None are left untouched. The data is taken
        as is; no business-rule validation runs.
        """
        replacements = {
            TRANSACTIONS_KEY: transactions,
            CATEGORIES_KEY: categories,
            CARDS_KEY: cards,
            CREDIT_ENTRIES_KEY: credit_entries,
            CREDIT_RECEIVED_ENTRIES_KEY: credit_received_entries,
        }
        replacements = {k: v for k, v in replacements.items() if v is not None}
        if not replacements:
            return

        with self._mutation(*replacements) as events:
            for key, items in replacements.items():
                self._collections[key] = [item.model_copy(deep=True) for item in items]
            events.append(AuditEventBuilder.ledger_loaded(
                {key: len(items) for key, items in replacements.items()}
            ))

    def reload(self) -> None:
        """
        Re-read every collection from storage.

        Missing or corrupt slots fall back to their defaults (default
        categories, empty otherwise). Nothing is written back.

        Raises:
            StorageError: If the backend cannot be read
        """
        loaded = {
            key: self._persistence.load_collection(
                key, default_categories if key == CATEGORIES_KEY else None
            )
            for key in COLLECTION_KEYS
        }
        loaded[TRANSACTIONS_KEY].sort(key=lambda t: t.date, reverse=True)
        self._collections = loaded
        self._audit.log(AuditEventBuilder.ledger_loaded(
            {key: len(items) for key, items in loaded.items()}
        ))

    # =========================================================================
    # INTERNALS
    # =========================================================================

    @contextmanager
    def _mutation(self, *keys: str) -> Iterator[list[AuditEvent]]:
        """
        Apply a change to some collections atomically.

        Yields a list the caller fills with audit events. On success the
        touched collections are saved and the events logged. If the change
        or the save fails, the collections are restored and the error
        re-raised.
        """
        snapshot = {
            key: [item.model_copy(deep=True) for item in self._collections[key]]
            for key in keys
        }
        events: list[AuditEvent] = []

        try:
            yield events
        except Exception:
            self._collections.update(snapshot)
            raise

        if TRANSACTIONS_KEY in keys:
            self._collections[TRANSACTIONS_KEY].sort(key=lambda t: t.date, reverse=True)

        saved: list[str] = []
        try:
            for key in keys:
                self._persistence.save_collection(key, self._collections[key])
                saved.append(key)
        except StorageError as e:
            failed_key = keys[len(saved)]
            logger.error("ledger_save_failed", key=failed_key, error=str(e))
            self._collections.update(snapshot)
            self._audit.log(AuditEventBuilder.save_failed(failed_key, str(e)))
            self._rollback_saved(saved, snapshot)
            raise

        self._audit.log_many(events)

    def _rollback_saved(self, saved: list[str], snapshot: dict[str, list]) -> None:
        # Slots already written by a failed mutation get their old content back
        for key in saved:
            try:
                self._persistence.save_collection(key, snapshot[key])
            except StorageError as e:
                logger.error("ledger_rollback_failed", key=key, error=str(e))

    def _require_valid(self, result: ValidationResult) -> None:
        if result.warnings:
            logger.warning(
                "validation_warnings",
                operation=result.operation,
                warnings=result.warnings,
            )
        if result.has_errors:
            self._audit.log(AuditEventBuilder.validation_failed(
                result.operation,
                [issue.model_dump() for issue in result.issues],
            ))
            raise LedgerValidationError(result)

    def _resolve_time(self, when: Optional[datetime]) -> datetime:
        if when is None:
            return self._clock()
        if when.tzinfo is None:
            return when.replace(tzinfo=timezone.utc)
        return when

    def _find(self, key: str, item_id: str):
        return next((i for i in self._collections[key] if i.id == item_id), None)

    def _find_category(self, name: str, category_type: TransactionType) -> Category:
        lowered = name.lower()
        return next(
            c for c in self._collections[CATEGORIES_KEY]
            if c.name.lower() == lowered and c.type == category_type
        )

    def _replace(self, key: str, item) -> None:
        items = self._collections[key]
        for index, existing in enumerate(items):
            if existing.id == item.id:
                items[index] = item
                return

    def _redated_credit_entry(self, transaction: Transaction):
        """
        The credit entry a linked transaction mirrors, moved to its new date.

        Returns:
            (collection key, updated entry), or None for an orphan
        """
        if transaction.credit_id:
            key = CREDIT_ENTRIES_KEY
            entry = self._find(key, transaction.credit_id)
        else:
            key = CREDIT_RECEIVED_ENTRIES_KEY
            entry = self._find(key, transaction.credit_received_id)
        if entry is None:
            return None

        history_id = transaction.history_id
        if history_id is None:
            # The initial receipt of a received credit has no history item
            return key, entry.model_copy(update={"received_date": transaction.date})

        item = entry.find_history(history_id)
        if item is None:
            return None

        update = {
            "history": [
                h.model_copy(update={"date": transaction.date}) if h.id == history_id else h
                for h in entry.history
            ]
        }
        if key == CREDIT_ENTRIES_KEY and item.type == CreditMovement.GIVEN:
            update["given_date"] = transaction.date
        return key, entry.model_copy(update=update)

    def _remove(self, key: str, item_id: str) -> None:
        self._collections[key] = [i for i in self._collections[key] if i.id != item_id]

    def _remove_transactions(self, predicate: Callable[[Transaction], bool]) -> list[str]:
        kept, removed = [], []
        for t in self._collections[TRANSACTIONS_KEY]:
            (removed if predicate(t) else kept).append(t)
        self._collections[TRANSACTIONS_KEY] = kept
        return [t.id for t in removed]

    def _copies(self, key: str) -> list:
        return [item.model_copy(deep=True) for item in self._collections[key]]

    @staticmethod
    def _copy_of(item):
        return item.model_copy(deep=True) if item is not None else None
