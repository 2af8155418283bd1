"""Ledger domain errors."""

from pocketledger.models.ledger import ValidationResult


class LedgerError(Exception):
    """Base exception for ledger rule violations."""
    pass


class CardInUseError(LedgerError):
    """A card is still referenced by transactions or credit entries."""

    def __init__(self, card_id: str, references: int):
        self.card_id = card_id
        self.references = references
        super().__init__(
            f"Cannot delete card {card_id}. It is linked to {references} "
            "transactions or credit entries."
        )


class ReservedCategoryError(LedgerError):
    """A credit ledger category was about to be deleted, renamed or reused."""
    pass


class LedgerConsistencyError(LedgerError):
    """The change would break the link between a credit entry and its transactions."""
    pass


class LedgerValidationError(LedgerError):
    """A draft failed validation against the current ledger."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = [i.message for i in result.issues if i.severity == "error"]
        super().__init__("; ".join(messages) or f"{result.operation} is invalid")
