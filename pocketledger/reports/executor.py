"""
Report Execution Engine

DESIGN DECISION: Reports are READ-ONLY and DETERMINISTIC.
Every figure is computed from the store's current collections at the
moment it is asked for. Nothing here is cached or stored, so a report
can never disagree with the ledger.

Calendar days are evaluated in one configured timezone: a transaction
at 23:30 UTC may belong to the next day in Colombo.
"""

from collections import Counter
from datetime import date, datetime, timedelta, timezone, tzinfo
from decimal import Decimal
from typing import Iterable, Optional, Union

from pocketledger.ledger.store import LedgerStore
from pocketledger.models.ledger import (
    Category,
    CreditEntry,
    CreditReceivedEntry,
    CreditStatus,
    Transaction,
    TransactionType,
    utcnow,
)
from pocketledger.models.reports import (
    CardSearchResult,
    CategorySort,
    CategoryTotal,
    CreditSummary,
    DailyTotals,
    DashboardSummary,
    MonthGroup,
    PendingByPerson,
    PeriodSummary,
    PersonCreditProfile,
    TransactionQuery,
)


ZERO = Decimal("0")

AnyCreditEntry = Union[CreditEntry, CreditReceivedEntry]


class ReportError(Exception):
    """Error while building a report."""
    pass


def is_overdue(entry: AnyCreditEntry, today: date) -> bool:
    """Past its due date and not fully paid back."""
    due = entry.due_date if isinstance(entry, CreditEntry) else entry.return_date
    return due < today and entry.status != CreditStatus.COMPLETED


class ReportExecutor:
    """
    Builds reports over a ledger store.

    GUARANTEES:
    - Only reads from the store
    - Money stays Decimal end to end
    - Empty input gives zero totals, never an error
    """

    def __init__(self, store: LedgerStore, tz: tzinfo = timezone.utc):
        self._store = store
        self._tz = tz

    def local_date(self, moment: datetime) -> date:
        """The calendar day a moment falls on in the report timezone."""
        return moment.astimezone(self._tz).date()

    def today(self) -> date:
        return self.local_date(utcnow())

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def filter_transactions(self, query: TransactionQuery) -> list[Transaction]:
        """List transactions matching a query, in the query's sort order."""
        search = query.search.strip().lower()

        results = [
            t for t in self._store.transactions
            if self._in_period(t, query)
            and (query.type is None or t.type == query.type)
            and (query.category is None or t.category == query.category)
            and (not search or search in t.note.lower() or search in t.category.lower())
        ]

        if query.sort_by == "date-asc":
            results.sort(key=lambda t: t.date)
        elif query.sort_by == "amount-desc":
            results.sort(key=lambda t: t.amount, reverse=True)
        elif query.sort_by == "amount-asc":
            results.sort(key=lambda t: t.amount)
        else:
            results.sort(key=lambda t: t.date, reverse=True)

        return results

    def _in_period(self, transaction: Transaction, query: TransactionQuery) -> bool:
        if query.mode == "all":
            return True

        day = self.local_date(transaction.date)
        if query.mode == "day":
            return day == query.day
        if query.mode == "month":
            return day.strftime("%Y-%m") == query.month
        # Open ranges match everything
        if query.start is None or query.end is None:
            return True
        return query.start <= day <= query.end

    def group_by_month(self, transactions: Iterable[Transaction]) -> list[MonthGroup]:
        """
        Bucket transactions by calendar month.

        Buckets follow the order in which their months first appear, so a
        sorted input gives sorted buckets.
        """
        groups: dict[str, list[Transaction]] = {}
        for t in transactions:
            label = self.local_date(t.date).strftime("%B %Y")
            groups.setdefault(label, []).append(t)
        return [MonthGroup(label=label, transactions=items) for label, items in groups.items()]

    def describe_query(self, query: TransactionQuery) -> str:
        """Human-readable description of what a query selects."""
        desc_parts = ["Transactions"]
        if query.type:
            desc_parts.append(f"of type {query.type.value}")
        if query.category:
            desc_parts.append(f"in {query.category}")
        if query.mode == "day":
            desc_parts.append(self._date_range_str(query.day, query.day))
        elif query.mode == "month":
            first = date.fromisoformat(f"{query.month}-01")
            desc_parts.append(f"in {first.strftime('%B %Y')}")
        elif query.mode == "range":
            desc_parts.append(self._date_range_str(query.start, query.end))
        if query.search.strip():
            desc_parts.append(f"matching '{query.search.strip()}'")
        return " ".join(part for part in desc_parts if part)

    def _date_range_str(
        self,
        date_from: Optional[date],
        date_to: Optional[date],
    ) -> str:
        """Format date range for description."""
        if date_from and date_to:
            if date_from == date_to:
                return f"on {date_from.strftime('%d %b %Y')}"
            elif date_from.year == date_to.year:
                return f"from {date_from.strftime('%d %b')} to {date_to.strftime('%d %b %Y')}"
            else:
                return f"from {date_from.strftime('%d %b %Y')} to {date_to.strftime('%d %b %Y')}"
        elif date_from:
            return f"from {date_from.strftime('%d %b %Y')}"
        elif date_to:
            return f"until {date_to.strftime('%d %b %Y')}"
        return ""

    # =========================================================================
    # SUMMARIES AND TRENDS
    # =========================================================================

    def period_summary(self, query: TransactionQuery) -> PeriodSummary:
        """Income, expense and expense per category for a period."""
        transactions = self.filter_transactions(query)

        income = ZERO
        expense = ZERO
        by_category: dict[str, Decimal] = {}
        for t in transactions:
            if t.type == TransactionType.INCOME:
                income += t.amount
            else:
                expense += t.amount
                by_category[t.category] = by_category.get(t.category, ZERO) + t.amount

        # Stable sort keeps first-seen order between equal totals
        ranked = sorted(by_category.items(), key=lambda item: item[1], reverse=True)
        return PeriodSummary(
            income=income,
            expense=expense,
            transaction_count=len(transactions),
            expense_by_category=[
                CategoryTotal(category=name, amount=amount) for name, amount in ranked
            ],
        )

    def daily_trend(self, start: date, end: date) -> list[DailyTotals]:
        """
        Income and expense per day from start to end, inclusive.

        A single day has no trend and gives an empty list.

        Raises:
            ReportError: start is after end
        """
        if start > end:
            raise ReportError(f"Trend start {start} is after its end {end}")
        if start == end:
            return []
        return self._daily_totals(start, end, lambda d: f"{d.strftime('%b')} {d.day}")

    def month_trend(self, month: str) -> list[DailyTotals]:
        """Daily trend over every day of a YYYY-MM month."""
        try:
            first = date.fromisoformat(f"{month}-01")
        except ValueError as e:
            raise ReportError(f"Invalid month: {month!r}") from e
        following = (first.replace(day=28) + timedelta(days=4)).replace(day=1)
        return self.daily_trend(first, following - timedelta(days=1))

    def weekly_activity(self, today: Optional[date] = None) -> list[DailyTotals]:
        """The last seven days up to and including today, oldest first."""
        today = today or self.today()
        return self._daily_totals(
            today - timedelta(days=6), today, lambda d: d.strftime("%a")
        )

    def _daily_totals(self, start: date, end: date, label) -> list[DailyTotals]:
        days: dict[date, DailyTotals] = {}
        current = start
        while current <= end:
            days[current] = DailyTotals(day=current, label=label(current))
            current += timedelta(days=1)

        for t in self._store.transactions:
            totals = days.get(self.local_date(t.date))
            if totals is None:
                continue
            if t.type == TransactionType.INCOME:
                totals.income += t.amount
            else:
                totals.expense += t.amount

        return list(days.values())

    # =========================================================================
    # CREDIT
    # =========================================================================

    def credit_lent_summary(self) -> CreditSummary:
        return self._credit_summary(self._store.credit_entries)

    def credit_received_summary(self) -> CreditSummary:
        return self._credit_summary(self._store.credit_received_entries)

    def _credit_summary(self, entries: list[AnyCreditEntry]) -> CreditSummary:
        frequency = Counter(e.person_name for e in entries)
        most_frequent = frequency.most_common(1)
        return CreditSummary(
            total_amount=sum((e.amount for e in entries), ZERO),
            total_returned=sum((e.returned_amount for e in entries), ZERO),
            entry_count=len(entries),
            most_frequent_person=most_frequent[0][0] if most_frequent else None,
        )

    def top_pending_credits(self, limit: int = 3) -> list[PendingByPerson]:
        """People who owe me the most, largest first."""
        pending: dict[str, Decimal] = {}
        for e in self._store.credit_entries:
            if e.status != CreditStatus.COMPLETED:
                pending[e.person_name] = pending.get(e.person_name, ZERO) + e.remaining_amount

        ranked = sorted(pending.items(), key=lambda item: item[1], reverse=True)
        return [
            PendingByPerson(person_name=name, pending_amount=amount)
            for name, amount in ranked[:limit]
        ]

    def person_profile(self, person_name: str) -> PersonCreditProfile:
        """Everything lent to one person (exact name match)."""
        entries = sorted(
            (e for e in self._store.credit_entries if e.person_name == person_name),
            key=lambda e: e.given_date,
            reverse=True,
        )
        return PersonCreditProfile(
            person_name=person_name,
            entries=entries,
            total_lent=sum((e.amount for e in entries), ZERO),
            total_returned=sum((e.returned_amount for e in entries), ZERO),
        )

    def search_credit_entries(self, term: str = "") -> list[CreditEntry]:
        term = term.strip().lower()
        return [e for e in self._store.credit_entries if term in e.person_name.lower()]

    def search_credit_received_entries(self, term: str = "") -> list[CreditReceivedEntry]:
        term = term.strip().lower()
        return [
            e for e in self._store.credit_received_entries
            if term in e.person_name.lower()
        ]

    def overdue_credits(self, today: Optional[date] = None) -> list[AnyCreditEntry]:
        """Entries of both ledgers past their due date and not completed."""
        today = today or self.today()
        return [
            e for e in [*self._store.credit_entries, *self._store.credit_received_entries]
            if is_overdue(e, today)
        ]

    # =========================================================================
    # DASHBOARD AND LOOKUPS
    # =========================================================================

    def dashboard_summary(self, today: Optional[date] = None) -> DashboardSummary:
        today = today or self.today()
        balances = self._store.balances

        todays_income = ZERO
        todays_expense = ZERO
        for t in self._store.transactions:
            if self.local_date(t.date) != today:
                continue
            if t.type == TransactionType.INCOME:
                todays_income += t.amount
            else:
                todays_expense += t.amount

        return DashboardSummary(
            total_balance=sum(balances.values(), ZERO),
            balances=balances,
            pending_credit_lent=sum(
                (e.remaining_amount for e in self._store.credit_entries
                 if e.status != CreditStatus.COMPLETED),
                ZERO,
            ),
            pending_credit_received=sum(
                (e.remaining_amount for e in self._store.credit_received_entries
                 if e.status != CreditStatus.COMPLETED),
                ZERO,
            ),
            todays_income=todays_income,
            todays_expense=todays_expense,
            top_pending_credits=self.top_pending_credits(),
        )

    def search_categories(
        self,
        term: str = "",
        sort_by: CategorySort = "name-asc",
    ) -> list[Category]:
        """Categories whose name contains term, sorted."""
        term = term.strip().lower()
        categories = [c for c in self._store.categories if term in c.name.lower()]

        if sort_by == "name-desc":
            categories.sort(key=lambda c: c.name.lower(), reverse=True)
        elif sort_by == "type-asc":
            categories.sort(key=lambda c: c.type.value)
        elif sort_by == "type-desc":
            categories.sort(key=lambda c: c.type.value, reverse=True)
        else:
            categories.sort(key=lambda c: c.name.lower())
        return categories

    def search_cards(self, term: str = "") -> list[CardSearchResult]:
        """Wallet cards whose name contains term, with their balances."""
        term = term.strip().lower()
        balances = self._store.balances
        return [
            CardSearchResult(card=card, balance=balances.get(card.id, ZERO))
            for card in self._store.cards
            if term in card.card_name.lower()
        ]
