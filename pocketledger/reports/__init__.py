"""Read-only reports over the ledger."""

from pocketledger.reports.executor import ReportError, ReportExecutor, is_overdue

__all__ = ["ReportError", "ReportExecutor", "is_overdue"]
