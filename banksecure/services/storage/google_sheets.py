"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is kept as a storage backend because:
1. Non-technical users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions: a posting appends the transaction rows first, then
  updates balances. If a balance update fails we restore the balances
  already written and delete the appended rows before reporting failure.
- Limited query capabilities (we filter in Python)

One worksheet per entity, one entity per row, header in row 1.
Every cell is written RAW as text and parsed back through the models.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential

from banksecure.config import GoogleSheetsSettings, get_settings
from banksecure.models.ledger import (
    Account,
    AccountCreate,
    Bill,
    BillCreate,
    Budget,
    BudgetCreate,
    Transaction,
    TransactionDraft,
    utcnow,
)
from banksecure.models.audit import AuditEvent, AuditEventType, AuditSeverity
from banksecure.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    StorageError,
)


ACCOUNT_COLUMNS = [
    "id",
    "user_id",
    "name",
    "type",
    "balance",
    "opening_balance",
    "account_number",
    "is_active",
    "created_at",
]

TRANSACTION_COLUMNS = [
    "id",
    "account_id",
    "user_id",
    "amount",
    "description",
    "type",
    "category",
    "reversal_of",
    "date",
    "created_at",
]

BILL_COLUMNS = [
    "id",
    "user_id",
    "name",
    "amount",
    "due_date",
    "is_paid",
    "is_recurring",
    "created_at",
]

BUDGET_COLUMNS = [
    "id",
    "user_id",
    "category",
    "amount",
    "spent",
    "month",
    "year",
    "created_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "user_id",
    "correlation_id",
    "description",
    "details_json",
    "error_code",
    "error_message",
]

# Columns that may legitimately be empty
NULLABLE_COLUMNS = {"category", "reversal_of"}

BALANCE_COLUMN = ACCOUNT_COLUMNS.index("balance") + 1


def _to_cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _to_row(model: BaseModel, columns: list[str]) -> list[str]:
    data = model.model_dump()
    return [_to_cell(data[column]) for column in columns]


def _from_row(model_cls, row: list[str], columns: list[str]):
    values = {}
    for index, column in enumerate(columns):
        cell = row[index] if index < len(row) else ""
        if cell == "" and column in NULLABLE_COLUMNS:
            cell = None
        values[column] = cell
    return model_cls.model_validate(values)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
            except gspread.exceptions.APIError as e:
                raise ConnectionError(f"Failed to open spreadsheet: {e}")
        return self._spreadsheet

    def get_worksheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        """Get a worksheet, creating it with a header row if missing."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            try:
                sheet = spreadsheet.add_worksheet(
                    title=title,
                    rows=rows,
                    cols=len(columns),
                )
                sheet.append_row(columns)
            except gspread.exceptions.APIError as e:
                raise ConnectionError(f"Failed to create worksheet {title}: {e}")
        except gspread.exceptions.APIError as e:
            raise ConnectionError(f"Failed to open worksheet {title}: {e}")
        return sheet

    def accounts_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.accounts_sheet_name, ACCOUNT_COLUMNS)

    def transactions_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(
            self._settings.transactions_sheet_name,
            TRANSACTION_COLUMNS,
            rows=5000,
        )

    def bills_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.bills_sheet_name, BILL_COLUMNS)

    def budgets_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.budgets_sheet_name, BUDGET_COLUMNS)

    def audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self.get_worksheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,
        )


def _fetch_sheet(client: GoogleSheetsClient, name: str) -> gspread.Worksheet:
    """Fetch one of the client's worksheets; any failure is a StorageError."""
    try:
        return getattr(client, f"{name}_sheet")()
    except StorageError:
        raise
    except Exception as e:
        raise ConnectionError(f"Failed to open the {name} worksheet: {e}") from e


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    Ids are allocated as max(existing id) + 1 per worksheet.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _read_rows(self, sheet: gspread.Worksheet) -> list[list[str]]:
        """All data rows (header excluded)."""
        return sheet.get_all_values()[1:]

    @staticmethod
    def _next_id(rows: list[list[str]]) -> int:
        ids = [int(row[0]) for row in rows if row and row[0]]
        return max(ids, default=0) + 1

    @staticmethod
    def _locate(rows: list[list[str]], entity_id: int) -> Optional[tuple[int, list[str]]]:
        """Find an entity's sheet row number (1-based, header is row 1)."""
        for index, row in enumerate(rows, start=2):
            if row and row[0] == str(entity_id):
                return index, row
        return None

    def _get(self, sheet: gspread.Worksheet, model_cls, columns, entity_id: int):
        try:
            found = self._locate(self._read_rows(sheet), entity_id)
            return _from_row(model_cls, found[1], columns) if found else None
        except Exception as e:
            raise StorageError(f"Failed to get {model_cls.__name__.lower()}: {e}")

    def _list(self, sheet: gspread.Worksheet, model_cls, columns, **filters):
        try:
            items = [
                _from_row(model_cls, row, columns)
                for row in self._read_rows(sheet)
                if row and row[0]
            ]
        except Exception as e:
            raise StorageError(f"Failed to list {model_cls.__name__.lower()}s: {e}")

        for key, value in filters.items():
            if value is not None:
                items = [item for item in items if getattr(item, key) == value]
        return sorted(items, key=lambda item: item.id)

    def _append(self, sheet: gspread.Worksheet, model_cls, columns, values: dict):
        try:
            model = model_cls(
                id=self._next_id(self._read_rows(sheet)),
                created_at=utcnow(),
                **values,
            )
            sheet.append_row(_to_row(model, columns), value_input_option="RAW")
            return model
        except Exception as e:
            raise StorageError(f"Failed to save {model_cls.__name__.lower()}: {e}")

    def _update(
        self,
        sheet: gspread.Worksheet,
        model_cls,
        columns,
        entity_id: int,
        fields: dict[str, Any],
    ):
        try:
            found = self._locate(self._read_rows(sheet), entity_id)
            if found is None:
                return None
            index, row = found
            updated = _from_row(model_cls, row, columns).model_copy(update=fields)
            data = updated.model_dump()
            for key in fields:
                sheet.update_cell(index, columns.index(key) + 1, _to_cell(data[key]))
            return updated
        except Exception as e:
            raise StorageError(f"Failed to update {model_cls.__name__.lower()}: {e}")

    # Accounts

    async def insert_account(self, data: AccountCreate) -> Account:
        return self._append(
            _fetch_sheet(self._client, "accounts"),
            Account,
            ACCOUNT_COLUMNS,
            {
                "user_id": data.user_id,
                "name": data.name,
                "type": data.type,
                "balance": data.initial_balance,
                "opening_balance": data.initial_balance,
                "account_number": data.account_number,
                "is_active": data.is_active,
            },
        )

    async def get_account(self, account_id: int) -> Optional[Account]:
        return self._get(_fetch_sheet(self._client, "accounts"), Account, ACCOUNT_COLUMNS, account_id)

    async def list_accounts(self, user_id: int) -> list[Account]:
        return self._list(
            _fetch_sheet(self._client, "accounts"), Account, ACCOUNT_COLUMNS, user_id=user_id
        )

    async def update_account(
        self,
        account_id: int,
        fields: dict[str, Any],
    ) -> Optional[Account]:
        return self._update(
            _fetch_sheet(self._client, "accounts"), Account, ACCOUNT_COLUMNS, account_id, fields
        )

    async def apply_balance_delta(
        self,
        account_id: int,
        delta: Decimal,
    ) -> Optional[Account]:
        sheet = _fetch_sheet(self._client, "accounts")
        try:
            found = self._locate(self._read_rows(sheet), account_id)
            if found is None:
                return None
            index, row = found
            account = _from_row(Account, row, ACCOUNT_COLUMNS)
            updated = account.model_copy(update={"balance": account.balance + delta})
            sheet.update_cell(index, BALANCE_COLUMN, str(updated.balance))
            return updated
        except Exception as e:
            raise StorageError(f"Failed to update balance: {e}")

    # Transactions

    async def commit_postings(
        self,
        drafts: list[TransactionDraft],
    ) -> list[Transaction]:
        transactions_sheet = _fetch_sheet(self._client, "transactions")
        accounts_sheet = _fetch_sheet(self._client, "accounts")

        # Read phase: nothing written yet
        try:
            account_rows = self._read_rows(accounts_sheet)
            located: dict[int, tuple[int, Account]] = {}
            new_balances: dict[int, Decimal] = {}
            for draft in drafts:
                if draft.account_id not in located:
                    found = self._locate(account_rows, draft.account_id)
                    if found is None:
                        raise StorageError(f"Account not found: {draft.account_id}")
                    index, row = found
                    located[draft.account_id] = (
                        index,
                        _from_row(Account, row, ACCOUNT_COLUMNS),
                    )
                current = new_balances.get(
                    draft.account_id, located[draft.account_id][1].balance
                )
                new_balances[draft.account_id] = current + draft.signed_amount

            next_id = self._next_id(self._read_rows(transactions_sheet))
            now = utcnow()
            posted = [
                Transaction(id=next_id + offset, created_at=now, **draft.model_dump())
                for offset, draft in enumerate(drafts)
            ]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to prepare postings: {e}")

        # Write phase: records first, then balances
        try:
            transactions_sheet.append_rows(
                [_to_row(t, TRANSACTION_COLUMNS) for t in posted],
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to append transactions: {e}")

        applied: list[tuple[int, Decimal]] = []
        try:
            for account_id, balance in new_balances.items():
                index, account = located[account_id]
                accounts_sheet.update_cell(index, BALANCE_COLUMN, str(balance))
                applied.append((index, account.balance))
        except Exception as e:
            self._roll_back(transactions_sheet, accounts_sheet, posted, applied, e)
            raise StorageError(f"Balance update failed, posting rolled back: {e}")

        return posted

    def _roll_back(
        self,
        transactions_sheet: gspread.Worksheet,
        accounts_sheet: gspread.Worksheet,
        posted: list[Transaction],
        applied: list[tuple[int, Decimal]],
        cause: Exception,
    ) -> None:
        """Undo a half-written posting: restore balances, drop appended rows."""
        try:
            for index, previous in reversed(applied):
                accounts_sheet.update_cell(index, BALANCE_COLUMN, str(previous))

            posted_ids = {str(t.id) for t in posted}
            indices = [
                index
                for index, row in enumerate(self._read_rows(transactions_sheet), start=2)
                if row and row[0] in posted_ids
            ]
            for index in sorted(indices, reverse=True):
                transactions_sheet.delete_rows(index)
        except Exception as e:
            raise StorageError(
                f"Posting failed ({cause}) and could not be rolled back ({e}); "
                "reconcile the affected accounts"
            ) from e

    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        return self._get(
            _fetch_sheet(self._client, "transactions"),
            Transaction,
            TRANSACTION_COLUMNS,
            transaction_id,
        )

    async def list_transactions(
        self,
        user_id: Optional[int] = None,
        account_id: Optional[int] = None,
    ) -> list[Transaction]:
        return self._list(
            _fetch_sheet(self._client, "transactions"),
            Transaction,
            TRANSACTION_COLUMNS,
            user_id=user_id,
            account_id=account_id,
        )

    # Bills

    async def insert_bill(self, data: BillCreate) -> Bill:
        return self._append(
            _fetch_sheet(self._client, "bills"), Bill, BILL_COLUMNS, data.model_dump()
        )

    async def get_bill(self, bill_id: int) -> Optional[Bill]:
        return self._get(_fetch_sheet(self._client, "bills"), Bill, BILL_COLUMNS, bill_id)

    async def list_bills(self, user_id: int) -> list[Bill]:
        return self._list(_fetch_sheet(self._client, "bills"), Bill, BILL_COLUMNS, user_id=user_id)

    async def update_bill(
        self,
        bill_id: int,
        fields: dict[str, Any],
    ) -> Optional[Bill]:
        return self._update(_fetch_sheet(self._client, "bills"), Bill, BILL_COLUMNS, bill_id, fields)

    async def delete_bill(self, bill_id: int) -> bool:
        sheet = _fetch_sheet(self._client, "bills")
        try:
            found = self._locate(self._read_rows(sheet), bill_id)
            if found is None:
                return False
            sheet.delete_rows(found[0])
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete bill: {e}")

    # Budgets

    async def insert_budget(self, data: BudgetCreate) -> Budget:
        return self._append(
            _fetch_sheet(self._client, "budgets"), Budget, BUDGET_COLUMNS, data.model_dump()
        )

    async def get_budget(self, budget_id: int) -> Optional[Budget]:
        return self._get(_fetch_sheet(self._client, "budgets"), Budget, BUDGET_COLUMNS, budget_id)

    async def list_budgets(self, user_id: int) -> list[Budget]:
        return self._list(
            _fetch_sheet(self._client, "budgets"), Budget, BUDGET_COLUMNS, user_id=user_id
        )

    async def update_budget(
        self,
        budget_id: int,
        fields: dict[str, Any],
    ) -> Optional[Budget]:
        return self._update(
            _fetch_sheet(self._client, "budgets"), Budget, BUDGET_COLUMNS, budget_id, fields
        )


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=int(safe_get(5)) if safe_get(5) else None,
            user_id=int(safe_get(6)) if safe_get(6) else None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_code=safe_get(10) or None,
            error_message=safe_get(11) or None,
        )

    def _read_events(self) -> list[AuditEvent]:
        try:
            rows = _fetch_sheet(self._client, "audit").get_all_values()[1:]
            return [self._row_to_event(row) for row in rows if row and row[0]]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = _fetch_sheet(self._client, "audit")
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: int,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._read_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._read_events()
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
