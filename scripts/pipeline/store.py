"""
Deal Desk — Deal Stores
=========================

Storage collaborators for the pipeline service.

InMemoryDealStore keeps deals in a dict guarded by an RLock and hands out
copies, so callers never share mutable state with the store. CsvDealStore
adds a spreadsheet-style CSV sheet on disk with:
  - atomic writes (temp file + rename)
  - a .lock file held for the duration of a save
  - rotating timestamped .bak copies of the previous sheet
  - a .meta.json sidecar recording the schema version

Schema versions:
    1.0  core deal columns
    1.1  + servicePlan, lastServiceDate, nextServiceDueDate
    1.2  + promoterId, promoCode, promoterCommission, commissionPaid, commissionPaidDate
Older sheets load with the missing columns left empty.
"""
from __future__ import annotations

import csv
import io
import json
import os
import shutil
import threading
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from models.deal_models import DATE_FIELDS, Deal, DealFilter, split_tags
from scripts.lib.errors import DataFetchError, SchemaValidationError, StoreLockedError
from scripts.lib.logger import setup_logger
from scripts.lib.utils import atomic_write_json, atomic_write_text, retry_on_exception
from scripts.pipeline.filters import matches
from scripts.pipeline.normalizer import parse_amount, parse_date, parse_probability

logger = setup_logger(__name__)

SCHEMA_VERSION = "1.2"

COLUMNS: List[str] = [
    field.alias or to_camel(name) for name, field in Deal.model_fields.items()
] + ["weightedAmountGBP"]

_MONEY_COLUMNS = {"amountGBP", "promoterCommission"}
_DATE_COLUMNS = {to_camel(name) for name in DATE_FIELDS}
_READ_ONLY_COLUMNS = {"weightedAmountGBP"}


def _key(deal_id: str) -> str:
    return deal_id.strip().lower()


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

class InMemoryDealStore:
    """Thread-safe dict of deals keyed by case-insensitive id."""

    persistent = False

    def __init__(self, deals: Iterable[Deal] = None):
        self._lock = threading.RLock()
        self._deals: Dict[str, Deal] = {}
        if deals:
            self.load(deals)

    def get_all(self) -> List[Deal]:
        with self._lock:
            return [d.model_copy(deep=True) for d in self._deals.values()]

    def get(self, deal_id: str) -> Optional[Deal]:
        if not deal_id:
            return None
        with self._lock:
            deal = self._deals.get(_key(deal_id))
            return deal.model_copy(deep=True) if deal else None

    def upsert(self, deal: Deal) -> Deal:
        if not deal.deal_id.strip():
            raise ValueError("Deal must have a deal_id before it is stored")
        stored = deal.model_copy(deep=True)
        with self._lock:
            self._deals[_key(deal.deal_id)] = stored
        return stored.model_copy(deep=True)

    def upsert_many(self, deals: Iterable[Deal]) -> int:
        count = 0
        with self._lock:
            for deal in deals:
                self.upsert(deal)
                count += 1
        return count

    def delete(self, deal_id: str) -> bool:
        if not deal_id:
            return False
        with self._lock:
            return self._deals.pop(_key(deal_id), None) is not None

    def query(self, deal_filter: Optional[DealFilter], reference_date: date) -> List[Deal]:
        return [d for d in self.get_all() if matches(d, deal_filter, reference_date)]

    def clear(self) -> None:
        with self._lock:
            self._deals.clear()

    def load(self, deals: Iterable[Deal]) -> int:
        """Replace the store contents."""
        with self._lock:
            self._deals.clear()
            return self.upsert_many(deals)

    def count(self) -> int:
        with self._lock:
            return len(self._deals)


# ---------------------------------------------------------------------------
# CSV sheet store
# ---------------------------------------------------------------------------

def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return str(value)


def deal_to_row(deal: Deal) -> Dict[str, str]:
    data = deal.model_dump(by_alias=True)
    return {column: _cell(data.get(column)) for column in COLUMNS}


def row_to_deal(row: Dict[str, str]) -> Deal:
    """Convert one sheet row into a Deal, parsing cells like user input."""
    data: Dict[str, Any] = {}
    for column, raw in row.items():
        if column is None or column in _READ_ONLY_COLUMNS or column not in COLUMNS:
            continue
        text = (raw or "").strip()
        if not text:
            continue
        if column in _MONEY_COLUMNS:
            data[column] = parse_amount(text)
        elif column in _DATE_COLUMNS:
            data[column] = parse_date(text)
        elif column == "probability":
            data[column] = parse_probability(text)
        elif column == "commissionPaid":
            data[column] = text.lower() in ("true", "yes", "y", "1")
        elif column == "tags":
            data[column] = split_tags(text)
        else:
            data[column] = text
    return Deal.model_validate(data)


class CsvDealStore(InMemoryDealStore):
    """In-memory store persisted to a CSV sheet."""

    persistent = True

    def __init__(self, path: str | Path, backup_count: int = 5, autoload: bool = True):
        super().__init__()
        self.path = Path(path)
        self.backup_count = backup_count
        if autoload:
            self.reload()

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(self.path.name + ".lock")

    @property
    def meta_path(self) -> Path:
        return self.path.with_suffix(".meta.json")

    # --- Reading ---

    def read_sheet(self) -> List[Deal]:
        if not self.path.exists():
            logger.info("No sheet at %s, starting empty", self.path)
            return []
        try:
            with open(self.path, "r", encoding="utf-8-sig", newline="") as f:
                reader = csv.DictReader(f)
                header = reader.fieldnames or []
                if "dealId" not in header:
                    raise SchemaValidationError(
                        f"Sheet {self.path.name} has no dealId column", field="dealId",
                    )
                missing = [c for c in COLUMNS if c not in header and c not in _READ_ONLY_COLUMNS]
                if missing:
                    logger.info("Sheet %s predates columns: %s", self.path.name, ", ".join(missing))
                deals = []
                for line_no, row in enumerate(reader, start=2):
                    try:
                        deals.append(row_to_deal(row))
                    except ValidationError as e:
                        raise SchemaValidationError(
                            f"Row {line_no} of {self.path.name} is invalid: {e}",
                        ) from e
        except OSError as e:
            raise DataFetchError(f"Could not read {self.path}: {e}", source=str(self.path)) from e
        return deals

    def reload(self) -> int:
        deals = []
        for deal in self.read_sheet():
            if not deal.deal_id.strip():
                logger.warning("Skipping %r in %s: no dealId", deal.deal_name, self.path.name)
                continue
            deals.append(deal)
        count = self.load(deals)
        logger.info("Loaded %d deals from %s", count, self.path)
        return count

    def schema_version(self) -> Optional[str]:
        if not self.meta_path.exists():
            return None
        with open(self.meta_path, "r", encoding="utf-8") as f:
            return json.load(f).get("schemaVersion")

    # --- Writing ---

    @retry_on_exception(max_attempts=3, delay=0.2, exceptions=(StoreLockedError,))
    def _acquire_lock(self) -> None:
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError as e:
            raise StoreLockedError(str(self.lock_path)) from e
        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))

    def _release_lock(self) -> None:
        try:
            self.lock_path.unlink()
        except FileNotFoundError:
            logger.warning("Lock file %s already removed", self.lock_path)

    def save(self) -> int:
        """Write all deals to the sheet. Returns the number written."""
        deals = self.get_all()
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=COLUMNS, lineterminator="\n")
        writer.writeheader()
        for deal in deals:
            writer.writerow(deal_to_row(deal))

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._acquire_lock()
        try:
            if self.path.exists():
                self._backup()
            try:
                atomic_write_text(buffer.getvalue(), self.path)
            except OSError as e:
                raise DataFetchError(
                    f"Could not write {self.path}: {e}", source=str(self.path),
                ) from e
            atomic_write_json({
                "schemaVersion": SCHEMA_VERSION,
                "savedAt": datetime.now(timezone.utc).isoformat(),
                "dealCount": len(deals),
                "columns": COLUMNS,
            }, self.meta_path)
        finally:
            self._release_lock()

        logger.info("Saved %d deals to %s", len(deals), self.path)
        return len(deals)

    # --- Backups ---

    def list_backups(self) -> List[Path]:
        """Backups oldest first."""
        pattern = f"{self.path.stem}.*{self.path.suffix}.bak"
        return sorted(self.path.parent.glob(pattern))

    def _backup(self) -> Optional[Path]:
        if self.backup_count <= 0:
            return None
        stamp = datetime.now().strftime("%Y%m%d%H%M%S%f")
        target = self.path.with_name(f"{self.path.stem}.{stamp}{self.path.suffix}.bak")
        shutil.copy2(self.path, target)
        backups = self.list_backups()
        for old in backups[:-self.backup_count]:
            old.unlink()
            logger.debug("Pruned backup %s", old.name)
        return target

    def restore_latest_backup(self) -> Optional[Path]:
        """Copy the newest backup over the sheet and reload it."""
        backups = self.list_backups()
        if not backups:
            logger.warning("No backups found for %s", self.path)
            return None
        latest = backups[-1]
        self._acquire_lock()
        try:
            shutil.copy2(latest, self.path)
        finally:
            self._release_lock()
        self.reload()
        logger.info("Restored %s from %s", self.path.name, latest.name)
        return latest
