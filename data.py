# data.py
# Local JSON persistence: the storage collaborator the engine reads and writes through

import json
import logging
from typing import Any, List, Optional
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from config import (
    DATA_DIR,
    BILLS_FILE, INCOMES_FILE, PAYMENT_SOURCES_FILE, MONTHS_DIR,
    EMPTY_BILLS, EMPTY_INCOMES, EMPTY_PAYMENT_SOURCES,
)
from errors import NotFoundError, StorageError
from helpers import parse_month
from models import MonthRecord, PaymentSource, Template, TemplateKind, TEMPLATE_MODELS

logger = logging.getLogger(__name__)

TEMPLATE_FILES = {
    TemplateKind.BILL: (BILLS_FILE, EMPTY_BILLS),
    TemplateKind.INCOME: (INCOMES_FILE, EMPTY_INCOMES),
}

def _read_json(path: Path, default):
    if not path.exists():
        return json.loads(json.dumps(default))
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to read {path}: {e}")
        raise StorageError(f"Failed to read {path.name}", path=str(path)) from e

def _write_json(path: Path, obj):
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(obj, f, ensure_ascii=False, indent=2)
        tmp.replace(path)
    except OSError as e:
        logger.error(f"Failed to write {path}: {e}")
        raise StorageError(f"Failed to write {path.name}", path=str(path)) from e

def _parse(model, raw: Any, path: Path):
    try:
        return model.model_validate(raw)
    except PydanticValidationError as e:
        logger.error(f"Corrupt record in {path}: {e}")
        raise StorageError(f"Corrupt record in {path.name}", path=str(path)) from e


class JsonStorage:
    """
    One JSON document per entity collection plus one per month:

        <data_dir>/bills.json
        <data_dir>/incomes.json
        <data_dir>/payment_sources.json
        <data_dir>/months/YYYY-MM.json
    """

    def __init__(self, data_dir: Optional[Path] = None):
        self.data_dir = Path(data_dir) if data_dir is not None else DATA_DIR

    def _month_path(self, month: str) -> Path:
        parse_month(month)
        return self.data_dir / MONTHS_DIR / f"{month}.json"

    # ---------- Templates ----------
    def load_templates(self, kind: TemplateKind) -> List[Template]:
        kind = TemplateKind(kind)
        filename, default = TEMPLATE_FILES[kind]
        path = self.data_dir / filename
        model = TEMPLATE_MODELS[kind]
        return [_parse(model, raw, path) for raw in _read_json(path, default)]

    def save_templates(self, kind: TemplateKind, items: List[Template]) -> None:
        filename, _ = TEMPLATE_FILES[TemplateKind(kind)]
        _write_json(self.data_dir / filename, [t.model_dump(mode="json") for t in items])

    # ---------- Payment sources ----------
    def load_payment_sources(self) -> List[PaymentSource]:
        path = self.data_dir / PAYMENT_SOURCES_FILE
        return [_parse(PaymentSource, raw, path) for raw in _read_json(path, EMPTY_PAYMENT_SOURCES)]

    def save_payment_sources(self, items: List[PaymentSource]) -> None:
        _write_json(self.data_dir / PAYMENT_SOURCES_FILE, [s.model_dump(mode="json") for s in items])

    def load_payment_source(self, source_id: str) -> PaymentSource:
        for source in self.load_payment_sources():
            if source.id == source_id:
                return source
        raise NotFoundError("Payment source", source_id)

    def save_payment_source(self, source: PaymentSource) -> None:
        """Replace the stored source with the same id in place, or append it."""
        sources = self.load_payment_sources()
        for i, existing in enumerate(sources):
            if existing.id == source.id:
                sources[i] = source
                break
        else:
            sources.append(source)
        self.save_payment_sources(sources)

    # ---------- Months ----------
    def load_month(self, month: str) -> Optional[MonthRecord]:
        path = self._month_path(month)
        raw = _read_json(path, None)
        if raw is None:
            return None
        return _parse(MonthRecord, raw, path)

    def save_month(self, record: MonthRecord) -> None:
        _write_json(self._month_path(record.month), record.model_dump(mode="json"))
