"""
Product CSV Import/Export Service

Bulk catalogue maintenance for admins:
- Export: CSV with a header row of configured column labels, restricted to the
  chosen columns and filters
- Import: CSV with the same labels; rows are validated, transformed and
  upserted by SKU in batches

Column labels are defined once in PRODUCT_COLUMNS so an exported file can be
edited and imported back unchanged. Export-only (derived) columns are ignored
on import.
"""

import csv
import io
import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Dict, Any, List, Callable, Iterator, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.product import Product
from app.services.product_service import ProductService, slugify

logger = logging.getLogger(__name__)


class CSVImportError(Exception):
    """The file as a whole cannot be imported (encoding, header)."""
    def __init__(self, message: str, row_number: int = None, details: Dict = None):
        self.message = message
        self.row_number = row_number
        self.details = details or {}
        super().__init__(self.message)


class CSVRowError(Exception):
    """A single row failed validation; the import continues with the next row."""
    pass


# ==================== Field transforms ====================

TRUE_VALUES = {"true", "1", "yes", "y", "active"}
FALSE_VALUES = {"false", "0", "no", "n", "inactive"}


def parse_decimal(value: str, label: str) -> Decimal:
    cleaned = value.replace(",", "").replace("₹", "").strip()
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise CSVRowError(f"{label} '{value}' is not a number")
    if not amount.is_finite() or amount < 0:
        raise CSVRowError(f"{label} must be a non-negative number")
    return amount.quantize(Decimal("0.01"))


def parse_int(value: str, label: str) -> int:
    try:
        number = int(Decimal(value.replace(",", "").strip()))
    except (InvalidOperation, ValueError):
        raise CSVRowError(f"{label} '{value}' is not a whole number")
    if number < 0:
        raise CSVRowError(f"{label} cannot be negative")
    return number


def parse_bool(value: str, label: str) -> bool:
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise CSVRowError(f"{label} must be true/false, got '{value}'")


def parse_images(value: str, label: str) -> List[str]:
    return [url.strip() for url in value.split(",") if url.strip()]


def parse_text(value: str, label: str) -> str:
    return value.strip()


def format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True)
class CSVColumn:
    """One CSV column: model field, header label, import transform, export getter."""
    field: str
    label: str
    parse: Optional[Callable[[str, str], Any]] = None
    export: Optional[Callable[[Product], Any]] = None

    @property
    def importable(self) -> bool:
        return self.parse is not None

    def value_for(self, product: Product) -> str:
        if self.export is not None:
            return format_value(self.export(product))
        return format_value(getattr(product, self.field, None))


PRODUCT_COLUMNS: List[CSVColumn] = [
    CSVColumn("id", "ID"),
    CSVColumn("name", "Name", parse_text),
    CSVColumn("sku", "SKU", parse_text),
    CSVColumn("slug", "Slug", parse_text),
    CSVColumn("description", "Description", parse_text),
    CSVColumn("price", "Price", parse_decimal),
    CSVColumn("discount", "Discount (%)", parse_decimal),
    CSVColumn("final_price", "Final Price", export=lambda p: p.final_price),
    CSVColumn("stock", "Stock", parse_int),
    CSVColumn("stock_status", "Stock Status", export=lambda p: p.stock_status),
    CSVColumn("category", "Category", parse_text, export=lambda p: p.category_name),
    CSVColumn("category_id", "Category ID", parse_text),
    CSVColumn("brand", "Brand", parse_text),
    CSVColumn("origin", "Origin", parse_text),
    CSVColumn("weight", "Weight", parse_text),
    CSVColumn("images", "Images", parse_images),
    CSVColumn("is_active", "Active", parse_bool),
    CSVColumn("status", "Status", export=lambda p: "Active" if p.is_active else "Inactive"),
    CSVColumn("created_at", "Created At"),
]

COLUMNS_BY_FIELD: Dict[str, CSVColumn] = {c.field: c for c in PRODUCT_COLUMNS}
REQUIRED_IMPORT_FIELDS = ("name", "price")
DEFAULT_EXPORT_FIELDS = [
    "name", "sku", "description", "price", "discount", "final_price",
    "stock", "stock_status", "category", "brand", "origin", "weight",
    "images", "is_active",
]


class ProductCSVService:
    """Service for product CSV import and export."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.products = ProductService(db)

    # ==================== Export ====================

    def resolve_columns(self, fields: Optional[List[str]]) -> List[CSVColumn]:
        """Columns to export, in the order requested. Unknown names raise ValueError."""
        if not fields:
            fields = DEFAULT_EXPORT_FIELDS
        unknown = [f for f in fields if f not in COLUMNS_BY_FIELD]
        if unknown:
            raise ValueError(f"Unknown export columns: {', '.join(unknown)}")
        return [COLUMNS_BY_FIELD[f] for f in fields]

    async def export_products(
        self,
        fields: Optional[List[str]] = None,
        category_id: Optional[UUID] = None,
        is_active: Optional[bool] = None,
        limit: Optional[int] = None,
    ) -> Iterator[str]:
        """
        Fetch matching products and return an iterator of CSV lines
        (header first), suitable for a streaming response.
        """
        columns = self.resolve_columns(fields)
        limit = min(limit or settings.CSV_EXPORT_LIMIT, settings.CSV_EXPORT_LIMIT)

        products, _ = await self.products.get_products(
            category_id=category_id,
            is_active=is_active,
            skip=0,
            limit=limit,
        )
        logger.info(f"Exporting {len(products)} products, columns: {[c.field for c in columns]}")
        return self._iter_csv(columns, products)

    def _iter_csv(self, columns: List[CSVColumn], products: List[Product]) -> Iterator[str]:
        buffer = io.StringIO()
        writer = csv.writer(buffer)

        def flush() -> str:
            data = buffer.getvalue()
            buffer.seek(0)
            buffer.truncate(0)
            return data

        writer.writerow([c.label for c in columns])
        yield flush()
        for product in products:
            writer.writerow([c.value_for(product) for c in columns])
            yield flush()

    # ==================== Import ====================

    def _map_header(self, header: List[str]) -> Dict[int, CSVColumn]:
        """Map header positions to importable columns by label (or field name)."""
        lookup: Dict[str, CSVColumn] = {}
        for column in PRODUCT_COLUMNS:
            lookup[column.label.lower()] = column
            lookup[column.field.lower()] = column

        mapping: Dict[int, CSVColumn] = {}
        for index, name in enumerate(header):
            column = lookup.get(name.strip().lower())
            if column and column.importable:
                mapping[index] = column

        present = {c.field for c in mapping.values()}
        missing = [COLUMNS_BY_FIELD[f].label for f in REQUIRED_IMPORT_FIELDS if f not in present]
        if missing:
            raise CSVImportError(
                f"Missing required columns: {', '.join(missing)}",
                row_number=1,
                details={"header": header},
            )
        return mapping

    def parse_csv(self, content: bytes | str) -> List[Tuple[int, Dict[str, str]]]:
        """
        Decode the file and return ``(line_number, raw)`` per data row.

        ``line_number`` is the physical line the row ended on (header is line 1),
        so blank lines and quoted multi-line cells keep error messages pointing
        at the right place in the file.
        """
        if isinstance(content, bytes):
            try:
                content = content.decode("utf-8-sig")
            except UnicodeDecodeError:
                raise CSVImportError("File must be UTF-8 encoded CSV")

        reader = csv.reader(io.StringIO(content))
        try:
            header = next(reader)
        except StopIteration:
            raise CSVImportError("CSV file is empty")

        mapping = self._map_header(header)
        rows = []
        for values in reader:
            if not any(v.strip() for v in values):
                continue
            rows.append((reader.line_num, {
                column.field: values[index]
                for index, column in mapping.items()
                if index < len(values)
            }))
        if not rows:
            raise CSVImportError("CSV file has no data rows")
        return rows

    async def _transform_row(self, raw: Dict[str, str]) -> Dict[str, Any]:
        """Validate required fields and apply per-field transforms."""
        data: Dict[str, Any] = {}
        for field, text in raw.items():
            column = COLUMNS_BY_FIELD[field]
            if text is None or not text.strip():
                continue
            data[field] = column.parse(text, column.label)

        for field in REQUIRED_IMPORT_FIELDS:
            if field not in data or data[field] in ("", None):
                raise CSVRowError("Missing required fields (name, price)")

        if "discount" in data and data["discount"] > 100:
            raise CSVRowError("Discount (%) cannot exceed 100")

        category_ref = data.pop("category_id", None) or data.pop("category", None)
        data.pop("category", None)
        if category_ref:
            category = await self.products.find_category(category_ref)
            if category is None:
                raise CSVRowError(f"Category '{category_ref}' not found")
            data["category_id"] = category.id

        if "slug" in data:
            data["slug"] = slugify(data["slug"])
        return data

    async def _upsert(self, data: Dict[str, Any]) -> bool:
        """Create or update by SKU. Returns True when a new product was created."""
        sku = data.get("sku")
        existing = await self.products.get_product_by_sku(sku) if sku else None

        if existing is None:
            if not sku:
                data["sku"] = await self.products.unique_sku(data["name"])
            data["slug"] = await self.products.unique_slug(data.get("slug") or data["name"])
            product = Product(**data)
            self.db.add(product)
            await self.db.flush()
            return True

        if "slug" in data and data["slug"] != existing.slug:
            data["slug"] = await self.products.unique_slug(data["slug"], exclude_id=existing.id)
        for field, value in data.items():
            setattr(existing, field, value)
        await self.db.flush()
        return False

    async def import_products(self, content: bytes | str) -> Dict[str, Any]:
        """
        Import products from CSV.

        Rows are processed in batches of CSV_IMPORT_BATCH_SIZE, each batch in
        its own savepoint. A bad row is reported and skipped; a database error
        rolls back only its batch. At most CSV_IMPORT_MAX_ERRORS messages are
        returned.
        """
        rows = self.parse_csv(content)
        batch_size = settings.CSV_IMPORT_BATCH_SIZE

        success_count = 0
        error_count = 0
        created = 0
        updated = 0
        errors: List[str] = []

        for start in range(0, len(rows), batch_size):
            batch = rows[start:start + batch_size]
            batch_created = 0
            batch_updated = 0
            batch_errors: List[str] = []
            try:
                async with self.db.begin_nested():
                    for row_number, raw in batch:
                        try:
                            data = await self._transform_row(raw)
                        except CSVRowError as e:
                            batch_errors.append(f"Row {row_number}: {e}")
                            continue
                        if await self._upsert(data):
                            batch_created += 1
                        else:
                            batch_updated += 1
            except SQLAlchemyError as e:
                batch_number = start // batch_size + 1
                logger.error(f"CSV import batch {batch_number} rolled back: {e}")
                errors.append(f"Batch {batch_number}: database error, {len(batch)} rows not imported")
                error_count += len(batch)
                continue

            created += batch_created
            updated += batch_updated
            success_count += batch_created + batch_updated
            error_count += len(batch_errors)
            errors.extend(batch_errors)

        logger.info(
            f"CSV import finished: {success_count} imported ({created} created, "
            f"{updated} updated), {error_count} failed"
        )
        return {
            "success_count": success_count,
            "error_count": error_count,
            "created": created,
            "updated": updated,
            "errors": errors[:settings.CSV_IMPORT_MAX_ERRORS],
        }
