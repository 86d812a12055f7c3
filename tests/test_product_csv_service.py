"""Tests for product CSV export and import."""

import csv
import io
from decimal import Decimal

import pytest

from app.services.product_csv_service import (
    CSVImportError,
    ProductCSVService,
    format_value,
)
from app.services.product_service import ProductService

from conftest import make_category, make_product


async def _export_rows(db, **kwargs) -> list[list[str]]:
    # Export runs in its own request, so start from an empty identity map
    db.expunge_all()
    lines = await ProductCSVService(db).export_products(**kwargs)
    return list(csv.reader(io.StringIO("".join(lines))))


class TestExport:
    async def test_default_columns_with_labels(self, db_session):
        rice = await make_category(db_session, "Rice")
        await make_product(
            db_session, name="Sona Masoori 10kg", price="900.00",
            discount="10", stock=5, category=rice, sku="PR-SONA-0001",
        )

        header, row = await _export_rows(db_session)

        assert header[:6] == ["Name", "SKU", "Description", "Price", "Discount (%)", "Final Price"]
        record = dict(zip(header, row))
        assert record["SKU"] == "PR-SONA-0001"
        assert record["Final Price"] == "810.00"
        assert record["Stock Status"] == "Low Stock"
        assert record["Category"] == "Rice"
        assert record["Active"] == "true"

    async def test_selected_columns_in_requested_order(self, db_session):
        await make_product(db_session, name="Brown Rice", price="120.00", sku="PR-BROW-0001")

        rows = await _export_rows(db_session, fields=["sku", "price", "status"])

        assert rows[0] == ["SKU", "Price", "Status"]
        assert rows[1] == ["PR-BROW-0001", "120.00", "Active"]

    async def test_filters(self, db_session):
        rice = await make_category(db_session, "Rice")
        await make_product(db_session, name="In Category", category=rice)
        await make_product(db_session, name="Elsewhere")

        rows = await _export_rows(db_session, fields=["name"], category_id=rice.id)

        assert rows == [["Name"], ["In Category"]]

    async def test_unknown_column(self, db_session):
        with pytest.raises(ValueError, match="Unknown export columns"):
            await ProductCSVService(db_session).export_products(fields=["name", "colour"])

    def test_format_value(self):
        assert format_value(None) == ""
        assert format_value(False) == "false"
        assert format_value(["a.jpg", "b.jpg"]) == "a.jpg, b.jpg"
        assert format_value(Decimal("12.50")) == "12.50"


class TestImport:
    async def test_creates_products_and_resolves_category(self, db_session):
        await make_category(db_session, "Rice")
        content = (
            "Name,SKU,Price,Discount (%),Stock,Category,Images,Active\n"
            "Basmati Classic 5kg,PR-BASM-0001,650,5,40,Rice,\"a.jpg, b.jpg\",yes\n"
            "Jeera Rice 1kg,,\"1,200.00\",,12,rice,,\n"
        ).encode("utf-8")

        result = await ProductCSVService(db_session).import_products(content)

        assert result["success_count"] == 2
        assert result["created"] == 2
        assert result["error_count"] == 0

        products = ProductService(db_session)
        basmati = await products.get_product_by_sku("PR-BASM-0001")
        assert basmati.price == Decimal("650.00")
        assert basmati.discount == Decimal("5.00")
        assert basmati.images == ["a.jpg", "b.jpg"]
        assert basmati.slug == "basmati-classic-5kg"
        assert basmati.category_id is not None

        listed, total = await products.get_products(search="Jeera")
        assert total == 1
        assert listed[0].price == Decimal("1200.00")
        assert listed[0].sku

    async def test_existing_sku_is_updated(self, db_session):
        await make_product(db_session, name="Old Name", price="100.00", stock=1, sku="PR-KEEP-0001")
        content = "SKU,Name,Price,Stock\nPR-KEEP-0001,New Name,150.00,30\n"

        result = await ProductCSVService(db_session).import_products(content)

        assert result["updated"] == 1
        assert result["created"] == 0
        product = await ProductService(db_session).get_product_by_sku("PR-KEEP-0001")
        assert product.name == "New Name"
        assert product.stock == 30

    async def test_bad_rows_are_reported_and_skipped(self, db_session):
        content = (
            "Name,Price,Stock,Category\n"
            "Good Row,100,1,\n"
            "No Price,,5,\n"
            "Bad Price,abc,5,\n"
            "Unknown Category,50,5,Spices\n"
        )

        result = await ProductCSVService(db_session).import_products(content)

        assert result["success_count"] == 1
        assert result["error_count"] == 3
        assert result["errors"][0] == "Row 3: Missing required fields (name, price)"
        assert result["errors"][1].startswith("Row 4:")
        assert result["errors"][2].startswith("Row 5:")
        assert "Spices" in result["errors"][2]

    async def test_row_numbers_are_file_line_numbers(self, db_session):
        content = (
            "Name,Price\n"
            "\n"
            "Good Row,100\n"
            "\n"
            "\n"
            "No Price,\n"
        )

        result = await ProductCSVService(db_session).import_products(content)

        assert result["created"] == 1
        assert result["errors"] == ["Row 6: Missing required fields (name, price)"]

    async def test_export_file_imports_back(self, db_session):
        await make_product(db_session, name="Round Trip", price="75.00", stock=20, sku="PR-ROUN-0001")
        service = ProductCSVService(db_session)
        exported = "".join(await service.export_products())

        result = await service.import_products(exported)

        assert result["updated"] == 1
        assert result["error_count"] == 0

    @pytest.mark.parametrize(
        "content, message",
        [
            (b"", "empty"),
            (b"Name,Stock\nRice,5\n", "Missing required columns: Price"),
            (b"Name,Price\n\n", "no data rows"),
            (b"\xff\xfe\x00N", "UTF-8"),
        ],
    )
    async def test_unreadable_files(self, db_session, content, message):
        with pytest.raises(CSVImportError) as exc_info:
            await ProductCSVService(db_session).import_products(content)
        assert message in exc_info.value.message

    async def test_batches_respect_batch_size(self, db_session, monkeypatch):
        from app.config import settings
        monkeypatch.setattr(settings, "CSV_IMPORT_BATCH_SIZE", 2)
        lines = ["Name,Price"] + [f"Product {i},{10 + i}" for i in range(5)]

        result = await ProductCSVService(db_session).import_products("\n".join(lines))

        assert result["created"] == 5
