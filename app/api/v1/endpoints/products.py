from datetime import datetime, timezone
from typing import Optional
import uuid

from fastapi import APIRouter, HTTPException, status, Query, UploadFile, File
from fastapi.responses import StreamingResponse

from app.api.deps import DB, AdminUser
from app.schemas.base import page_count
from app.schemas.product import (
    ProductCreate,
    ProductUpdate,
    ProductResponse,
    ProductListResponse,
    ProductImportResult,
)
from app.services.product_service import ProductService
from app.services.product_csv_service import ProductCSVService, CSVImportError

router = APIRouter(tags=["Products"])


@router.get("", response_model=ProductListResponse)
async def list_products(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    category_id: Optional[uuid.UUID] = Query(None),
    search: Optional[str] = Query(None, description="Search name, SKU or description"),
    sort_by: str = Query("created_at", pattern="^(created_at|name|price|stock)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
):
    """Active products, paginated. Public endpoint."""
    products, total = await ProductService(db).get_products(
        category_id=category_id,
        search=search,
        is_active=True,
        skip=(page - 1) * size,
        limit=size,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return ProductListResponse(
        items=[ProductResponse.model_validate(p) for p in products],
        total=total,
        page=page,
        size=size,
        pages=page_count(total, size),
    )


# ==================== CSV (declared before /{product_id}) ====================

@router.get("/export")
async def export_products(
    db: DB,
    admin: AdminUser,
    columns: Optional[str] = Query(None, description="Comma separated column names"),
    category_id: Optional[uuid.UUID] = Query(None),
    is_active: Optional[bool] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
):
    """Download products as CSV. Admin only."""
    fields = [c.strip() for c in columns.split(",") if c.strip()] if columns else None
    try:
        lines = await ProductCSVService(db).export_products(
            fields=fields,
            category_id=category_id,
            is_active=is_active,
            limit=limit,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    filename = f"products-{datetime.now(timezone.utc).strftime('%Y%m%d-%H%M%S')}.csv"
    return StreamingResponse(
        lines,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/import", response_model=ProductImportResult)
async def import_products(
    db: DB,
    admin: AdminUser,
    file: UploadFile = File(..., description="CSV file with a header row"),
):
    """
    Create or update products from CSV, matched by SKU. Admin only.

    Rows that fail validation are skipped and reported; the rest are imported.
    """
    content = await file.read()
    try:
        result = await ProductCSVService(db).import_products(content)
    except CSVImportError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    return ProductImportResult(**result)


# ==================== CRUD ====================

@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: uuid.UUID, db: DB):
    """Get a single product."""
    product = await ProductService(db).get_product_by_id(product_id)
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(data: ProductCreate, db: DB, admin: AdminUser):
    """Create a product. Admin only."""
    try:
        return await ProductService(db).create_product(data.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(product_id: uuid.UUID, data: ProductUpdate, db: DB, admin: AdminUser):
    """Update a product. Admin only."""
    service = ProductService(db)
    product = await service.get_product_by_id(product_id)
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    try:
        return await service.update_product(product, data.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(product_id: uuid.UUID, db: DB, admin: AdminUser):
    """Deactivate a product. Admin only."""
    service = ProductService(db)
    product = await service.get_product_by_id(product_id)
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    await service.delete_product(product)
