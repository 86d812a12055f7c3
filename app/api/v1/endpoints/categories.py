from typing import Optional
import uuid

from fastapi import APIRouter, HTTPException, status, Query

from app.api.deps import DB, AdminUser
from app.schemas.base import page_count
from app.schemas.category import (
    CategoryCreate,
    CategoryUpdate,
    CategoryResponse,
    CategoryListResponse,
)
from app.services.product_service import ProductService

router = APIRouter(tags=["Categories"])


@router.get("", response_model=CategoryListResponse)
async def list_categories(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    parent_id: Optional[uuid.UUID] = Query(None, description="Filter by parent category"),
    include_inactive: bool = Query(False),
):
    """
    Get paginated list of categories.
    Public endpoint for viewing catalog.
    """
    service = ProductService(db)
    categories, total = await service.get_categories(
        parent_id=parent_id,
        include_inactive=include_inactive,
        skip=(page - 1) * size,
        limit=size
    )

    return CategoryListResponse(
        items=[CategoryResponse.model_validate(c) for c in categories],
        total=total,
        page=page,
        size=size,
        pages=page_count(total, size),
    )


@router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(category_id: uuid.UUID, db: DB):
    """Get a single category."""
    category = await ProductService(db).get_category_by_id(category_id)
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return category


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(data: CategoryCreate, db: DB, admin: AdminUser):
    """Create a category. Admin only."""
    try:
        return await ProductService(db).create_category(data.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.put("/{category_id}", response_model=CategoryResponse)
async def update_category(category_id: uuid.UUID, data: CategoryUpdate, db: DB, admin: AdminUser):
    """Update a category. Admin only."""
    service = ProductService(db)
    category = await service.get_category_by_id(category_id)
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    try:
        return await service.update_category(category, data.model_dump(exclude_unset=True))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(category_id: uuid.UUID, db: DB, admin: AdminUser):
    """Delete a category without products. Admin only."""
    service = ProductService(db)
    category = await service.get_category_by_id(category_id)
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    try:
        await service.delete_category(category)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
