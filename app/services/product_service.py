from typing import List, Optional, Tuple
import random
import re
import string
import uuid

from sqlalchemy import select, func, or_, and_
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.category import Category
from app.models.product import Product


def slugify(text: str) -> str:
    """Lowercase, hyphen separated, ASCII letters and digits only."""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug or "item"


def generate_sku(name: str) -> str:
    """SKU from the first letters of the name plus a random suffix, e.g. PR-BASM-7K2Q9X."""
    prefix = ''.join(c for c in name.upper() if c.isalnum())[:4].ljust(4, 'X')
    suffix = ''.join(random.choices(string.ascii_uppercase + string.digits, k=6))
    return f"PR-{prefix}-{suffix}"


class ProductService:
    """Service for managing the catalogue: categories and products."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== CATEGORY METHODS ====================

    async def get_categories(
        self,
        parent_id: Optional[uuid.UUID] = None,
        include_inactive: bool = False,
        skip: int = 0,
        limit: int = 100
    ) -> Tuple[List[Category], int]:
        """Get categories, optionally only the children of ``parent_id``."""
        stmt = select(Category).order_by(Category.sort_order, Category.name)
        count_stmt = select(func.count(Category.id))

        if parent_id:
            stmt = stmt.where(Category.parent_id == parent_id)
            count_stmt = count_stmt.where(Category.parent_id == parent_id)

        if not include_inactive:
            stmt = stmt.where(Category.is_active == True)  # noqa: E712
            count_stmt = count_stmt.where(Category.is_active == True)  # noqa: E712

        total = (await self.db.execute(count_stmt)).scalar()

        stmt = stmt.offset(skip).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def get_category_by_id(self, category_id: uuid.UUID) -> Optional[Category]:
        """Get category by ID."""
        result = await self.db.execute(select(Category).where(Category.id == category_id))
        return result.scalar_one_or_none()

    async def get_category_by_slug(self, slug: str) -> Optional[Category]:
        """Get category by slug."""
        result = await self.db.execute(select(Category).where(Category.slug == slug))
        return result.scalar_one_or_none()

    async def find_category(self, value: str) -> Optional[Category]:
        """Resolve a category from an id, a slug or a (case-insensitive) name."""
        value = value.strip()
        if not value:
            return None
        try:
            category = await self.get_category_by_id(uuid.UUID(value))
            if category:
                return category
        except ValueError:
            pass
        category = await self.get_category_by_slug(value.lower())
        if category:
            return category
        result = await self.db.execute(
            select(Category).where(func.lower(Category.name) == value.lower())
        )
        return result.scalars().first()

    async def create_category(self, data: dict) -> Category:
        """Create a new category."""
        data["slug"] = data.get("slug") or slugify(data["name"])
        if await self.get_category_by_slug(data["slug"]):
            raise ValueError(f"Category with slug '{data['slug']}' already exists")
        if data.get("parent_id") and not await self.get_category_by_id(data["parent_id"]):
            raise ValueError("Parent category not found")

        category = Category(**data)
        self.db.add(category)
        await self.db.flush()
        await self.db.refresh(category)
        return category

    async def update_category(self, category: Category, data: dict) -> Category:
        """Update a category."""
        if data.get("slug") and data["slug"] != category.slug:
            if await self.get_category_by_slug(data["slug"]):
                raise ValueError(f"Category with slug '{data['slug']}' already exists")
        if data.get("parent_id") == category.id:
            raise ValueError("A category cannot be its own parent")

        for key, value in data.items():
            setattr(category, key, value)

        await self.db.flush()
        await self.db.refresh(category)
        return category

    async def delete_category(self, category: Category) -> None:
        """Delete a category that no product references."""
        count = (await self.db.execute(
            select(func.count(Product.id)).where(Product.category_id == category.id)
        )).scalar()
        if count:
            raise ValueError(f"Category has {count} products and cannot be deleted")
        await self.db.delete(category)
        await self.db.flush()

    # ==================== PRODUCT METHODS ====================

    async def get_products(
        self,
        category_id: Optional[uuid.UUID] = None,
        search: Optional[str] = None,
        is_active: Optional[bool] = True,
        skip: int = 0,
        limit: int = 20,
        sort_by: str = "created_at",
        sort_order: str = "desc"
    ) -> Tuple[List[Product], int]:
        """Get products with filters."""
        stmt = select(Product).options(selectinload(Product.category))

        filters = []
        if category_id:
            filters.append(Product.category_id == category_id)
        if is_active is not None:
            filters.append(Product.is_active == is_active)
        if search:
            search_filter = f"%{search}%"
            filters.append(
                or_(
                    Product.name.ilike(search_filter),
                    Product.sku.ilike(search_filter),
                    Product.description.ilike(search_filter)
                )
            )

        if filters:
            stmt = stmt.where(and_(*filters))

        count_stmt = select(func.count(Product.id))
        if filters:
            count_stmt = count_stmt.where(and_(*filters))
        total = (await self.db.execute(count_stmt)).scalar()

        sort_column = getattr(Product, sort_by, Product.created_at)
        if sort_order == "desc":
            stmt = stmt.order_by(sort_column.desc())
        else:
            stmt = stmt.order_by(sort_column.asc())

        stmt = stmt.offset(skip).limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total

    async def get_product_by_id(self, product_id: uuid.UUID) -> Optional[Product]:
        """Get product by ID."""
        result = await self.db.execute(
            select(Product)
            .options(selectinload(Product.category))
            .where(Product.id == product_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_product_by_sku(self, sku: str) -> Optional[Product]:
        """Get product by SKU."""
        result = await self.db.execute(
            select(Product)
            .options(selectinload(Product.category))
            .where(Product.sku == sku)
        )
        return result.scalar_one_or_none()

    async def get_product_by_slug(self, slug: str) -> Optional[Product]:
        """Get product by slug."""
        result = await self.db.execute(select(Product).where(Product.slug == slug))
        return result.scalar_one_or_none()

    async def unique_slug(self, name: str, exclude_id: Optional[uuid.UUID] = None) -> str:
        """Slug from the name, suffixed -2, -3, ... until unused."""
        base = slugify(name)
        slug = base
        n = 2
        while True:
            existing = await self.get_product_by_slug(slug)
            if existing is None or existing.id == exclude_id:
                return slug
            slug = f"{base}-{n}"
            n += 1

    async def unique_sku(self, name: str) -> str:
        while True:
            sku = generate_sku(name)
            if not await self.get_product_by_sku(sku):
                return sku

    async def create_product(self, data: dict) -> Product:
        """Create a new product. Slug and SKU are generated when missing."""
        if data.get("category_id") and not await self.get_category_by_id(data["category_id"]):
            raise ValueError("Category not found")
        if data.get("sku"):
            if await self.get_product_by_sku(data["sku"]):
                raise ValueError(f"Product with SKU '{data['sku']}' already exists")
        else:
            data["sku"] = await self.unique_sku(data["name"])
        if data.get("slug"):
            if await self.get_product_by_slug(data["slug"]):
                raise ValueError(f"Product with slug '{data['slug']}' already exists")
        else:
            data["slug"] = await self.unique_slug(data["name"])

        product = Product(id=uuid.uuid4(), **data)
        self.db.add(product)
        await self.db.flush()
        return await self.get_product_by_id(product.id)

    async def update_product(self, product: Product, data: dict) -> Product:
        """Update a product."""
        if data.get("category_id") and not await self.get_category_by_id(data["category_id"]):
            raise ValueError("Category not found")
        if data.get("sku") and data["sku"] != product.sku:
            if await self.get_product_by_sku(data["sku"]):
                raise ValueError(f"Product with SKU '{data['sku']}' already exists")
        if data.get("slug") and data["slug"] != product.slug:
            if await self.get_product_by_slug(data["slug"]):
                raise ValueError(f"Product with slug '{data['slug']}' already exists")

        for key, value in data.items():
            setattr(product, key, value)

        await self.db.flush()
        return await self.get_product_by_id(product.id)

    async def delete_product(self, product: Product) -> None:
        """Soft delete a product by deactivating it; order lines keep their snapshot."""
        product.is_active = False
        await self.db.flush()

    async def bulk_set_active(self, product_ids: List[uuid.UUID], is_active: bool) -> dict:
        """
        Activate or deactivate several products.

        Unknown ids are reported per id; the rest are still updated.
        """
        results = {"updated": 0, "failed": 0, "errors": []}

        found = await self.db.execute(select(Product).where(Product.id.in_(product_ids)))
        products = {product.id: product for product in found.scalars().all()}

        for product_id in dict.fromkeys(product_ids):
            product = products.get(product_id)
            if product is None:
                results["failed"] += 1
                results["errors"].append({"id": str(product_id), "error": "Product not found"})
                continue
            product.is_active = is_active
            results["updated"] += 1

        await self.db.flush()
        return results
