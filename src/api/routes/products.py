"""Product API routes."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from src.api.deps import AdminUser
from src.api.middleware.error_handler import NotFoundError
from src.schemas.product import (
    ProductCreate,
    ProductListResponse,
    ProductResponse,
    ProductUpdate,
)
from src.services.product_service import ProductService, get_product_service

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=ProductListResponse)
async def list_products(
    product_type: Annotated[str | None, Query(alias="type", description="Filter by category tag")] = None,
    available: Annotated[bool, Query(description="Only products on sale")] = False,
    search: Annotated[str | None, Query(max_length=100, description="Match name or description")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100, description="Results per page")] = 20,
    product_service: ProductService = Depends(get_product_service),
) -> ProductListResponse:
    """List products with optional filtering and pagination.

    Products are publicly readable.
    """
    result = await product_service.list_products(
        product_type=product_type,
        available_only=available,
        search=search,
        page=page,
        limit=limit,
    )

    return ProductListResponse(
        products=[ProductResponse(**p) for p in result["products"]],
        total=result["total"],
        page=result["page"],
        limit=result["limit"],
    )


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: UUID,
    product_service: ProductService = Depends(get_product_service),
) -> ProductResponse:
    """Get a product by ID."""
    product = await product_service.get_product(product_id)
    if not product:
        raise NotFoundError("Produto não encontrado")

    return ProductResponse(**product)


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    data: ProductCreate,
    admin: AdminUser,
    product_service: ProductService = Depends(get_product_service),
) -> ProductResponse:
    """Create a new product. Admin only."""
    product = await product_service.create_product(data.model_dump(mode="json"))
    return ProductResponse(**product)


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: UUID,
    data: ProductUpdate,
    admin: AdminUser,
    product_service: ProductService = Depends(get_product_service),
) -> ProductResponse:
    """Update a product. Admin only."""
    product = await product_service.update_product(
        product_id, data.model_dump(mode="json", exclude_unset=True)
    )
    if not product:
        raise NotFoundError("Produto não encontrado")

    return ProductResponse(**product)


@router.delete("/{product_id}", response_model=ProductResponse)
async def disable_product(
    product_id: UUID,
    admin: AdminUser,
    product_service: ProductService = Depends(get_product_service),
) -> ProductResponse:
    """Withdraw a product from sale. Admin only.

    The row is kept so past orders and subscriptions still resolve it.
    """
    product = await product_service.disable_product(product_id)
    if not product:
        raise NotFoundError("Produto não encontrado")

    return ProductResponse(**product)
