from pydantic import BaseModel, Field
from typing import Optional, List

class Product(BaseModel):
    product_id: str
    name: str
    description: str = ""
    price: float = Field(ge=0)
    image_url: Optional[str] = None
    category: str
    tags: List[str] = []
    rating: float = Field(default=0.0, ge=0, le=5)
    in_stock: bool = True

    model_config = {"frozen": True}  # immuable = safe

class ProductSummary(BaseModel):
    """Display subset of a Product, embedded in recommendation read views."""
    product_id: str
    name: str
    description: str = ""
    price: float
    image_url: Optional[str] = None
    category: str
    rating: float

    model_config = {"frozen": True}

    @classmethod
    def from_product(cls, p: Product) -> "ProductSummary":
        return cls(
            product_id=p.product_id,
            name=p.name,
            description=p.description,
            price=p.price,
            image_url=p.image_url,
            category=p.category,
            rating=p.rating,
        )
