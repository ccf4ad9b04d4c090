from __future__ import annotations

import random
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel


CATEGORIES = ["Electronics", "Clothing", "Books", "Home", "Sports", "Food"]


class Product(BaseModel):
    id: int
    name: str
    category: str
    price: float
    inStock: bool


@lru_cache(maxsize=1)
def products() -> List[Product]:
    """The in-memory catalog: 1000 products from a fixed seed."""
    rng = random.Random(1000)
    out: List[Product] = []
    for i in range(1, 1001):
        out.append(Product(
            id=i,
            name=f"Product {i}",
            category=rng.choice(CATEGORIES),
            price=round(rng.random() * 1000, 2),
            inStock=rng.randint(0, 99) > 20,
        ))
    return out


def find_product(product_id: int) -> Optional[Product]:
    # ids are 1..N in order
    items = products()
    if 1 <= product_id <= len(items):
        return items[product_id - 1]
    return None


def matches(product: Product, query: str) -> bool:
    q = query.lower()
    return q in product.name.lower() or q in product.category.lower()


def search(query: Optional[str], limit: int = 10) -> List[Product]:
    if not query or not query.strip():
        return products()[:limit]
    return [p for p in products() if matches(p, query.strip())][:limit]
