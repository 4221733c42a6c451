from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Option(BaseModel):
    id: int
    name: str
    price_extra: int = Field(default=0, ge=0)
    is_available: bool = True


class Step(BaseModel):
    id: int
    name: str = ""
    label: str = ""
    order: int = 0
    min_selections: int = Field(default=0, ge=0)
    max_selections: Optional[int] = Field(default=None, ge=1)  # None = unbounded
    included_selections: int = Field(default=0, ge=0)
    price_per_extra: int = Field(default=0, ge=0)
    options: List[Option] = Field(default_factory=list)

    @property
    def title(self) -> str:
        return self.label or self.name

    @property
    def is_single_select(self) -> bool:
        return self.max_selections == 1

    def option_by_id(self, option_id: int) -> Optional[Option]:
        for opt in self.options:
            if opt.id == option_id:
                return opt
        return None

    def selected_options(self, selected_ids: List[int]) -> List[Option]:
        """Options of this step referenced by `selected_ids`, in selection order."""
        out: List[Option] = []
        for oid in selected_ids:
            opt = self.option_by_id(oid)
            if opt is not None and opt not in out:
                out.append(opt)
        return out


class Product(BaseModel):
    id: int
    name: str
    slug: str
    base_price: int = Field(default=0, ge=0)
    category: Optional[str] = None
    steps: List[Step] = Field(default_factory=list)

    @property
    def is_customizable(self) -> bool:
        return bool(self.steps)


class Category(BaseModel):
    slug: str
    name: str


def available_view(product: Product) -> Product:
    """
    Catalog-read view of a product:
    - steps sorted by `order` (stable for ties)
    - unavailable options dropped
    Never mutates the stored product.
    """
    steps = sorted(product.steps, key=lambda s: s.order)
    return product.model_copy(
        update={
            "steps": [
                s.model_copy(update={"options": [o for o in s.options if o.is_available]})
                for s in steps
            ]
        }
    )


def parse_menu(data: Dict[str, Any]) -> tuple[List[Category], List[Product]]:
    """
    Menu file shape:
      {"meta": {...}, "categories": [{"slug", "name"}], "products": [{..., "steps": [...]}]}
    Malformed entries are skipped, not fatal.
    """
    categories: List[Category] = []
    for c in data.get("categories") or []:
        if isinstance(c, dict) and c.get("slug") and c.get("name"):
            categories.append(Category(slug=str(c["slug"]).strip().lower(), name=str(c["name"])))

    products: List[Product] = []
    for p in data.get("products") or []:
        if not isinstance(p, dict):
            continue
        try:
            products.append(Product.model_validate(p))
        except ValueError:
            continue
    return categories, products
