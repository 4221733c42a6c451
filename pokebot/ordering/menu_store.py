from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Optional, Protocol

from ..errors import CatalogError
from .menu import Category, Product, available_view, parse_menu
from .nlp import fold_text

logger = logging.getLogger(__name__)


class CatalogReader(Protocol):
    def get_product_by_slug(self, slug: str) -> Optional[Product]: ...

    def list_products(self) -> List[Product]: ...

    def list_categories(self) -> List[Category]: ...

    def list_products_by_category(self, category_slug: str) -> List[Product]: ...

    def find_category(self, keyword: str) -> Optional[Category]: ...


def _normalize_slug(slug: str) -> str:
    return (slug or "").strip().lower()


class JsonCatalog:
    """
    Catalog backed by a single menu.json file.

    The file is parsed lazily on first use and cached on the instance;
    `reload()` drops the cache (e.g. after the admin edits the menu).
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._categories: Optional[List[Category]] = None
        self._products: Optional[List[Product]] = None

    def reload(self) -> None:
        self._categories = None
        self._products = None

    def _load(self) -> None:
        if self._products is not None:
            return
        if not self.path.exists():
            raise CatalogError(f"Menu file not found: {self.path}")
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise CatalogError(f"Invalid menu file {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise CatalogError(f"Invalid menu file {self.path}: top level must be an object")

        self._categories, self._products = parse_menu(data)
        logger.info("Loaded %d products from %s", len(self._products), self.path)

    def _all(self) -> List[Product]:
        try:
            self._load()
        except CatalogError:
            logger.exception("Catalog unavailable")
            return []
        return list(self._products or [])

    # -------------------
    # CatalogReader
    # -------------------
    def get_product_by_slug(self, slug: str) -> Optional[Product]:
        slug = _normalize_slug(slug)
        if not slug:
            return None
        for p in self._all():
            if _normalize_slug(p.slug) == slug:
                return available_view(p)
        logger.warning("Product not found: %s", slug)
        return None

    def list_products(self) -> List[Product]:
        return sorted((available_view(p) for p in self._all()), key=lambda p: p.name.lower())

    def list_categories(self) -> List[Category]:
        self._all()
        return sorted(self._categories or [], key=lambda c: c.name.lower())

    def list_products_by_category(self, category_slug: str) -> List[Product]:
        slug = _normalize_slug(category_slug)
        return [p for p in self.list_products() if _normalize_slug(p.category or "") == slug]

    def find_category(self, keyword: str) -> Optional[Category]:
        """Loose match: keyword inside the category name or slug."""
        kw = fold_text(keyword)
        if not kw:
            return None
        for c in self.list_categories():
            if kw in fold_text(c.name) or kw in fold_text(c.slug):
                return c
        return None
