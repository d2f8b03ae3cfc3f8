"""
ORM models. Импорт пакета регистрирует все таблицы в Base.metadata.
"""

from sellit.models.attribute import ATTRIBUTE_TYPES, Attribute, AttributeValue
from sellit.models.base import Base, BaseModel
from sellit.models.category import Category, CategoryAttributeStats
from sellit.models.product import Product, ProductAttribute, ProductVariant
from sellit.models.store import Store

__all__ = [
    "ATTRIBUTE_TYPES",
    "Attribute",
    "AttributeValue",
    "Base",
    "BaseModel",
    "Category",
    "CategoryAttributeStats",
    "Product",
    "ProductAttribute",
    "ProductVariant",
    "Store",
]
