"""
Food catalog lookups.
"""
from typing import List, Optional

from loguru import logger

from database import create_document, get_document_by_id, get_documents
from schemas import Fooditem

CATEGORIES = ["Salad", "Rolls", "Deserts", "Sandwich", "Cake", "Pure Veg", "Pasta", "Noodles", "Pizza"]

SAMPLE_FOODS = [
    Fooditem(
        name="Margherita Pizza",
        description="Classic pizza with tomato sauce and mozzarella cheese",
        price=12.99,
        category="Pizza",
        image="pizza1.jpg",
    ),
    Fooditem(
        name="Caesar Salad",
        description="Fresh romaine lettuce with caesar dressing and croutons",
        price=8.99,
        category="Salad",
        image="salad1.jpg",
    ),
    Fooditem(
        name="Chicken Sandwich",
        description="Grilled chicken breast with lettuce and tomato",
        price=10.99,
        category="Sandwich",
        image="sandwich1.jpg",
    ),
]


def find_food(item_id: str) -> Optional[dict]:
    """Return the food document for ``item_id``, or None if it does not resolve."""
    return get_document_by_id("fooditem", item_id)


def list_foods() -> List[dict]:
    foods = get_documents("fooditem", sort=[("name", 1)])
    if not foods:
        logger.info("No foods found, creating sample data")
        for food in SAMPLE_FOODS:
            add_food(food)
        foods = get_documents("fooditem", sort=[("name", 1)])
    return foods


def list_categories() -> List[str]:
    return list(CATEGORIES)


def add_food(food: Fooditem) -> str:
    return create_document("fooditem", food)
