"""
API endpoints for category management.
"""

from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from expense_tracker.database import get_db
from expense_tracker.schemas import CategoryResponse, CategoryDetailResponse, CategoryWithCountResponse
from expense_tracker.services import category_service

router = APIRouter()


@router.get("", response_model=List[CategoryWithCountResponse])
async def list_categories(db: Session = Depends(get_db)):
    """List all categories with the number of items in each."""
    return [
        {"id": category.id, "name": category.name, "item_count": item_count}
        for category, item_count in category_service.list_categories(db)
    ]


@router.get("/{category_id}", response_model=CategoryDetailResponse)
async def get_category(category_id: int, db: Session = Depends(get_db)):
    """Get a category with its items."""
    return category_service.get_category(db, category_id)


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(payload: dict, db: Session = Depends(get_db)):
    return category_service.create_category(db, payload)


@router.put("/{category_id}", response_model=CategoryResponse)
async def rename_category(category_id: int, payload: dict, db: Session = Depends(get_db)):
    return category_service.rename_category(db, category_id, payload)


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(category_id: int, db: Session = Depends(get_db)):
    """Delete a category; refused while items still use it."""
    category_service.delete_category(db, category_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
