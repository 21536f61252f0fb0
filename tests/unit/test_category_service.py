"""
Tests for category management
"""
import pytest

from expense_tracker.exceptions import ConflictError, NotFoundError, ValidationError
from expense_tracker.models.category import Category
from expense_tracker.services import category_service
from expense_tracker.services.reconciliation import find_category_by_name


@pytest.mark.unit
class TestCategoryService:

    def test_list_includes_item_counts(self, populated_db, receipt_service):
        groceries = find_category_by_name(populated_db, "Groceries")
        receipt_service.ingest_manual({
            "date": "2024-03-15",
            "shopName": "Shop X",
            "items": [
                {"name": "Milk", "price": 2.5, "categoryId": groceries.id},
                {"name": "Bread", "price": 3.0, "categoryId": groceries.id},
            ],
        })

        counts = {category.name: count for category, count in category_service.list_categories(populated_db)}

        assert counts == {"Groceries": 2, "Household": 0, "Miscellaneous": 0}

    def test_create_strips_name(self, test_db):
        category = category_service.create_category(test_db, {"name": "  Pets  "})
        assert category.name == "Pets"
        assert test_db.query(Category).count() == 1

    def test_create_duplicate_any_casing_conflicts(self, populated_db):
        with pytest.raises(ConflictError):
            category_service.create_category(populated_db, {"name": "GROCERIES"})

    def test_create_duplicate_non_ascii_casing_conflicts(self, test_db):
        category_service.create_category(test_db, {"name": "Żywność"})

        with pytest.raises(ConflictError):
            category_service.create_category(test_db, {"name": "ŻYWNOŚĆ"})

        assert find_category_by_name(test_db, "żywność").name == "Żywność"
        assert test_db.query(Category).count() == 1

    def test_rename_onto_non_ascii_casing_conflicts(self, test_db):
        category_service.create_category(test_db, {"name": "Chemia domowa"})
        other = category_service.create_category(test_db, {"name": "Napoje"})

        with pytest.raises(ConflictError):
            category_service.rename_category(test_db, other.id, {"name": "CHEMIA DOMOWA"})

    def test_create_blank_name_is_invalid(self, test_db):
        with pytest.raises(ValidationError) as exc_info:
            category_service.create_category(test_db, {"name": "   "})
        assert exc_info.value.errors[0]["field"] == "name"

    def test_rename(self, populated_db):
        household = find_category_by_name(populated_db, "Household")

        renamed = category_service.rename_category(populated_db, household.id, {"name": "Home"})

        assert renamed.name == "Home"
        assert find_category_by_name(populated_db, "household") is None

    def test_rename_onto_existing_name_conflicts(self, populated_db):
        household = find_category_by_name(populated_db, "Household")
        with pytest.raises(ConflictError):
            category_service.rename_category(populated_db, household.id, {"name": "groceries"})

    def test_rename_changing_only_case(self, populated_db):
        household = find_category_by_name(populated_db, "Household")
        assert category_service.rename_category(populated_db, household.id, {"name": "HOUSEHOLD"}).name == "HOUSEHOLD"

    def test_delete_unused_category(self, populated_db):
        household = find_category_by_name(populated_db, "Household")

        category_service.delete_category(populated_db, household.id)

        with pytest.raises(NotFoundError):
            category_service.get_category(populated_db, household.id)

    def test_delete_used_category_is_restricted(self, populated_db, receipt_service):
        groceries = find_category_by_name(populated_db, "Groceries")
        receipt_service.ingest_manual({
            "date": "2024-03-15",
            "shopName": "Shop X",
            "items": [{"name": "Milk", "price": 2.5, "categoryId": groceries.id}],
        })

        with pytest.raises(ConflictError, match="cannot be deleted"):
            category_service.delete_category(populated_db, groceries.id)

        assert category_service.get_category(populated_db, groceries.id).name == "Groceries"
