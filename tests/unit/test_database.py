"""
Tests for transaction handling and the SQLite connection setup
"""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import text

from expense_tracker.database import atomic
from expense_tracker.exceptions import ConflictError, StorageError
from expense_tracker.models.category import Category
from expense_tracker.models.receipt import Receipt, Item
from expense_tracker.services.reconciliation import CategoryResolver


def _counts(db):
    return (
        db.query(Receipt).count(),
        db.query(Item).count(),
        db.query(Category).count(),
    )


def _add_receipt(db, category_id):
    receipt = Receipt(date=date(2024, 3, 15), total_amount=Decimal("2.50"), image_url="", raw_image_path="")
    receipt.items.append(Item(name="Milk", price=Decimal("2.50"), quantity=1, category_id=category_id))
    db.add(receipt)
    db.flush()


@pytest.mark.unit
class TestAtomic:

    def test_commits_on_success(self, db_session):
        with atomic(db_session):
            db_session.add(Category(name="Groceries"))

        db_session.rollback()
        assert db_session.query(Category).count() == 1

    @pytest.mark.parametrize("stored_name, extracted_name", [
        ("GROCERIES", "Groceries"),
        ("ŻYWNOŚĆ", "Żywność"),
    ])
    def test_category_created_concurrently_is_conflict(self, db_session, stored_name, extracted_name):
        resolver = CategoryResolver(db_session)
        # Another request commits the same category after the map was loaded
        db_session.add(Category(name=stored_name))
        db_session.commit()

        with pytest.raises(ConflictError):
            with atomic(db_session):
                _add_receipt(db_session, resolver.resolve(extracted_name))

        assert _counts(db_session) == (0, 0, 1)
        assert db_session.query(Category.name).scalar() == stored_name

    def test_database_failure_is_storage_error(self, db_session):
        with pytest.raises(StorageError):
            with atomic(db_session):
                db_session.add(Category(name="Groceries"))
                db_session.flush()
                db_session.execute(text("SELECT * FROM missing_table"))

        assert _counts(db_session) == (0, 0, 0)

    def test_other_errors_roll_back_and_propagate(self, db_session):
        with pytest.raises(KeyError):
            with atomic(db_session):
                db_session.add(Category(name="Groceries"))
                db_session.flush()
                raise KeyError("boom")

        assert db_session.query(Category).count() == 0


@pytest.mark.unit
def test_lower_folds_non_ascii_letters(db_session):
    assert db_session.execute(text("SELECT lower('ŻYWNOŚĆ')")).scalar() == "żywność"
