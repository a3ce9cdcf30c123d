# tests/test_sa/test_schema.py
import pytest
from rbibli.sa.models import (
    Genre, Publisher, Series, Author, Title, TitleAuthor, Location, Volume, BorrowerGroup, Borrower, Loan
)
from tests.test_sa.utils import DBInspector, print_table_schema, compare_model_to_db, foreign_key_ondelete


@pytest.mark.parametrize("model", [
    Genre, Publisher, Series, Author, Title, TitleAuthor, Location, Volume, BorrowerGroup, Borrower, Loan
])
def test_model_matches_schema(db_session, model):
    """Test every model matches its database table"""
    print_table_schema(db_session, model.__tablename__)
    differences = compare_model_to_db(db_session, model)
    assert not differences, f"Schema differences found: {differences}"


@pytest.mark.parametrize("table,column", [
    ("title", "genre_id"),
    ("title", "publisher_id"),
    ("title", "series_id"),
    ("volume", "location_id"),
    ("borrower", "group_id"),
])
def test_classification_references_set_null(db_session, table, column):
    """Test organizational references are declared ON DELETE SET NULL"""
    assert foreign_key_ondelete(db_session, table, column) == "SET NULL"


@pytest.mark.parametrize("table,column", [
    ("volume", "title_id"),
    ("loan", "volume_id"),
    ("loan", "borrower_id"),
])
def test_ownership_references_not_cascaded_by_database(db_session, table, column):
    """Test ownership deletes are left to the repositories"""
    assert foreign_key_ondelete(db_session, table, column) == "NO ACTION"


def test_active_loan_index_is_partial(db_session):
    """Test the one-active-loan index only covers open loans"""
    sql = DBInspector(db_session).get_index_sql("uix_loan_active_volume")
    assert "UNIQUE" in sql.upper()
    assert "returned_date IS NULL" in sql


def test_unique_columns(db_session):
    """Test unique constraints on genre name, barcode and group name"""
    inspector = DBInspector(db_session)
    for table, column in (("genre", "name"), ("volume", "barcode"), ("borrower_group", "name")):
        unique_sets = [c['column_names'] for c in inspector.inspector.get_unique_constraints(table)]
        unique_sets += [i['column_names'] for i in inspector.get_table_info(table)['indexes'] if i['unique']]
        assert [column] in unique_sets, f"{table}.{column} should be unique"
