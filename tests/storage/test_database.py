"""
Tests for the database helpers.
"""

import pytest
from sqlalchemy import text

from conftest import ACCOUNT
from storage.database import (
    DatabasePersistenceError,
    create_database_engine,
    get_session_factory,
    initialize_database,
    transaction_scope,
    verify_database_connection,
)
from storage.models.archive import AccountRecord
from storage.repositories.accounts import AccountRepository


class TestTransactionScope:
    """Tests for transaction_scope."""

    def test_commits_on_success(self, session_factory):
        with transaction_scope(session_factory) as session:
            AccountRepository(session).get_or_create(ACCOUNT)

        with transaction_scope(session_factory) as session:
            assert AccountRepository(session).get(ACCOUNT) is not None

    def test_rolls_back_on_error(self, session_factory):
        with pytest.raises(RuntimeError):
            with transaction_scope(session_factory) as session:
                AccountRepository(session).get_or_create(ACCOUNT)
                session.flush()
                raise RuntimeError("abort")

        with transaction_scope(session_factory) as session:
            assert AccountRepository(session).get(ACCOUNT) is None

    def test_database_error_is_persistence_error(self, session_factory):
        with pytest.raises(DatabasePersistenceError) as exc_info:
            with transaction_scope(session_factory) as session:
                session.execute(text("SELECT * FROM no_such_table"))

        assert exc_info.value.is_retryable


class TestInitialization:
    """Tests for engine creation and table setup."""

    def test_in_memory_database(self):
        engine = create_database_engine("sqlite://")
        initialize_database(engine)

        factory = get_session_factory(engine)
        with transaction_scope(factory) as session:
            session.add(AccountRecord(account_number=ACCOUNT))

        with transaction_scope(factory) as session:
            assert session.get(AccountRecord, ACCOUNT) is not None
        engine.dispose()

    def test_verify_connection(self, engine):
        assert verify_database_connection(engine) is True
