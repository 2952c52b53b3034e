"""Unit tests for the SQLite client: filter parsing, CRUD and transactions."""

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from choreledger.core import db_client
from choreledger.core.config import constants


@pytest.mark.unit
class TestParseFilter:
    """Tests for filter query parsing."""

    def test_single_comparison(self):
        """Test one comparison becomes one placeholder."""
        clause, params = db_client.parse_filter('user_id = "kid-1"')

        assert clause == "user_id = ?"
        assert params == ["kid-1"]

    def test_and_with_or_group(self):
        """Test && joins conditions and a parenthesized group becomes OR."""
        clause, params = db_client.parse_filter('(task_id = "1" || task_id = "2") && date >= "2026-01-11"')

        assert clause == "(task_id = ? OR task_id = ?) AND date >= ?"
        assert params == [1, 2, "2026-01-11"]

    def test_like_escapes_wildcards(self):
        """Test ~ maps to LIKE with wildcards escaped."""
        clause, params = db_client.parse_filter('name ~ "50%_off"')

        assert clause == "name LIKE ? ESCAPE '\\'"
        assert params == ["50\\%\\_off"]

    def test_quotes_inside_values(self):
        """Test sanitized values containing quotes and separators parse intact."""
        user_id = db_client.sanitize_param("o'neil")
        code = db_client.sanitize_param('say "hi" && (bye || not)')

        clause, params = db_client.parse_filter(f'(user_id = "{user_id}" || code = "{code}") && name = \'a"b\'')

        assert clause == "(user_id = ? OR code = ?) AND name = ?"
        assert params == ["o'neil", 'say "hi" && (bye || not)', 'a"b']

    def test_non_ascii_value_decoded(self):
        """Test escapes produced by sanitize_param are decoded back."""
        _, params = db_client.parse_filter(f'display_name = "{db_client.sanitize_param("Zoë")}"')

        assert params == ["Zoë"]

    def test_invalid_syntax(self):
        """Test malformed comparisons are rejected."""
        with pytest.raises(ValueError, match="Invalid filter syntax"):
            db_client.parse_filter("name = unquoted")

    def test_empty(self):
        """Test an empty filter yields no clause."""
        assert db_client.parse_filter("") == ("", [])

    def test_sanitize_param_escapes_quotes(self):
        """Test quotes and backslashes are escaped."""
        assert db_client.sanitize_param('a"b\\c') == 'a\\"b\\\\c'


@pytest.mark.unit
class TestValueConversion:
    """Tests for Python-to-SQLite value conversion."""

    def test_converts_rich_types(self):
        """Test dates, decimals and maps are stored as text."""
        assert db_client._to_db_value(date(2026, 1, 14)) == "2026-01-14"
        assert db_client._to_db_value(datetime(2026, 1, 14, 15, tzinfo=UTC)) == "2026-01-14T15:00:00+00:00"
        assert db_client._to_db_value(Decimal("-1.50")) == "-1.50"
        assert db_client._to_db_value({"count": 2}) == '{"count": 2}'
        assert db_client._to_db_value(3) == 3

    def test_sort_validation(self):
        """Test only column names with a direction are accepted."""
        assert db_client._parse_sort("transaction_date DESC, id DESC") == "transaction_date DESC, id DESC"
        assert db_client._parse_sort("id; DROP TABLE tasks") == "id ASC"
        assert db_client._parse_sort("") == "id ASC"


@pytest.mark.unit
class TestCrud:
    """Tests for record CRUD against a temporary database."""

    async def test_create_and_get(self, db):
        """Test a created record reads back with string ids."""
        created = await db_client.create_record(
            collection="profiles", data={"user_id": "kid-1", "display_name": "Sam"}
        )

        fetched = await db_client.get_record(collection="profiles", record_id=created["id"])

        assert isinstance(created["id"], str)
        assert fetched["display_name"] == "Sam"

    async def test_get_missing_raises_key_error(self, db):
        """Test missing and non-numeric ids raise KeyError."""
        with pytest.raises(KeyError):
            await db_client.get_record(collection="profiles", record_id="42")
        with pytest.raises(KeyError):
            await db_client.get_record(collection="profiles", record_id="abc")

    async def test_update_missing_raises_key_error(self, db):
        """Test updating a missing record raises KeyError."""
        with pytest.raises(KeyError):
            await db_client.update_record(collection="profiles", record_id="42", data={"display_name": "x"})

    async def test_delete(self, db):
        """Test a deleted record is gone and a second delete raises KeyError."""
        created = await db_client.create_record(
            collection="profiles", data={"user_id": "kid-1", "display_name": "Sam"}
        )

        await db_client.delete_record(collection="profiles", record_id=created["id"])

        with pytest.raises(KeyError):
            await db_client.delete_record(collection="profiles", record_id=created["id"])

    async def test_unknown_table(self, db):
        """Test writing to a missing table raises RuntimeError."""
        with pytest.raises(RuntimeError, match="does not exist"):
            await db_client.create_record(collection="nope", data={"a": 1})

    async def test_invalid_collection_name(self, db):
        """Test collection names are validated."""
        with pytest.raises(RuntimeError, match="Invalid collection name"):
            await db_client.create_record(collection="profiles; --", data={"a": 1})

    async def test_unique_violation_wrapped(self, db):
        """Test constraint failures surface as RuntimeError."""
        await db_client.create_record(collection="profiles", data={"user_id": "kid-1", "display_name": "Sam"})

        with pytest.raises(RuntimeError, match="UNIQUE constraint"):
            await db_client.create_record(collection="profiles", data={"user_id": "kid-1", "display_name": "Other"})

    async def test_list_all_follows_pages(self, db, monkeypatch):
        """Test list_all_records reads past the first page."""
        monkeypatch.setattr(constants, "DEFAULT_PER_PAGE_LIMIT", 2)
        for i in range(5):
            await db_client.create_record(collection="profiles", data={"user_id": f"kid-{i}", "display_name": "K"})

        records = await db_client.list_all_records(collection="profiles", sort="id DESC")

        assert [r["user_id"] for r in records] == ["kid-4", "kid-3", "kid-2", "kid-1", "kid-0"]
        assert await db_client.count_records(collection="profiles", filter_query='user_id != "kid-0"') == 4

    async def test_lookup_by_quoted_user_id(self, db):
        """Test user ids with quotes are found through a sanitized filter."""
        for user_id, name in (("o'neil", "Pat"), ('say "hi"', "Sam")):
            await db_client.create_record(collection="profiles", data={"user_id": user_id, "display_name": name})

        found = {}
        for user_id in ("o'neil", 'say "hi"'):
            record = await db_client.get_first_record(
                collection="profiles", filter_query=f'user_id = "{db_client.sanitize_param(user_id)}"'
            )
            found[user_id] = record["display_name"]

        assert found == {"o'neil": "Pat", 'say "hi"': "Sam"}

    async def test_like_matches_wildcards_literally(self, db):
        """Test % in a LIKE value only matches a literal percent sign."""
        await db_client.create_record(collection="profiles", data={"user_id": "a", "display_name": "50%"})
        await db_client.create_record(collection="profiles", data={"user_id": "b", "display_name": "500"})

        matches = await db_client.list_all_records(collection="profiles", filter_query='display_name ~ "50%"')

        assert [r["user_id"] for r in matches] == ["a"]

    async def test_get_first_record(self, db):
        """Test get_first_record returns a match or None."""
        await db_client.create_record(collection="profiles", data={"user_id": "kid-1", "display_name": "Sam"})

        found = await db_client.get_first_record(collection="profiles", filter_query='user_id = "kid-1"')
        missing = await db_client.get_first_record(collection="profiles", filter_query='user_id = "kid-2"')

        assert found["display_name"] == "Sam"
        assert missing is None


@pytest.mark.unit
class TestTransaction:
    """Tests for transactional scopes."""

    async def test_commit(self, db):
        """Test writes inside a transaction persist after it exits."""
        async with db_client.transaction():
            await db_client.create_record(collection="profiles", data={"user_id": "kid-1", "display_name": "Sam"})

        assert await db_client.count_records(collection="profiles") == 1

    async def test_rollback_on_error(self, db):
        """Test an exception discards every write in the transaction."""
        with pytest.raises(ValueError, match="abort"):
            async with db_client.transaction():
                await db_client.create_record(
                    collection="profiles", data={"user_id": "kid-1", "display_name": "Sam"}
                )
                raise ValueError("abort")

        assert await db_client.count_records(collection="profiles") == 0

    async def test_nested_transaction_joins_outer(self, db):
        """Test an inner transaction is rolled back with the outer one."""
        with pytest.raises(ValueError, match="abort"):
            async with db_client.transaction():
                async with db_client.transaction():
                    await db_client.create_record(
                        collection="profiles", data={"user_id": "kid-1", "display_name": "Sam"}
                    )
                raise ValueError("abort")

        assert await db_client.count_records(collection="profiles") == 0
