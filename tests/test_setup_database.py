import os
import sqlite3
import tempfile
import unittest

from authenticator_db.db_manager import AccountDb, AccountIndex, OtpType
from authenticator_db.setup_database import (
    EXPECTED_COLUMNS,
    UNIQUE_INDEX_NAME,
    auto_upgrade_older_accounts_with_issuer_prefix,
    create_unique_index,
    list_table_column_names_lower_case,
    setup_database,
)

SECRET = "7777777777777777"


def _index_names(conn):
    rows = conn.execute("PRAGMA index_list(accounts)").fetchall()
    return [row[1] for row in rows]


class TestSetupDatabase(unittest.TestCase):

    def setUp(self):
        self.conn = sqlite3.connect(":memory:")

    def tearDown(self):
        self.conn.close()

    def test_fresh_database_has_all_columns(self):
        self.assertFalse(setup_database(self.conn))
        self.assertEqual(list_table_column_names_lower_case(self.conn), list(EXPECTED_COLUMNS))
        self.assertIn(UNIQUE_INDEX_NAME, _index_names(self.conn))

    def test_setup_is_repeatable(self):
        setup_database(self.conn)
        self.assertFalse(setup_database(self.conn))

    def test_unique_index_rejects_same_name_and_issuer(self):
        setup_database(self.conn)
        insert = "INSERT INTO accounts (email, secret, issuer) VALUES (?, ?, ?)"
        self.conn.execute(insert, ("bob", SECRET, None))
        self.conn.execute(insert, ("bob", SECRET, "Yahoo"))
        with self.assertRaises(sqlite3.IntegrityError):
            self.conn.execute(insert, ("bob", SECRET, None))
        with self.assertRaises(sqlite3.IntegrityError):
            self.conn.execute(insert, ("bob", SECRET, "Yahoo"))

    def test_unique_index_skipped_on_existing_duplicates(self):
        self.conn.execute("CREATE TABLE accounts (_id INTEGER PRIMARY KEY, email TEXT, "
                          "secret TEXT, issuer TEXT)")
        self.conn.execute("INSERT INTO accounts (email, secret) VALUES ('dup', 'A')")
        self.conn.execute("INSERT INTO accounts (email, secret) VALUES ('dup', 'B')")
        with self.assertLogs("authenticator_db.setup_database", level="WARNING"):
            self.assertFalse(create_unique_index(self.conn))
        self.assertNotIn(UNIQUE_INDEX_NAME, _index_names(self.conn))

    def test_auto_upgrade_leaves_new_style_accounts(self):
        self.conn.execute("CREATE TABLE accounts (email TEXT, issuer TEXT)")
        self.conn.execute("INSERT INTO accounts VALUES ('Google:a', 'Google')")
        self.conn.execute("INSERT INTO accounts VALUES ('Google:b', NULL)")
        self.conn.execute("INSERT INTO accounts VALUES ('Yahoo:c', NULL)")
        with self.assertLogs("authenticator_db.setup_database", level="WARNING"):
            self.assertEqual(auto_upgrade_older_accounts_with_issuer_prefix(self.conn), 1)
        rows = self.conn.execute("SELECT email, issuer FROM accounts ORDER BY rowid").fetchall()
        self.assertEqual(rows, [("Google:a", "Google"), ("Google:b", "Google"),
                                ("Yahoo:c", None)])


class TestLegacyDatabase(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.tmpdir.name, "accounts.db")

    def tearDown(self):
        self.tmpdir.cleanup()

    def _create_legacy(self, create_sql, rows=()):
        conn = sqlite3.connect(self.db_path)
        conn.execute(create_sql)
        for row in rows:
            conn.execute("INSERT INTO accounts (email, secret, counter, type, provider) "
                         "VALUES (?, ?, ?, ?, ?)", row)
        conn.commit()
        conn.close()

    def test_database_lacking_newer_columns(self):
        self._create_legacy("CREATE TABLE accounts (first INTEGER)")
        with AccountDb(self.db_path, retry_backoff=0) as db:
            columns = db.list_table_column_names_lower_case()
            self.assertIn("first", columns)
            self.assertIn("provider", columns)
            self.assertIn("issuer", columns)
            self.assertIn("original_name", columns)
            # bảng vẫn thiếu email/secret... nên không nhất quán
            self.assertFalse(db.is_db_consistent())

    def test_older_database_is_upgraded(self):
        self._create_legacy(
            "CREATE TABLE accounts (_id INTEGER PRIMARY KEY, email TEXT NOT NULL, "
            "secret TEXT NOT NULL, counter INTEGER DEFAULT 0, type INTEGER, "
            "provider INTEGER DEFAULT 0)",
            rows=[
                ("Google:user@gmail.com", SECRET, 0, 0, 0),
                ("Dropbox:someone@x.com", SECRET, 0, 0, 0),
                ("Yahoo:other@x.com", SECRET, 0, 0, 0),
                ("2@gmail.com", SECRET, 3, 1, 0),
            ])

        with AccountDb(self.db_path, retry_backoff=0) as db:
            self.assertEqual(db.list_accounts(), [
                AccountIndex("Google:user@gmail.com", "Google"),
                AccountIndex("Dropbox:someone@x.com", "Dropbox"),
                AccountIndex("Yahoo:other@x.com", None),
                AccountIndex("2@gmail.com", None),
            ])
            legacy = AccountIndex("2@gmail.com")
            self.assertIsNone(db.get_original_name(legacy))
            self.assertEqual(db.get_type(legacy), OtpType.HOTP)
            self.assertEqual(db.get_counter(legacy), 3)
            # account cũ: đoán theo đuôi email
            self.assertTrue(db.is_google_account(legacy))
            self.assertFalse(db.is_google_account(AccountIndex("Yahoo:other@x.com")))
            self.assertTrue(db.is_db_consistent())
            self.assertEqual(db.list_table_column_names_lower_case(), list(EXPECTED_COLUMNS))

        # mở lại: không migrate thêm lần nữa
        with AccountDb(self.db_path, retry_backoff=0) as db:
            self.assertEqual(len(db.list_accounts()), 4)
            conn = sqlite3.connect(self.db_path)
            try:
                self.assertIn(UNIQUE_INDEX_NAME, _index_names(conn))
            finally:
                conn.close()


if __name__ == "__main__":
    unittest.main()
