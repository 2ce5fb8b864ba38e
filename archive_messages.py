# archive_messages.py
"""One-off: move chat messages older than six months into the archive table."""
from marketplace.db_connection import DbConnection
from marketplace.housekeeping import archive_old_messages


def main() -> None:
    connection = DbConnection()
    connection.create_all()
    archive_old_messages(connection.build_db_session_factory())


if __name__ == "__main__":
    main()
