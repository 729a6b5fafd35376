"""Testing helpers."""

from contextlib import contextmanager
from typing import Generator
import shutil
import tempfile

from ..util import Database


@contextmanager
def temporary_db(create: bool = True,
                 drop: bool = True) -> Generator[Database, None, None]:
    """Provide an on-disk sqlite database for testing purposes."""
    db_path = tempfile.mkdtemp()
    database = Database(f'sqlite:///{db_path}/test.db')
    if create:
        database.create_all()
    try:
        yield database
    finally:
        if drop:
            database.drop_all()
        database.dispose()
        shutil.rmtree(db_path, ignore_errors=True)
