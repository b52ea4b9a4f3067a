"""
Tests for engine creation and the SQL functions registered on connections.
"""

import pytest
from sqlalchemy import text

from annotation_api.database import get_engine
from annotation_api.errors import ConfigurationError


@pytest.mark.parametrize("url", [
    "postgresql://annotations@localhost/annotations",
    "mysql+pymysql://annotations@localhost/annotations",
])
def test_non_sqlite_backend_is_refused(url):
    with pytest.raises(ConfigurationError, match="sqlite"):
        get_engine(url)


def test_sqlite_engine_registers_rule_functions():
    engine = get_engine("sqlite://")
    try:
        with engine.connect() as conn:
            assert conn.execute(text("SELECT py_casefold('ÅLESUND')")).scalar() == "ålesund"
            assert conn.execute(
                text("""SELECT json_array_overlaps('["A", "B"]', '["B"]')""")
            ).scalar() == 1
            assert conn.execute(text(
                "SELECT wkt_intersects('POLYGON((0 0, 0 1, 1 1, 1 0, 0 0))', "
                "'POLYGON((10 10, 10 11, 11 11, 10 10))')"
            )).scalar() == 0
    finally:
        engine.dispose()
