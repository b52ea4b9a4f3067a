"""
Spatial, set and text helpers shared by the query layer and the in-memory
predicate checks.

The same functions are registered on every SQLite connection so that a
filter evaluated in SQL and one evaluated against a loaded rule agree.
"""

import json
import logging
from functools import lru_cache
from typing import Iterable, Optional, Union

from shapely import wkt
from shapely.errors import ShapelyError
from shapely.geometry.base import BaseGeometry

from annotation_api.errors import ValidationError


logger = logging.getLogger(__name__)

POLYGON_TYPES = ("Polygon", "MultiPolygon")

# Names under which the helpers are exposed to SQL
SQL_INTERSECTS = "wkt_intersects"
SQL_OVERLAPS = "json_array_overlaps"
SQL_CASEFOLD = "py_casefold"


def parse_polygon(text: str) -> BaseGeometry:
    """
    Parse a WKT polygon or multipolygon.

    Raises:
        ValidationError: if the text is not WKT or not a non-empty polygon
    """
    try:
        shape = wkt.loads(text)
    except (ShapelyError, ValueError, TypeError) as e:
        raise ValidationError(f"Invalid WKT geometry: {text!r}") from e

    if shape.geom_type not in POLYGON_TYPES or shape.is_empty:
        raise ValidationError(
            f"Geometry must be a POLYGON or MULTIPOLYGON, got {shape.geom_type}"
        )
    return shape


@lru_cache(maxsize=1024)
def _cached_shape(text: str) -> Optional[BaseGeometry]:
    try:
        return wkt.loads(text)
    except (ShapelyError, ValueError, TypeError):
        logger.warning(f"Stored geometry is not valid WKT: {text[:80]}")
        return None


def geometries_intersect(stored: Optional[str], query: Optional[str]) -> bool:
    """True when both WKT strings are present and their shapes intersect."""
    if not stored or not query:
        return False
    a = _cached_shape(stored)
    b = _cached_shape(query)
    if a is None or b is None:
        return False
    return a.intersects(b)


def _as_list(value: Union[None, str, Iterable[str]]) -> list:
    if value is None:
        return []
    if isinstance(value, str):
        decoded = json.loads(value)
        return decoded if isinstance(decoded, list) else []
    return list(value)


def lists_overlap(stored: Union[None, str, Iterable[str]],
                  wanted: Union[None, str, Iterable[str]]) -> bool:
    """True when the two lists (or JSON-encoded arrays) share an element."""
    return bool(set(_as_list(stored)) & set(_as_list(wanted)))


def casefold(text: Optional[str]) -> Optional[str]:
    """Unicode case folding; SQLite's own ``lower()`` only folds ASCII."""
    return None if text is None else text.casefold()


def register_sql_functions(dbapi_conn) -> None:
    """Expose the helpers as deterministic SQL functions on a sqlite3 connection."""
    dbapi_conn.create_function(
        SQL_INTERSECTS, 2,
        lambda a, b: int(geometries_intersect(a, b)),
        deterministic=True,
    )
    dbapi_conn.create_function(
        SQL_OVERLAPS, 2,
        lambda a, b: int(lists_overlap(a, b)),
        deterministic=True,
    )
    dbapi_conn.create_function(SQL_CASEFOLD, 1, casefold, deterministic=True)
