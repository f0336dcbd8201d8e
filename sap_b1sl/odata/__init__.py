"""
sap_b1sl.odata - List queries and pagination
=============================================

- iterate_pages / collect_pages: follow @odata.nextLink continuation links
- build_query: Service Layer query string construction
- escape_odata_literal: quote escaping for $filter literals

"""

from sap_b1sl.odata.paging import (
    collect_pages,
    extract_next_link,
    extract_values,
    iterate_pages,
)
from sap_b1sl.odata.query import build_query, escape_odata_literal

__all__ = [
    "iterate_pages",
    "collect_pages",
    "extract_next_link",
    "extract_values",
    "build_query",
    "escape_odata_literal",
]
