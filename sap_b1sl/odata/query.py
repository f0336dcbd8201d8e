"""
sap_b1sl.odata.query - Query string construction
=================================================

Helpers for building Service Layer list queries such as
``Orders?$select=DocEntry,CardCode&$filter=DocTotal gt 100&$top=20``.
"""

from __future__ import annotations

from typing import Dict, Optional, Sequence


def escape_odata_literal(value: str) -> str:
    """
    Escape a string value for use in OData $filter expressions.

    Examples
    --------
    >>> escape_odata_literal("O'Brien")
    "O''Brien"
    """
    return value.replace("'", "''")


def _join_csv(items: Sequence[str]) -> str:
    """Join items as comma-separated values, stripping whitespace."""
    return ",".join([s.strip() for s in items if s and s.strip()])


def build_query(
    entity_set: str,
    *,
    fields: Optional[Sequence[str]] = None,
    filter_expr: Optional[str] = None,
    orderby: Optional[str] = None,
    top: Optional[int] = None,
    skip: Optional[int] = None,
    expand: Optional[str] = None,
    extra_params: Optional[Dict[str, str]] = None,
) -> str:
    """
    Build a query string for ``ServiceLayer.find`` or ``ServiceLayer.query``.

    Values are inserted as written; the Service Layer accepts unencoded
    OData expressions and ``requests`` percent-encodes the final URL.

    Parameters
    ----------
    entity_set : str
        Entity set name, e.g. "BusinessPartners"
    fields : sequence of str, optional
        Fields for $select
    filter_expr : str, optional
        Raw $filter expression
    orderby : str, optional
        $orderby expression
    top : int, optional
        $top
    skip : int, optional
        $skip
    expand : str, optional
        $expand
    extra_params : dict, optional
        Additional parameters, appended last

    Examples
    --------
    >>> build_query(
    ...     "BusinessPartners",
    ...     fields=["CardCode", "CardName"],
    ...     filter_expr="CardType eq 'cCustomer'",
    ...     top=50,
    ... )
    "BusinessPartners?$select=CardCode,CardName&$filter=CardType eq 'cCustomer'&$top=50"
    """
    params: Dict[str, str] = {}
    if fields:
        select = _join_csv(fields)
        if select:
            params["$select"] = select
    if filter_expr:
        params["$filter"] = filter_expr
    if orderby:
        params["$orderby"] = orderby
    if expand:
        params["$expand"] = expand
    if top is not None:
        params["$top"] = str(int(top))
    if skip is not None:
        params["$skip"] = str(int(skip))
    if extra_params:
        params.update(extra_params)

    path = entity_set.strip("/")
    if not params:
        return path
    return path + "?" + "&".join(f"{k}={v}" for k, v in params.items())
