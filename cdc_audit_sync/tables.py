"""Table selection: which tables in the database a run should export.

Two independent rules apply, in this order:

* an explicit table list is an allow-list, or a deny-list when *exclude*
  is set;
* a table whose name contains neither the audit prefix nor the audit
  suffix marker (case-insensitive) is never touched.
"""

from __future__ import annotations

import logging
from typing import AbstractSet, Iterable, List, Optional, Union

logger = logging.getLogger(__name__)


def parse_table_list(
    value: Union[None, str, Iterable[str]],
) -> Optional[frozenset]:
    """Normalise a comma-separated string or iterable into a set of names.

    Returns ``None`` when no names remain, meaning "no explicit list".
    """
    if value is None:
        return None
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = list(value)
    names = frozenset(str(t).strip() for t in items if str(t).strip())
    return names or None


def _contains(name: str, marker: Optional[str]) -> bool:
    return bool(marker) and marker.lower() in name.lower()


def is_audit_table(
    name: str, prefix: Optional[str] = None, suffix: Optional[str] = None,
) -> bool:
    """True if *name* contains the prefix or suffix marker.

    Empty or ``None`` markers never match.
    """
    return _contains(name, prefix) or _contains(name, suffix)


def table_selected(
    name: str, tables: Optional[AbstractSet[str]], exclude: bool = False,
) -> bool:
    """Apply the explicit allow/deny list to *name*."""
    if tables is None:
        return True
    return (name in tables) != exclude


def select_tables(
    all_tables: Iterable[str],
    tables: Optional[AbstractSet[str]] = None,
    exclude: bool = False,
    prefix: Optional[str] = None,
    suffix: Optional[str] = None,
) -> List[str]:
    """Return the ordered subset of *all_tables* this run should process."""
    selected: List[str] = []
    for name in all_tables:
        if not table_selected(name, tables, exclude):
            logger.info("Found table %s.  Not in output list.  skipping", name)
            continue
        if not is_audit_table(name, prefix, suffix):
            logger.info(
                "Found table %s.  Appears to be a non-audit table.  skipping", name,
            )
            continue
        selected.append(name)
    return selected
