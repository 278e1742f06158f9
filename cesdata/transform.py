"""
CES Data Transform Module

Column-name normalisation and column selection over ``SurveyTable``.
Neither operation touches cell values or label metadata.
"""

import re
from typing import Dict, List, Optional, Sequence

from .logging import CESLogger
from .table import SurveyTable


_WHITESPACE = re.compile(r"\s+")


def normalize_name(name: str) -> str:
    """Lower-case, trimmed, with whitespace runs replaced by one underscore.

    >>> normalize_name("Vote Choice")
    'vote_choice'
    """
    return _WHITESPACE.sub("_", str(name).strip().lower())


def normalized_mapping(names: Sequence[str]) -> Dict[str, str]:
    """Old name -> new name for every column.

    Names that collide after normalisation keep the first occurrence as is
    and suffix later ones with ``_2``, ``_3``, ... so no column is dropped.
    """
    mapping: Dict[str, str] = {}
    taken = set()
    for name in names:
        new = normalize_name(name)
        if new in taken:
            base, counter = new, 2
            while f"{base}_{counter}" in taken:
                counter += 1
            new = f"{base}_{counter}"
        taken.add(new)
        mapping[name] = new
    return mapping


def normalize_column_names(table: SurveyTable, logger: Optional[CESLogger] = None) -> SurveyTable:
    mapping = normalized_mapping(table.column_names)
    if logger is not None:
        collisions = [
            (old, new) for old, new in mapping.items()
            if new != normalize_name(old)
        ]
        for old, new in collisions:
            logger.warning(f"Column {old!r} collides with another column after normalisation; renamed to {new!r}")
        changed = sum(1 for old, new in mapping.items() if old != new)
        logger.debug(f"Normalised {changed} of {table.n_columns} column names")
    return table.rename(mapping)


def subset_columns(
    table: SurveyTable,
    variables: Optional[Sequence[str]] = None,
    regex: bool = False,
    logger: Optional[CESLogger] = None,
) -> SurveyTable:
    """Select columns by exact name or by case-insensitive pattern.

    With ``regex=True`` the variables are joined into one alternation. When
    nothing matches, the full table is returned and a warning is logged.
    """
    if variables is None:
        return table
    if isinstance(variables, str):
        variables = [variables]

    if regex:
        pattern = re.compile("|".join(variables), re.IGNORECASE)
        selected: List[str] = [n for n in table.column_names if pattern.search(n)]
        if not selected:
            if logger is not None:
                logger.warning("No variables matched the regex pattern. Returning full dataset.")
            return table
        return table.select(selected)

    missing = [v for v in variables if v not in table]
    if missing and logger is not None:
        logger.warning(f"The following variables don't exist in the dataset: {', '.join(missing)}")

    selected = [v for v in dict.fromkeys(variables) if v in table]
    if not selected:
        if logger is not None:
            logger.warning("None of the specified variables exist in the dataset. Returning full dataset.")
        return table
    return table.select(selected)
