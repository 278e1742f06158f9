"""
Codebook and metadata summaries.

Tabular views over the question labels and value labels that a
``SurveyTable`` carries, plus CSV/Excel export of the codebook.
"""

import re
from pathlib import Path
from typing import Any, Optional, Union

import pandas as pd

from .logging import CESLogger
from .table import Column, SurveyTable


CODEBOOK_COLUMNS = ['variable', 'question', 'responses']
METADATA_COLUMNS = ['variable', 'has_label', 'has_value_labels', 'n_value_labels', 'data_type', 'label']


def _format_code(code: Any) -> str:
    # pyreadstat returns numeric codes as floats
    if isinstance(code, float) and code.is_integer():
        return str(int(code))
    return str(code)


def _responses(column: Column, include_values: bool) -> Optional[str]:
    if column.value_labels:
        if include_values:
            return "; ".join(
                f"{label} = {_format_code(code)}" for code, label in column.value_labels.items()
            )
        return "; ".join(str(label) for label in column.value_labels.values())
    if isinstance(column.values.dtype, pd.CategoricalDtype):
        return ", ".join(str(c) for c in column.values.cat.categories)
    return None


def create_codebook(table: SurveyTable, include_values: bool = True) -> pd.DataFrame:
    """One row per variable with its question text and response options.

    Args:
        table: Labelled survey table
        include_values: Write responses as ``label = code`` pairs rather than
            labels alone

    Returns:
        DataFrame with columns ``variable``, ``question`` and ``responses``.
        Variables without a label or response options hold None there.
    """
    rows = [
        {
            'variable': column.name,
            'question': column.label,
            'responses': _responses(column, include_values),
        }
        for column in table
    ]
    return pd.DataFrame(rows, columns=CODEBOOK_COLUMNS)


def export_codebook(
    codebook: pd.DataFrame,
    path: Union[str, Path],
    logger: Optional[CESLogger] = None,
) -> Path:
    """Write a codebook to ``.csv`` or ``.xlsx``.

    Excel output goes through ``DataFrame.to_excel`` and needs an Excel
    writer engine such as openpyxl.

    Raises:
        ValueError: unsupported file extension
    """
    if not isinstance(codebook, pd.DataFrame):
        raise TypeError("Codebook must be a pandas DataFrame")
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix == '.csv':
        codebook.to_csv(path, index=False)
    elif suffix == '.xlsx':
        codebook.to_excel(path, index=False)
    else:
        raise ValueError(f"Unsupported file extension {path.suffix!r}. Use .csv or .xlsx")

    if logger is not None:
        logger.info(f"Codebook exported successfully to: {path}")
    return path


def examine_metadata(
    table: SurveyTable,
    show_labels: bool = False,
    variable_pattern: Optional[str] = None,
    logger: Optional[CESLogger] = None,
) -> pd.DataFrame:
    """Overview of which variables carry labels and value labels.

    ``variable_pattern`` is a case-insensitive regular expression over
    variable names; when it matches nothing a warning is logged and every
    variable is reported. Question texts are shown only with
    ``show_labels=True``; otherwise labelled variables read ``[Has label]``.
    """
    columns = list(table)
    if variable_pattern is not None:
        pattern = re.compile(variable_pattern, re.IGNORECASE)
        matched = [c for c in columns if pattern.search(c.name)]
        if matched:
            columns = matched
        elif logger is not None:
            logger.warning(f"No variables match the pattern '{variable_pattern}'")

    rows = []
    for column in columns:
        has_label = column.label is not None
        if not has_label:
            label = None
        elif show_labels:
            label = column.label
        else:
            label = "[Has label]"
        rows.append({
            'variable': column.name,
            'has_label': has_label,
            'has_value_labels': bool(column.value_labels),
            'n_value_labels': len(column.value_labels or {}),
            'data_type': str(column.values.dtype),
            'label': label,
        })
    return pd.DataFrame(rows, columns=METADATA_COLUMNS)
