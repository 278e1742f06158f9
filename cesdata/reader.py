"""
Statistical file reader.

Parses SPSS ``.sav`` and Stata ``.dta`` files into a ``SurveyTable`` with
question labels and value labels attached to each column. Values are kept
as raw codes; labels are never applied to the data.
"""

from pathlib import Path
from typing import Optional

import pyreadstat

from .catalog import Encoding, SourceFormat
from .config import CESError
from .table import Column, SurveyTable


class ParseError(CESError):
    """Raised when the data file cannot be parsed."""

    def __init__(self, path: Path, source_format: SourceFormat, reason: str):
        self.path = Path(path)
        self.source_format = source_format
        super().__init__(
            f"Could not read {source_format.value.upper()} file {path}: {reason}"
        )


_READERS = {
    SourceFormat.SPSS: 'read_sav',
    SourceFormat.STATA: 'read_dta',
}


def read_survey_file(
    path: Path,
    source_format: SourceFormat,
    encoding: Encoding = Encoding.DEFAULT,
) -> SurveyTable:
    """Read a statistical file into a labelled table.

    Raises:
        ParseError: the file is missing, truncated or not of ``source_format``
    """
    path = Path(path)
    reader = getattr(pyreadstat, _READERS[source_format])
    kwargs = {'apply_value_formats': False}
    if encoding.charset:
        kwargs['encoding'] = encoding.charset

    try:
        df, meta = reader(str(path), **kwargs)
    except Exception as e:
        raise ParseError(path, source_format, str(e)) from e

    column_labels = getattr(meta, 'column_names_to_labels', None) or {}
    value_labels = getattr(meta, 'variable_value_labels', None) or {}

    return SurveyTable(
        Column(
            name=str(name),
            values=df[name],
            label=_clean_label(column_labels.get(name)),
            value_labels=value_labels.get(name) or None,
        )
        for name in df.columns
    )


def _clean_label(label: Optional[str]) -> Optional[str]:
    if label is None:
        return None
    label = str(label).strip()
    return label or None
