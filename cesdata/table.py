"""
Survey table model.

A ``SurveyTable`` is an ordered set of ``Column`` objects. Each column owns
its values together with its question label and value labels, so renaming,
selecting or copying a column always carries its metadata along.
"""

from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

import pandas as pd


@dataclass(frozen=True, eq=False)
class Column:
    """One survey variable.

    Attributes:
        name: Variable name
        values: Cell values, one per respondent
        label: Question text, if the file records one
        value_labels: Mapping of raw response codes to their text
    """
    name: str
    values: pd.Series
    label: Optional[str] = None
    value_labels: Optional[Dict[Any, str]] = None

    def __post_init__(self):
        if not isinstance(self.values, pd.Series):
            object.__setattr__(self, 'values', pd.Series(self.values, name=self.name))
        elif self.values.name != self.name:
            object.__setattr__(self, 'values', self.values.rename(self.name))
        if self.value_labels is not None:
            object.__setattr__(self, 'value_labels', dict(self.value_labels))

    def __len__(self) -> int:
        return len(self.values)

    def renamed(self, new_name: str) -> 'Column':
        return replace(self, name=new_name, values=self.values.rename(new_name))

    def labelled_values(self) -> pd.Series:
        """Values with codes replaced by their value labels where one exists."""
        if not self.value_labels:
            return self.values.copy()
        return self.values.map(lambda v: self.value_labels.get(v, v))

    def equals(self, other: 'Column') -> bool:
        return (
            isinstance(other, Column)
            and self.name == other.name
            and self.label == other.label
            and self.value_labels == other.value_labels
            and self.values.reset_index(drop=True).equals(other.values.reset_index(drop=True))
        )

    def __repr__(self) -> str:
        return f"Column({self.name!r}, n={len(self)}, label={self.label!r})"


class SurveyTable:
    """Ordered collection of labelled columns with equal length."""

    def __init__(self, columns: Iterable[Column] = ()):
        self._columns: Dict[str, Column] = {}
        n_rows = None
        for column in columns:
            if column.name in self._columns:
                raise ValueError(f"Duplicate column name: {column.name!r}")
            if n_rows is None:
                n_rows = len(column)
            elif len(column) != n_rows:
                raise ValueError(
                    f"Column {column.name!r} has {len(column)} values, expected {n_rows}"
                )
            self._columns[column.name] = column
        self._n_rows = n_rows or 0

    @property
    def columns(self) -> List[Column]:
        return list(self._columns.values())

    @property
    def column_names(self) -> List[str]:
        return list(self._columns)

    @property
    def n_rows(self) -> int:
        return self._n_rows

    @property
    def n_columns(self) -> int:
        return len(self._columns)

    @property
    def shape(self):
        return (self._n_rows, len(self._columns))

    def __len__(self) -> int:
        return self._n_rows

    def __iter__(self) -> Iterator[Column]:
        return iter(self._columns.values())

    def __contains__(self, name: str) -> bool:
        return name in self._columns

    def __getitem__(self, name: str) -> Column:
        return self._columns[name]

    def __repr__(self) -> str:
        return f"SurveyTable({self._n_rows} rows x {len(self._columns)} columns)"

    def labels(self) -> Dict[str, Optional[str]]:
        return {c.name: c.label for c in self}

    def value_labels(self) -> Dict[str, Dict[Any, str]]:
        return {c.name: dict(c.value_labels) for c in self if c.value_labels}

    def rename(self, mapping: Union[Mapping[str, str], Callable[[str], str]]) -> 'SurveyTable':
        """New table with columns renamed; metadata moves with each column.

        Raises:
            ValueError: two columns would end up with the same name
        """
        if callable(mapping):
            rename = mapping
        else:
            rename = lambda name: mapping.get(name, name)
        return SurveyTable(c.renamed(rename(c.name)) for c in self)

    def select(self, names: Sequence[str]) -> 'SurveyTable':
        missing = [n for n in names if n not in self._columns]
        if missing:
            raise KeyError(f"Unknown columns: {', '.join(missing)}")
        return SurveyTable(self._columns[n] for n in names)

    def equals(self, other: 'SurveyTable') -> bool:
        if not isinstance(other, SurveyTable) or self.column_names != other.column_names:
            return False
        return all(a.equals(b) for a, b in zip(self, other))

    def to_dataframe(self) -> pd.DataFrame:
        """DataFrame of raw values; labels are kept in ``df.attrs``."""
        df = pd.DataFrame({c.name: c.values.reset_index(drop=True) for c in self})
        df.attrs['column_labels'] = self.labels()
        df.attrs['value_labels'] = self.value_labels()
        return df

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        column_labels: Optional[Mapping[str, Optional[str]]] = None,
        value_labels: Optional[Mapping[str, Mapping[Any, str]]] = None,
    ) -> 'SurveyTable':
        column_labels = column_labels if column_labels is not None else df.attrs.get('column_labels', {})
        value_labels = value_labels if value_labels is not None else df.attrs.get('value_labels', {})
        if df.columns.has_duplicates:
            raise ValueError("DataFrame has duplicate column names")
        return cls(
            Column(
                name=str(name),
                values=df[name].reset_index(drop=True),
                label=column_labels.get(name),
                value_labels=value_labels.get(name) or None,
            )
            for name in df.columns
        )
