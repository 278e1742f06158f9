"""
Unit tests for the labelled table model.
"""

import pandas as pd
import pytest

from cesdata.table import Column, SurveyTable


class TestColumn:
    """Tests for labelled columns."""

    def test_values_coerced_to_series(self):
        column = Column("age", [1, 2, 3])

        assert isinstance(column.values, pd.Series)
        assert column.values.name == "age"
        assert len(column) == 3

    def test_renamed_keeps_metadata(self):
        column = Column("Vote Choice", [1, 2], label="Vote", value_labels={1: "Liberal"})

        renamed = column.renamed("vote_choice")

        assert renamed.name == "vote_choice"
        assert renamed.values.name == "vote_choice"
        assert renamed.label == "Vote"
        assert renamed.value_labels == {1: "Liberal"}
        assert column.name == "Vote Choice"

    def test_labelled_values(self):
        column = Column("q", [1, 2, 9], value_labels={1: "Yes", 2: "No"})

        assert column.labelled_values().tolist() == ["Yes", "No", 9]

    def test_value_labels_copied(self):
        labels = {1: "Yes"}
        column = Column("q", [1], value_labels=labels)
        labels[2] = "No"

        assert column.value_labels == {1: "Yes"}


class TestSurveyTable:
    """Tests for survey tables."""

    def test_shape(self, table):
        assert table.shape == (3, 2)
        assert table.n_rows == 3
        assert table.n_columns == 2
        assert "Age" in table

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError):
            SurveyTable([Column("a", [1]), Column("a", [2])])

    def test_unequal_lengths_rejected(self):
        with pytest.raises(ValueError):
            SurveyTable([Column("a", [1, 2]), Column("b", [1])])

    def test_empty_table(self):
        empty = SurveyTable()
        assert empty.shape == (0, 0)

    def test_rename_with_mapping(self, table):
        renamed = table.rename({"Vote Choice": "vote"})

        assert renamed.column_names == ["vote", "Age"]
        assert renamed["vote"].value_labels == {1: "Liberal", 2: "Conservative"}

    def test_rename_with_callable(self, table):
        renamed = table.rename(str.upper)
        assert renamed.column_names == ["VOTE CHOICE", "AGE"]

    def test_rename_collision_rejected(self, table):
        with pytest.raises(ValueError):
            table.rename(lambda name: "same")

    def test_select(self, table):
        selected = table.select(["Age"])

        assert selected.column_names == ["Age"]
        assert selected["Age"].label == "Respondent age"

    def test_select_missing(self, table):
        with pytest.raises(KeyError):
            table.select(["nope"])

    def test_labels(self, table):
        assert table.labels() == {
            "Vote Choice": "Which party did you vote for?",
            "Age": "Respondent age",
        }
        assert table.value_labels() == {"Vote Choice": {1: "Liberal", 2: "Conservative"}}

    def test_to_dataframe(self, table):
        df = table.to_dataframe()

        assert list(df.columns) == ["Vote Choice", "Age"]
        assert df["Age"].tolist() == [34, 51, 28]
        assert df.attrs['column_labels']["Age"] == "Respondent age"
        assert df.attrs['value_labels']["Vote Choice"][2] == "Conservative"

    def test_from_dataframe(self, table):
        restored = SurveyTable.from_dataframe(table.to_dataframe())
        assert restored.equals(table)

    def test_equals_detects_label_change(self, table):
        other = SurveyTable([
            Column("Vote Choice", [1, 2, 1], label="Different", value_labels={1: "Liberal", 2: "Conservative"}),
            Column("Age", [34, 51, 28], label="Respondent age"),
        ])
        assert not table.equals(other)
