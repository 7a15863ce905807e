"""Tests for group aggregation module."""

import logging

import numpy as np
import pandas as pd
import pytest

from multima.aggregation import (
    GroupRepresentatives,
    compute_group_representatives,
    resolve_represent_function,
)
from multima.normalization import encode_groups


@pytest.fixture
def plate_data():
    """Six samples on three plates, three targets (one all missing)."""
    data = pd.DataFrame({
        'IL6': [9.0, 11.0, 11.0, 13.0, 13.0, 15.0],
        'TNF': [np.nan, 4.0, 5.0, 7.0, 7.0, 9.0],
        'CRP': [np.nan] * 6,
    }, index=[f'S{i}' for i in range(6)])
    plates = ['P1', 'P1', 'P2', 'P2', 'P3', 'P3']
    return data, plates


class TestEncodeGroups:
    """Tests for group label encoding."""

    def test_sorted_label_order(self):
        """Non-categorical labels are ordered by sorting."""
        codes, labels = encode_groups(['b', 'a', 'c', 'a'], 4)
        assert list(labels) == ['a', 'b', 'c']
        assert list(codes) == [1, 0, 2, 0]

    def test_categorical_order_preserved(self):
        """Categorical labels keep their category order, unused dropped."""
        groups = pd.Categorical(
            ['late', 'early', 'late'],
            categories=['late', 'early', 'unused'],
        )
        codes, labels = encode_groups(groups, 3)
        assert list(labels) == ['late', 'early']
        assert list(codes) == [0, 1, 0]

    def test_length_mismatch_raises(self):
        """Label count must match the number of samples."""
        with pytest.raises(ValueError, match="does not match"):
            encode_groups(['a', 'b'], 3)

    def test_single_group_raises(self):
        """One group leaves no deviation subspace."""
        with pytest.raises(ValueError, match="At least 2"):
            encode_groups(['a', 'a', 'a'], 3)

    def test_missing_label_raises(self):
        """Missing group labels are rejected."""
        with pytest.raises(ValueError, match="missing"):
            encode_groups(['a', None, 'b'], 3)


class TestComputeGroupRepresentatives:
    """Tests for the representative matrix."""

    def test_mean_ignoring_missing(self, plate_data):
        """Default representative is the NaN-ignoring mean."""
        data, plates = plate_data
        codes, labels = encode_groups(plates, len(data))

        result = compute_group_representatives(data, codes, labels)

        assert isinstance(result, GroupRepresentatives)
        assert list(result.values.index) == ['P1', 'P2', 'P3']
        assert list(result.values.columns) == ['IL6', 'TNF', 'CRP']
        assert result.values.loc['P1', 'IL6'] == pytest.approx(10.0)
        assert result.values.loc['P3', 'IL6'] == pytest.approx(14.0)
        # Single observed value on P1
        assert result.values.loc['P1', 'TNF'] == pytest.approx(4.0)

    def test_all_missing_flagged(self, plate_data):
        """Targets missing in every group are flagged for exclusion."""
        data, plates = plate_data
        codes, labels = encode_groups(plates, len(data))

        result = compute_group_representatives(data, codes, labels)

        assert list(result.all_missing) == [False, False, True]
        assert list(result.excluded_targets) == ['CRP']
        assert list(result.retained_positions) == [0, 1]

    def test_all_missing_warning(self, plate_data, caplog):
        """A single warning names the excluded targets."""
        data, plates = plate_data
        codes, labels = encode_groups(plates, len(data))

        with caplog.at_level(logging.WARNING, logger='multima.aggregation'):
            compute_group_representatives(data, codes, labels)

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert 'CRP' in warnings[0].getMessage()

    def test_no_warning_without_missing_targets(self, plate_data, caplog):
        """Partially missing targets are not reported as excluded."""
        data, plates = plate_data
        data = data.drop(columns='CRP')
        codes, labels = encode_groups(plates, len(data))

        with caplog.at_level(logging.WARNING, logger='multima.aggregation'):
            result = compute_group_representatives(data, codes, labels)

        assert not result.all_missing.any()
        assert not [r for r in caplog.records if r.levelno == logging.WARNING]

    def test_median_represent(self):
        """Named median aggregator."""
        data = pd.DataFrame({'T1': [1.0, 2.0, 10.0, 5.0, 6.0, 7.0]})
        codes, labels = encode_groups(['a', 'a', 'a', 'b', 'b', 'b'], 6)

        result = compute_group_representatives(data, codes, labels, represent='median')

        assert result.values.loc['a', 'T1'] == pytest.approx(2.0)
        assert result.values.loc['b', 'T1'] == pytest.approx(6.0)

    def test_custom_callable(self):
        """Any callable returning one number per group and target."""
        data = pd.DataFrame({'T1': [1.0, 3.0, 5.0, 4.0]})
        codes, labels = encode_groups(['a', 'a', 'b', 'b'], 4)

        result = compute_group_representatives(
            data, codes, labels, represent=lambda values: values.max(),
        )

        assert result.values.loc['a', 'T1'] == pytest.approx(3.0)
        assert result.values.loc['b', 'T1'] == pytest.approx(5.0)

    def test_non_scalar_represent_raises(self):
        """Aggregators must return a single value."""
        data = pd.DataFrame({'T1': [1.0, 3.0, 5.0, 4.0]})
        codes, labels = encode_groups(['a', 'a', 'b', 'b'], 4)

        with pytest.raises(ValueError, match="Represent function"):
            compute_group_representatives(
                data, codes, labels, represent=lambda values: values.describe(),
            )

    def test_unknown_represent_name(self):
        """Unknown aggregator names are rejected."""
        with pytest.raises(ValueError, match="Unknown represent function"):
            resolve_represent_function('geometric')
