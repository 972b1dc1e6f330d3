"""
Unit tests for Excel-style criteria and conditional aggregation.
Expected values match what the same formulas return in a worksheet.
"""

import math

import numpy as np
import pandas as pd
import pytest

from analysis_lab.core import aggregation as agg


@pytest.fixture
def sheet():
    return pd.DataFrame({
        "fruit": ["apple", "Apple", "banana", "cherry", "apricot", None],
        "qty": [10, 5, 8, None, 3, 7],
        "price": [1.0, 1.5, 0.5, 4.0, 2.0, 3.0],
    })


@pytest.mark.unit
def test_countif_text_is_case_insensitive(sheet):
    assert agg.countif(sheet["fruit"], "apple") == 2


@pytest.mark.unit
def test_countif_wildcards(sheet):
    """'*' matches any run of characters and '?' exactly one."""
    assert agg.countif(sheet["fruit"], "ap*") == 3
    assert agg.countif(sheet["fruit"], "?pple") == 2
    assert agg.countif(sheet["fruit"], "<>a*") == 3


@pytest.mark.unit
def test_countif_escaped_wildcard():
    s = pd.Series(["a*b", "axb", "a?b"])

    assert agg.countif(s, "a~*b") == 1
    assert agg.countif(s, "a*b") == 3


@pytest.mark.unit
def test_countif_numeric_operators(sheet):
    assert agg.countif(sheet["qty"], ">5") == 3
    assert agg.countif(sheet["qty"], "<=5") == 2
    assert agg.countif(sheet["qty"], 8) == 1
    assert agg.countif(sheet["qty"], "<>8") == 5


@pytest.mark.unit
def test_countif_blank_and_non_blank(sheet):
    assert agg.countif(sheet["fruit"], "") == 1
    assert agg.countif(sheet["fruit"], "<>") == 5
    assert agg.countif(sheet["qty"], None) == 1


@pytest.mark.unit
def test_countifs_combines_pairs(sheet):
    assert agg.countifs(sheet["fruit"], "a*", sheet["qty"], ">4") == 2


@pytest.mark.unit
def test_countifs_requires_pairs(sheet):
    with pytest.raises(ValueError):
        agg.countifs(sheet["fruit"], "a*", sheet["qty"])


@pytest.mark.unit
def test_sumif_with_and_without_sum_range(sheet):
    assert agg.sumif(sheet["fruit"], "apple", sheet["qty"]) == pytest.approx(15.0)
    assert agg.sumif(sheet["qty"], ">4") == pytest.approx(30.0)


@pytest.mark.unit
def test_sumif_ignores_text_and_booleans_in_sum_range():
    crit = ["x", "x", "x", "x"]
    values = [1, "2", True, 4.5]

    assert agg.sumif(crit, "x", values) == pytest.approx(5.5)


@pytest.mark.unit
def test_sumifs_multiple_criteria(sheet):
    total = agg.sumifs(sheet["price"], sheet["fruit"], "a*", sheet["qty"], ">=5")

    assert total == pytest.approx(2.5)


@pytest.mark.unit
def test_mismatched_range_lengths_raise_value_error(sheet):
    with pytest.raises(ValueError, match="#VALUE!"):
        agg.sumif(sheet["fruit"], "apple", [1, 2, 3])
    with pytest.raises(ValueError, match="#VALUE!"):
        agg.sumifs([1, 2], sheet["fruit"], "apple")


@pytest.mark.unit
def test_averageif_and_averageifs(sheet):
    assert agg.averageif(sheet["fruit"], "apple", sheet["qty"]) == pytest.approx(7.5)
    assert agg.averageifs(sheet["price"], sheet["qty"], ">=5", sheet["fruit"], "<>") == pytest.approx(1.0)


@pytest.mark.unit
def test_averageif_without_matches_is_div0(sheet):
    with pytest.raises(ZeroDivisionError, match="#DIV/0!"):
        agg.averageif(sheet["fruit"], "durian", sheet["qty"])


@pytest.mark.unit
def test_maxifs_minifs_return_zero_without_matches(sheet):
    assert agg.maxifs(sheet["price"], sheet["fruit"], "a*") == pytest.approx(2.0)
    assert agg.minifs(sheet["price"], sheet["fruit"], "a*") == pytest.approx(1.0)
    assert agg.maxifs(sheet["price"], sheet["fruit"], "durian") == 0.0
    assert agg.minifs(sheet["price"], sheet["fruit"], "durian") == 0.0


@pytest.mark.unit
def test_percent_and_boolean_criteria():
    s = pd.Series([0.1, 0.5, 0.9, True, False])

    assert agg.countif(s, ">=50%") == 2
    assert agg.countif(s, "TRUE") == 1
    assert agg.countif(s, False) == 1


@pytest.mark.unit
def test_parse_criterion_rejects_unknown_types():
    with pytest.raises(TypeError):
        agg.parse_criterion(object())


@pytest.mark.unit
def test_aggregate_by_builds_sumifs_table(sheet):
    df = sheet.assign(group=["a", "a", "b", "b", "a", "b"])

    out = agg.aggregate_by(df, "group", "qty", ("sum", "count"))

    assert list(out.columns) == ["group", "qty_sum", "qty_count"]
    row_a = out.set_index("group").loc["a"]
    assert row_a["qty_sum"] == pytest.approx(18.0)
    assert row_a["qty_count"] == 3
    row_b = out.set_index("group").loc["b"]
    assert row_b["qty_count"] == 2


@pytest.mark.unit
def test_aggregate_by_unknown_column(sheet):
    with pytest.raises(KeyError):
        agg.aggregate_by(sheet, "missing", "qty")


@pytest.mark.unit
def test_pivot_table_has_total_margin():
    df = pd.DataFrame({
        "region": ["n", "n", "s", "s"],
        "kind": ["x", "y", "x", "y"],
        "amount": [1.0, 2.0, 3.0, 4.0],
    })

    out = agg.pivot_table(df, index="region", columns="kind", values="amount", margins=True)

    assert out.loc["Total", "Total"] == pytest.approx(10.0)
    assert out.loc["n", "y"] == pytest.approx(2.0)


@pytest.mark.unit
def test_aggregation_matches_manual_sum(sheet):
    """SUMIF over a numeric column agrees with a pandas mask."""
    expected = sheet.loc[sheet["price"] > 1.0, "qty"].sum()

    got = agg.sumif(sheet["price"], ">1", sheet["qty"])

    assert not math.isnan(got)
    assert got == pytest.approx(float(np.nansum(expected)))


@pytest.mark.unit
def test_pivot_table_positional_order_is_index_columns_values():
    df = pd.DataFrame({"r": ["n", "s", "n"], "k": ["x", "x", "y"], "v": [1.0, 2.0, 3.0]})

    out = agg.pivot_table(df, "r", "k", "v")

    assert list(out.columns) == ["x", "y"]
    assert out.loc["n", "y"] == pytest.approx(3.0)
    assert out.loc["s", "y"] == pytest.approx(0.0)
