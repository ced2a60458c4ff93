import numpy as np
import pytest

from prism_recon.reconstruction.inward import (
    FeedInwardStrategy,
    SalesDeficitInwardStrategy,
    select_inward_strategy,
)


def test_feed_strategy_passes_inward_through():
    inward = np.array([[0, 5, 0]], dtype=np.int64)
    sales = np.array([[1, 1, 1]], dtype=np.int64)
    strategy = FeedInwardStrategy()

    result = strategy.period_inward(np.array([2]), sales, inward)
    assert np.array_equal(result, inward)
    assert np.array_equal(strategy.may_receive(sales, inward), [[False, True, False]])


def test_sales_deficit_estimate():
    # Opening 5, week sales 4 + 8 = 12 -> 7 estimated on the first sale day
    opening = np.array([5], dtype=np.int64)
    sales = np.array([[0, 4, 8, 0, 0, 0, 0]], dtype=np.int64)
    inward = np.zeros_like(sales)

    result = SalesDeficitInwardStrategy().period_inward(opening, sales, inward)
    assert list(result[0]) == [0, 7, 0, 0, 0, 0, 0]
    # Input is left untouched
    assert inward.sum() == 0


def test_sales_deficit_leaves_fed_and_covered_items_alone():
    opening = np.array([5, 20, 0, -3], dtype=np.int64)
    sales = np.array(
        [
            [3, 3, 3],  # has a real receipt
            [3, 3, 3],  # covered by opening stock
            [0, 0, 0],  # no sales
            [0, 0, 2],  # negative opening widens the deficit
        ],
        dtype=np.int64,
    )
    inward = np.zeros_like(sales)
    inward[0, 1] = 4

    result = SalesDeficitInwardStrategy().period_inward(opening, sales, inward)
    assert list(result[0]) == [0, 4, 0]
    assert result[1].sum() == 0
    assert result[2].sum() == 0
    assert list(result[3]) == [0, 0, 5]


def test_estimate_may_receive_on_sale_days():
    sales = np.array([[0, 2, 0]], dtype=np.int64)
    inward = np.array([[1, 0, 0]], dtype=np.int64)
    mask = SalesDeficitInwardStrategy().may_receive(sales, inward)
    assert list(mask[0]) == [True, True, False]


def test_select_inward_strategy():
    assert isinstance(select_inward_strategy("feed", False), FeedInwardStrategy)
    assert isinstance(select_inward_strategy("estimate", True), SalesDeficitInwardStrategy)
    assert isinstance(select_inward_strategy("auto", True), FeedInwardStrategy)
    assert isinstance(select_inward_strategy("auto", False), SalesDeficitInwardStrategy)
    with pytest.raises(ValueError):
        select_inward_strategy("guess", True)
