from stats import iqr_mean, mean_cents, median, median_cents, trimmed_mean, weighted_median


def test_median_odd_and_even():
    assert median([1, 2, 3]) == 2
    assert median([3, 1, 2]) == 2
    assert median([1, 2, 3, 4]) == 2.5


def test_median_edge_cases():
    assert median([]) == 0
    assert median([42]) == 42
    assert median([7, 7, 7, 7]) == 7


def test_median_cents_rounds_half_up():
    assert median_cents([100, 101]) == 101
    assert median_cents([100, 300, 200]) == 200
    assert median_cents([]) == 0


def test_mean_cents():
    assert mean_cents([999, 1000, 1002]) == 1000
    assert mean_cents([1, 2]) == 2
    assert mean_cents([]) == 0


def test_trimmed_mean_drops_both_tails():
    assert trimmed_mean([1, 2, 3, 4, 100], 40) == 3


def test_trimmed_mean_without_trim_is_plain_mean():
    assert trimmed_mean([1, 2, 3, 4], 0) == 2.5


def test_trimmed_mean_edge_cases():
    assert trimmed_mean([], 20) == 0
    assert trimmed_mean([5], 50) == 5
    assert trimmed_mean([4, 4, 4, 4], 20) == 4
    # never trims everything away
    assert trimmed_mean([1, 9], 100) == 5


def test_iqr_mean_drops_outliers():
    assert iqr_mean([10, 12, 11, 13, 100]) == 11.5
    assert iqr_mean([5, 5, 5, 5]) == 5
    # too few values to find quartiles
    assert iqr_mean([1, 2, 100]) == 103 / 3
    assert iqr_mean([]) == 0


def test_weighted_median_favours_recent_values():
    assert weighted_median([10, 20, 30]) == 15
    assert weighted_median([100, 100, 1, 1]) == 100
    assert median([100, 100, 1, 1]) == 50.5
    assert weighted_median([4, 8]) == 6
    assert weighted_median([]) == 0
