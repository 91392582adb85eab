import pytest

from shoppos.money import divide_half_up, format_cents


@pytest.mark.parametrize("numerator,denominator,expected", [
    (1200, 12, 100),
    (10, 4, 3),
    (9, 4, 2),
    (900, 4, 225),
    (5, 2, 3),
    (0, 7, 0),
])
def test_divide_half_up(numerator, denominator, expected):
    assert divide_half_up(numerator, denominator) == expected


def test_divide_rejects_zero_denominator():
    with pytest.raises(ValueError):
        divide_half_up(1, 0)


@pytest.mark.parametrize("cents,expected", [
    (0, "0.00"),
    (5, "0.05"),
    (150, "1.50"),
    (1234567, "12,345.67"),
    (-250, "-2.50"),
    (None, "-"),
])
def test_format_cents(cents, expected):
    assert format_cents(cents) == expected
