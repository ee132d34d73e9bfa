"""Tests for quantity rounding and pack counting."""

import pytest

from larder.core.rounding import packs_needed, round_display, round_quantity


@pytest.mark.unit
class TestRounding:
    def test_round_quantity_half_up(self) -> None:
        """Test internal rounding keeps 4 decimals and rounds halves up."""
        assert round_quantity(1.23456) == 1.2346
        assert round_quantity(0.00005) == 0.0001
        assert round_quantity(2.5) == 2.5

    def test_round_display_half_up(self) -> None:
        """Test display rounding keeps 2 decimals and rounds halves up."""
        assert round_display(2.345) == 2.35
        assert round_display(1299.999) == 1300.0
        assert round_display(0.004) == 0.0

    def test_round_quantity_absorbs_float_drift(self) -> None:
        """Test accumulated float error disappears after rounding."""
        assert round_quantity(0.1 + 0.2) == 0.3


@pytest.mark.unit
class TestPacksNeeded:
    def test_rounds_up_partial_packs(self) -> None:
        """Test a partial package always means one more package."""
        assert packs_needed(1300, 1000) == 2
        assert packs_needed(1001, 1000) == 2

    def test_exact_multiple(self) -> None:
        """Test an exact multiple does not add a spare package."""
        assert packs_needed(2000, 1000) == 2

    def test_ignores_float_drift(self) -> None:
        """Test 0.3 / 0.1 is three packages, not four."""
        assert packs_needed(0.1 + 0.2, 0.1) == 3

    def test_minimum_one_pack(self) -> None:
        """Test tiny needs still recommend one package."""
        assert packs_needed(0.01, 1000) == 1

    def test_covers_need(self) -> None:
        """Test packs times size never falls below the need."""
        for need in (0.5, 1, 7.25, 999.99, 1000.01, 12345.6):
            packs = packs_needed(need, 250)
            assert packs * 250 >= need

    def test_rejects_non_positive_package(self) -> None:
        """Test a zero package size is refused."""
        with pytest.raises(ValueError, match="Package size must be positive"):
            packs_needed(10, 0)
