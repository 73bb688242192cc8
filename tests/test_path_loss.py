"""
Unit tests for the log-distance reachability model.

Run with: pytest tests/test_path_loss.py -v
"""

import math

import pytest

from loraview.core.models import Node, PropagationConfig
from loraview.core.path_loss import fspl, log_distance, can_reach, compute_reach_lines


CFG = PropagationConfig(freq=868, gamma=2.5, ref_dist=0.1)


def make_node(node_id, x=0.0, y=0.0, z=0.0, tx_gain=14.0, rx_sens=-118.0):
    return Node(id=node_id, x=x, y=y, z=z, tx_gain=tx_gain, rx_sens=rx_sens)


class TestFormulas:
    """Test the path loss building blocks."""

    def test_fspl_reference_distance(self):
        """FSPL at 0.1km and 868MHz."""
        expected = 20 * math.log10(0.1) + 20 * math.log10(868) + 32.45
        assert fspl(0.1, 868) == pytest.approx(expected)
        assert fspl(0.1, 868) == pytest.approx(71.22, abs=0.01)

    def test_log_distance_at_one_km(self):
        """1000m against a 0.1 reference adds 10 * 2.5 * log10(10000) = 100dB."""
        assert log_distance(1000, CFG) == pytest.approx(fspl(0.1, 868) + 100)

    def test_log_distance_zero_is_minus_infinity(self):
        assert log_distance(0, CFG) == float('-inf')


class TestCanReach:
    """Test one-way link budget decisions."""

    def test_large_distance_link_fails(self):
        """14dBm over 1km cannot reach a -118dBm receiver."""
        a = make_node("a", x=0, y=0, z=1, tx_gain=14)
        b = make_node("b", x=1, y=0, z=1, rx_sens=-118)
        assert can_reach(CFG, a, b) is False

    def test_short_distance_link_succeeds(self):
        """10m apart: 14 - 121.22 = -107.22 > -118."""
        a = make_node("a")
        b = make_node("b", x=0.01)
        assert can_reach(CFG, a, b) is True

    def test_same_id_never_reaches(self):
        a = make_node("a")
        assert can_reach(CFG, a, make_node("a", x=0.01)) is False

    def test_directions_are_independent(self):
        """A weak transmitter can be heard by nobody while still hearing others."""
        strong = make_node("strong", tx_gain=14)
        weak = make_node("weak", x=0.01, tx_gain=-10)
        assert can_reach(CFG, strong, weak) is True
        assert can_reach(CFG, weak, strong) is False

    def test_deterministic(self):
        a = make_node("a", x=0.3, y=0.2, z=0.01)
        b = make_node("b", x=0.31, y=0.2, z=0.01)
        results = {can_reach(CFG, a, b) for _ in range(20)}
        assert len(results) == 1

    def test_coincident_distinct_nodes_always_reach(self):
        a = make_node("a", tx_gain=-200)
        b = make_node("b", rx_sens=0)
        assert can_reach(CFG, a, b) is True

    @pytest.mark.parametrize("cfg", [
        PropagationConfig(freq=868, gamma=2.5, ref_dist=0),
        PropagationConfig(freq=868, gamma=2.5, ref_dist=-1),
        PropagationConfig(freq=0, gamma=2.5, ref_dist=0.1),
        PropagationConfig(freq=-868, gamma=2.5, ref_dist=0.1),
        PropagationConfig(freq=868, gamma=float('nan'), ref_dist=0.1),
    ])
    def test_invalid_config_means_no_link(self, cfg):
        """Undefined path loss never turns into a link or an exception."""
        a = make_node("a")
        b = make_node("b", x=0.01)
        assert can_reach(cfg, a, b) is False


class TestComputeReachLines:
    """Test reach line enumeration."""

    def test_one_line_per_connected_pair(self):
        nodes = [make_node("a"), make_node("b", x=0.01), make_node("c", x=5)]
        lines = compute_reach_lines(CFG, nodes)

        assert len(lines) == 1
        line = lines[0]
        assert (line.a, line.b) == ("a", "b")
        assert line.a_to_b and line.b_to_a
        assert line.key == "a-b"

    def test_pair_is_canonicalized_by_id(self):
        """The lexicographically smaller id is always `a`, directions follow."""
        nodes = [make_node("zulu", tx_gain=-10), make_node("alpha", x=0.01)]
        line, = compute_reach_lines(CFG, nodes)
        assert (line.a, line.b) == ("alpha", "zulu")
        assert line.a_to_b is True
        assert line.b_to_a is False

    def test_input_order_does_not_matter(self):
        nodes = [make_node("a"), make_node("b", x=0.01), make_node("c", y=0.015), make_node("d", x=9)]
        forward = compute_reach_lines(CFG, nodes)
        backward = compute_reach_lines(CFG, list(reversed(nodes)))
        assert forward == backward
        assert len(forward) == 3

    def test_unreachable_pairs_are_omitted(self):
        nodes = [make_node("a"), make_node("b", x=2), make_node("c", y=4)]
        assert compute_reach_lines(CFG, nodes) == []

    def test_duplicate_ids_do_not_duplicate_lines(self):
        nodes = [make_node("a"), make_node("b", x=0.01), make_node("a", x=0.002)]
        lines = compute_reach_lines(CFG, nodes)
        assert [line.key for line in lines] == ["a-b"]

    def test_ids_with_dashes_stay_distinct(self):
        nodes = [make_node("a-b"), make_node("c", x=0.005), make_node("a"), make_node("b-c", y=0.005)]
        lines = compute_reach_lines(CFG, nodes)
        pairs = {(line.a, line.b) for line in lines}
        assert len(pairs) == len(lines) == 6

    def test_dashed_ids_share_display_key(self):
        """The key label can coincide, the (a, b) pair never does."""
        lines = compute_reach_lines(CFG, [make_node("a-b"), make_node("c", x=0.005),
                                          make_node("a"), make_node("b-c", y=0.005)])
        by_key = {}
        for line in lines:
            by_key.setdefault(line.key, []).append((line.a, line.b))
        assert sorted(by_key["a-b-c"]) == [("a", "b-c"), ("a-b", "c")]

    def test_empty_and_single_node(self):
        assert compute_reach_lines(CFG, []) == []
        assert compute_reach_lines(CFG, [make_node("a")]) == []
