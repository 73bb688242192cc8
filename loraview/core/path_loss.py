# --- File: loraview/core/path_loss.py ---
import math
import logging
from typing import Dict, Iterable, List, Tuple
from .models import Node, PropagationConfig, ReachLine

logger = logging.getLogger(__name__)

def fspl(distance_km: float, freq_mhz: float) -> float:
    """
    Free-space path loss in dB for a distance in km and a frequency in MHz.
    https://en.wikipedia.org/wiki/Free-space_path_loss
    """
    return 20 * math.log10(distance_km) + 20 * math.log10(freq_mhz) + 32.45

def log_distance(distance_m: float, config: PropagationConfig) -> float:
    """
    Log-distance path loss referenced to the free-space loss at config.ref_dist.
    A zero distance yields -inf (the link always closes).
    https://en.wikipedia.org/wiki/Log-distance_path_loss_model
    """
    if distance_m == 0:
        return float('-inf')
    return fspl(config.ref_dist, config.freq) + 10 * config.gamma * math.log10(distance_m / config.ref_dist)

def can_reach(config: PropagationConfig, a: Node, b: Node) -> bool:
    """
    Checks the one-way link budget a -> b: a.tx_gain - PL(d) > b.rx_sens.
    The reverse direction is an independent call and may disagree.
    """
    if a.id == b.id:
        return False

    # log10 is undefined for these, treat as no valid link
    if not config.ref_dist > 0 or not config.freq > 0:
        return False

    distance_m = math.dist(a.position(), b.position()) * 1000
    try:
        margin = a.tx_gain - log_distance(distance_m, config)
    except (ValueError, OverflowError):
        logger.debug(f"Path loss undefined between {a.id} and {b.id} at {distance_m}m")
        return False

    if math.isnan(margin) or math.isnan(b.rx_sens):
        return False
    return margin > b.rx_sens

def compute_reach_lines(config: PropagationConfig, nodes: Iterable[Node]) -> List[ReachLine]:
    """
    Enumerates every unordered pair of distinct nodes that has at least one
    working direction. Pairs are keyed on sorted ids so each appears once,
    whatever the input order. Result is sorted by key.
    """
    node_list = list(nodes)
    lines: Dict[Tuple[str, str], ReachLine] = {}

    for i, first in enumerate(node_list):
        for second in node_list[i + 1:]:
            if first.id == second.id:
                continue
            a, b = sorted((first, second), key=lambda n: n.id)
            key = (a.id, b.id)
            if key in lines:
                continue

            line = ReachLine(
                a=a.id,
                b=b.id,
                a_to_b=can_reach(config, a, b),
                b_to_a=can_reach(config, b, a),
            )
            if line.a_to_b or line.b_to_a:
                lines[key] = line

    return [lines[key] for key in sorted(lines)]
