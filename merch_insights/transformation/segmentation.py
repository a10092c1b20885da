"""
ABC Segmentation

Classifies products by cumulative revenue contribution. Products are ranked
by revenue and placed by the running share including their own revenue: up
to 80% is A, up to 95% is B, the rest is C. A product that alone carries more
than the A share lands in B or C.
"""

from typing import Dict, Mapping

import numpy as np
import structlog

from merch_insights.domain import ProductStats, Segment

logger = structlog.get_logger(__name__)


def classify_revenues(
    revenues: np.ndarray,
    a_share: float = 80.0,
    b_share: float = 95.0,
) -> np.ndarray:
    """
    Segment labels aligned with ``revenues``.

    Ordering is a stable descending sort, so ties keep input order.
    """
    labels = np.full(len(revenues), Segment.C.value, dtype=object)
    total = float(revenues.sum()) if len(revenues) else 0.0
    if total <= 0:
        return labels

    order = np.argsort(-revenues, kind="stable")
    ranked = revenues[order]
    # rounded so exact boundaries such as 80.0 are not lost to float noise
    share = np.round(np.cumsum(ranked) * 100.0 / total, 9)

    ranked_labels = np.where(
        share <= a_share,
        Segment.A.value,
        np.where(share <= b_share, Segment.B.value, Segment.C.value),
    ).astype(object)
    ranked_labels[ranked <= 0] = Segment.C.value

    labels[order] = ranked_labels
    return labels


def segment_products(
    stats: Mapping[str, ProductStats],
    a_share: float = 80.0,
    b_share: float = 95.0,
) -> Dict[str, ProductStats]:
    """
    Return copies of ``stats`` with their segment assigned.

    Every product receives exactly one segment; zero-revenue products are C.
    """
    if not stats:
        return {}

    codes = list(stats)
    revenues = np.array([stats[code].total_revenue for code in codes], dtype=float)
    labels = classify_revenues(revenues, a_share, b_share)

    segmented = {
        code: stats[code].model_copy(update={"segment": Segment(label)})
        for code, label in zip(codes, labels)
    }

    logger.debug(
        "Products segmented",
        products=len(segmented),
        a=int((labels == Segment.A.value).sum()),
        b=int((labels == Segment.B.value).sum()),
        c=int((labels == Segment.C.value).sum()),
    )
    return segmented
