"""
OCR Routing Policy
==================

Decides which selected pages of a document go to the OCR provider, based
on the per-page quality evaluations.

Usage:
    from hybrid_extraction.router import ContentRouter, select_pages

    pages = select_pages(requested=[5, 2, 2, 999], total_pages=10)  # [2, 5]
    decision = ContentRouter().route(evaluations, trigger_ratio=0.25)

    print(decision.scope)               # OCRScope.FLAGGED
    print(decision.zero_indexed_pages)  # pages for the single OCR call

Routing Matrix:
    | Flagged pages                 | Scope    | OCR call pages        |
    |-------------------------------|----------|-----------------------|
    | none                          | NONE     | (no call)             |
    | ratio <= trigger ratio        | FLAGGED  | flagged pages only    |
    | ratio >  trigger ratio        | ALL      | every selected page   |

Once a large share of a document needs OCR, the whole selection is sent in
one call so adjacent pages share the same formatting.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Sequence

from hybrid_extraction.models import PageEvaluation


class OCRScope(Enum):
    """Which selected pages the OCR call covers."""

    NONE = "none"
    FLAGGED = "flagged"
    ALL = "all"


@dataclass
class RoutingDecision:
    """Routing decision from ContentRouter.route()."""

    scope: OCRScope
    selected_pages: list[int]  # 1-indexed, ascending
    flagged_pages: list[int]  # 1-indexed, ascending
    ocr_pages: list[int] = field(default_factory=list)  # 1-indexed, ascending
    ocr_ratio: float = 0.0
    trigger_ratio: float = 0.0

    @property
    def needs_ocr(self) -> bool:
        return bool(self.ocr_pages)

    @property
    def zero_indexed_pages(self) -> list[int]:
        """Pages in the form the OCR provider expects."""
        return [page - 1 for page in self.ocr_pages]

    @property
    def reasoning(self) -> str:
        """Human-readable explanation, used for logging."""
        parts = [
            f"Selected: {len(self.selected_pages)} pages",
            f"Flagged: {len(self.flagged_pages)}",
            f"Ratio: {self.ocr_ratio:.2f} (trigger {self.trigger_ratio:.2f})",
            f"Scope: {self.scope.value}",
        ]

        if not self.ocr_pages:
            parts.append("No OCR required")
        elif len(self.ocr_pages) <= 5:
            parts.append(f"OCR extraction: pages {self.ocr_pages}")
        else:
            parts.append(f"OCR extraction: {len(self.ocr_pages)} pages")

        return " | ".join(parts)


class ContentRouter:
    """Applies the OCR scope policy to a document's page evaluations."""

    def route(
        self,
        evaluations: Sequence[PageEvaluation],
        trigger_ratio: float,
    ) -> RoutingDecision:
        """
        Determine the OCR scope for one document.

        Args:
            evaluations: One evaluation per selected page, in page order
            trigger_ratio: Flagged share above which all pages are OCR'd

        Returns:
            RoutingDecision with the pages for the single OCR call
        """
        selected = [ev.page_number for ev in evaluations]
        flagged = [ev.page_number for ev in evaluations if ev.needs_ocr]
        return decide_ocr_pages(selected, flagged, trigger_ratio)


def decide_ocr_pages(
    selected: Sequence[int],
    flagged: Sequence[int],
    trigger_ratio: float,
) -> RoutingDecision:
    """
    Choose OCR pages from the selected and flagged page lists.

    Args:
        selected: Selected pages (1-indexed)
        flagged: Pages whose text layer needs OCR (1-indexed)
        trigger_ratio: Flagged share above which all selected pages are OCR'd

    Returns:
        RoutingDecision
    """
    selected = sorted(selected)
    flagged = sorted(flagged)
    ratio = len(flagged) / len(selected) if selected else 0.0

    if not flagged:
        scope = OCRScope.NONE
        ocr_pages: list[int] = []
    elif ratio > trigger_ratio:
        scope = OCRScope.ALL
        ocr_pages = list(selected)
    else:
        scope = OCRScope.FLAGGED
        ocr_pages = list(flagged)

    return RoutingDecision(
        scope=scope,
        selected_pages=selected,
        flagged_pages=flagged,
        ocr_pages=ocr_pages,
        ocr_ratio=ratio,
        trigger_ratio=trigger_ratio,
    )


def select_pages(requested: Iterable[int] | None, total_pages: int) -> list[int]:
    """
    Normalize a requested page subset.

    Duplicates and pages outside ``[1, total_pages]`` are dropped and the
    rest sorted. An empty result (or no request) selects every page.

    Args:
        requested: Requested 1-indexed pages, in any order
        total_pages: Page count of the document

    Returns:
        Ascending list of 1-indexed pages
    """
    if total_pages <= 0:
        return []

    selected = sorted({p for p in (requested or ()) if 1 <= p <= total_pages})
    if not selected:
        return list(range(1, total_pages + 1))
    return selected


def cost_savings_percent(ocr_pages: int, total_pages: int) -> int:
    """
    Share of pages that skipped OCR, as a whole percentage (half rounds up).

    Args:
        ocr_pages: Pages whose final text came from OCR
        total_pages: Pages in the result

    Returns:
        100 when nothing was OCR'd, 0 when everything was
    """
    if total_pages <= 0:
        return 0
    return int(math.floor((1.0 - ocr_pages / total_pages) * 100.0 + 0.5))
