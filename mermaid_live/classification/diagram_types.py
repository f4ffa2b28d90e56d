"""Keyword based recognition of Mermaid diagram descriptions."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional, Sequence, Tuple

DIAGRAM_KEYWORDS: Sequence[str] = (
    "graph",
    "flowchart",
    "sequenceDiagram",
    "classDiagram",
    "stateDiagram",
    "erDiagram",
    "gantt",
    "pie",
    "journey",
    "gitGraph",
    "mindmap",
    "timeline",
    "quadrantChart",
)

# Flowchart keywords only count at the very start; everything after is matched
# anywhere in the text, first hit wins.
_PREFIX_LABELS: Sequence[Tuple[str, str]] = (
    ("graph", "Flowchart"),
    ("flowchart", "Flowchart"),
)
_CONTAINS_LABELS: Sequence[Tuple[str, str]] = (
    ("sequenceDiagram", "Sequence"),
    ("classDiagram", "Class"),
    ("stateDiagram", "State"),
    ("erDiagram", "ER"),
    ("gantt", "Gantt"),
    ("pie", "Pie"),
    ("journey", "Journey"),
    ("gitGraph", "Git"),
    ("mindmap", "Mindmap"),
    ("timeline", "Timeline"),
    ("quadrantChart", "Quadrant"),
)
FALLBACK_LABEL = "Diagram"


def is_candidate(text: Optional[str]) -> bool:
    """Return True when ``text`` plausibly is a Mermaid diagram."""
    if not text:
        return False
    trimmed = text.strip()
    return any(
        trimmed.startswith(keyword) or f"\n{keyword}" in trimmed or f" {keyword}" in trimmed
        for keyword in DIAGRAM_KEYWORDS
    )


def classify(text: str) -> str:
    """Return the display label of the diagram kind."""
    trimmed = (text or "").strip()
    for keyword, label in _PREFIX_LABELS:
        if trimmed.startswith(keyword):
            return label
    for keyword, label in _CONTAINS_LABELS:
        if keyword in trimmed:
            return label
    return FALLBACK_LABEL


def auto_name(description: str, now: Optional[datetime] = None) -> str:
    """Default display name for a freshly saved diagram."""
    moment = now or datetime.now()
    return f"{classify(description)} - {moment:%Y-%m-%d}"


def describe(text: str) -> Dict[str, object]:
    """Summary used by the metadata panes."""
    return {
        "type": classify(text),
        "lines": len(text.split("\n")),
        "characters": len(text),
    }
