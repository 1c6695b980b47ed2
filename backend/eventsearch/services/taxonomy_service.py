from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).resolve().parents[1] / "data"
TAXONOMY_PATH = DATA_DIR / "taxonomy.json"

NODE_TYPES = ("category", "subcategory", "service")
WORD_RE = re.compile(r"\w+")

# Share of the suggestion limit given to each level.
SUGGESTION_SHARES = (("service", 0.6), ("subcategory", 0.3), ("category", 0.1))


@dataclass(frozen=True)
class MatchWeights:
    exact_label: int
    exact_keyword: int
    label_contains_query: int
    query_contains_label: int
    keyword_contains_query: int
    query_contains_keyword: int
    word_match: int


LEVEL_WEIGHTS: dict[str, MatchWeights] = {
    "service": MatchWeights(100, 80, 60, 50, 30, 25, 10),
    "subcategory": MatchWeights(95, 70, 50, 40, 25, 20, 8),
    "category": MatchWeights(90, 60, 40, 35, 20, 15, 5),
}


@dataclass
class TaxonomyNode:
    type: str
    taxonomy_id: str
    label: str
    icon: str | None
    keywords: list[str]
    parent_id: str | None
    order: int
    children: list["TaxonomyNode"] = field(default_factory=list)


@dataclass
class TaxonomyMatch:
    type: str
    taxonomy_id: str
    name: str
    icon: str | None
    score: int
    matched_keyword: str | None
    parent_id: str | None
    order: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def normalize_query(text: str | None) -> str:
    if not text:
        return ""
    return " ".join(text.lower().strip().split())


def _score_node(node: TaxonomyNode, query: str, words: list[str]) -> tuple[int, str | None]:
    """Sum every match kind for the node; the keyword contributing most is reported as matched."""
    weights = LEVEL_WEIGHTS[node.type]
    label = node.label.lower()
    keywords = [keyword.lower() for keyword in node.keywords if keyword]

    score = 0
    if label == query:
        score += weights.exact_label
    if query in keywords:
        score += weights.exact_keyword
    if query in label:
        score += weights.label_contains_query
    if label in query:
        score += weights.query_contains_label

    matched_keyword: str | None = None
    best_keyword_score = 0
    for keyword in keywords:
        keyword_score = 0
        if query in keyword:
            keyword_score += weights.keyword_contains_query
        if keyword in query:
            keyword_score += weights.query_contains_keyword
        keyword_score += weights.word_match * sum(1 for word in words if word in keyword or keyword in word)
        score += keyword_score

        if keyword == query:
            keyword_score += weights.exact_keyword
        if keyword_score > best_keyword_score:
            best_keyword_score = keyword_score
            matched_keyword = keyword

    return score, matched_keyword


class TaxonomyService:
    """Keyword matcher over the static category > subcategory > service tree."""

    def __init__(self, taxonomy_path: Path | None = None) -> None:
        payload = json.loads((taxonomy_path or TAXONOMY_PATH).read_text(encoding="utf-8"))
        self.roots: list[TaxonomyNode] = []
        self.nodes: list[TaxonomyNode] = []
        self._by_id: dict[str, TaxonomyNode] = {}
        for category in payload:
            self.roots.append(self._load_node(category, "category", parent=None))

    def _load_node(self, raw: dict[str, Any], node_type: str, parent: TaxonomyNode | None) -> TaxonomyNode:
        node = TaxonomyNode(
            type=node_type,
            taxonomy_id=str(raw["id"]),
            label=str(raw["label"]),
            icon=raw.get("icon") or (parent.icon if parent else None),
            keywords=[str(keyword) for keyword in raw.get("keywords", [])],
            parent_id=parent.taxonomy_id if parent else None,
            order=len(self.nodes),
        )
        if node.taxonomy_id in self._by_id:
            raise ValueError(f"Duplicate taxonomy id: {node.taxonomy_id}")
        self.nodes.append(node)
        self._by_id[node.taxonomy_id] = node

        child_key, child_type = {
            "category": ("subcategories", "subcategory"),
            "subcategory": ("services", "service"),
        }.get(node_type, (None, None))
        if child_key:
            for child in raw.get(child_key, []):
                node.children.append(self._load_node(child, child_type, parent=node))
        return node

    def get(self, taxonomy_id: str) -> TaxonomyNode | None:
        return self._by_id.get(taxonomy_id)

    def search_taxonomy(self, query: str | None, types: tuple[str, ...] = NODE_TYPES) -> list[TaxonomyMatch]:
        normalized = normalize_query(query)
        if not normalized:
            return []
        words = WORD_RE.findall(normalized)

        matches: list[TaxonomyMatch] = []
        for node in self.nodes:
            if node.type not in types:
                continue
            score, matched_keyword = _score_node(node, normalized, words)
            if score <= 0:
                continue
            matches.append(
                TaxonomyMatch(
                    type=node.type,
                    taxonomy_id=node.taxonomy_id,
                    name=node.label,
                    icon=node.icon,
                    score=score,
                    matched_keyword=matched_keyword,
                    parent_id=node.parent_id,
                    order=node.order,
                )
            )

        matches.sort(key=lambda match: (-match.score, match.order))
        return matches

    def detect_service_from_query(self, query: str | None) -> str | None:
        for match in self.search_taxonomy(query, types=("service",)):
            return match.taxonomy_id
        return None

    def get_search_suggestions(self, query: str | None, limit: int = 10) -> list[dict[str, Any]]:
        if limit <= 0:
            return []
        ranked = self.search_taxonomy(query)
        if not ranked:
            return []

        selected: list[TaxonomyMatch] = []
        for node_type, share in SUGGESTION_SHARES:
            quota = max(1, round(limit * share))
            selected.extend([match for match in ranked if match.type == node_type][:quota])

        selected.sort(key=lambda match: (-match.score, match.order))
        suggestions = [
            {
                "type": match.type,
                "id": match.taxonomy_id,
                "taxonomy_id": match.taxonomy_id,
                "label": match.name,
                "icon": match.icon,
                "score": match.score,
                "matched_keyword": match.matched_keyword,
                "parent_id": match.parent_id,
            }
            for match in selected[:limit]
        ]
        logger.debug("taxonomy_suggestions query=%r count=%s", query, len(suggestions))
        return suggestions


@lru_cache(maxsize=1)
def get_taxonomy_service() -> TaxonomyService:
    return TaxonomyService()
