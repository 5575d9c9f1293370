# rivalwatch/detection/change_classifier.py

"""Keyword heuristics that type, rank and summarise a page change."""

import re
from dataclasses import dataclass, field

from rivalwatch.detection.similarity import tokenize
from rivalwatch.models.change import ChangeType, Severity

PRODUCT_KEYWORDS: tuple[str, ...] = (
    "new", "product", "feature", "launch",
    "introducing", "available", "menu item",
)

PRICING_KEYWORDS: tuple[str, ...] = (
    "$", "price", "cost", "fee", "pricing",
    "discount", "sale", "off", "%",
)

# Words that show up in menu copy without naming a new product
STOP_WORDS: frozenset[str] = frozenset({
    "the", "and", "with", "for", "from", "that", "this",
    "san", "marzano", "fresh", "buffalo", "garden", "olive",
    "double", "layer", "spicy", "blend", "oregano", "chili",
    "flakes", "roasted", "wild", "white", "truffle", "oil",
    "parmesan", "cream", "sauce", "thyme", "peppers",
    "mushrooms", "olives", "mozzarella", "pepperoni", "sausage",
    "ham", "bacon", "chicken", "blue", "cheese", "bbq", "red",
    "onions", "pineapple", "cheddar", "gorgonzola",
})

# "$14", "$15.40", "$5,000"
_AMOUNT_RE = re.compile(r"\$\d+(?:,\d{3})*(?:\.\d*)?")


@dataclass(frozen=True)
class ChangeClassifier:
    """Heuristic change classification driven by keyword data.

    The keyword and stop-word lists are plain data, so callers can
    swap them for another vertical without touching the rules:

    * novel vocabulary or a product keyword means ``product``;
    * otherwise a positional difference between equally long lists of
      currency amounts means ``pricing``;
    * otherwise any pricing keyword means ``pricing``;
    * anything else is ``other``.
    """

    product_keywords: tuple[str, ...] = PRODUCT_KEYWORDS
    pricing_keywords: tuple[str, ...] = PRICING_KEYWORDS
    stop_words: frozenset[str] = field(default=STOP_WORDS)
    min_candidate_length: int = 4
    high_severity_score: float = 0.3
    medium_severity_score: float = 0.15

    # ── Token helpers ────────────────────────────────────

    @staticmethod
    def is_amount(token: str) -> bool:
        """True for a bare currency amount such as ``$15.40``."""
        return _AMOUNT_RE.fullmatch(token) is not None

    @staticmethod
    def extract_amounts(text: str) -> list[str]:
        """Currency amounts in document order."""
        return _AMOUNT_RE.findall(text)

    def new_words(self, before: str, after: str) -> list[str]:
        """Tokens of *after* that never occur in *before* (lowercased)."""
        before_words = set(tokenize(before.lower()))
        return [
            w for w in tokenize(after.lower())
            if w not in before_words
        ]

    def novel_tokens(self, before: str, after: str) -> list[str]:
        """New tokens that plausibly name a product.

        Drops stop words, bare currency amounts and short tokens.
        """
        return [
            w for w in self.new_words(before, after)
            if w not in self.stop_words
            and not self.is_amount(w)
            and len(w) >= self.min_candidate_length
        ]

    # ── Classification ───────────────────────────────────

    def classify(self, before: str, after: str) -> ChangeType:
        """Pick ``product``, ``pricing`` or ``other`` for a change."""
        combined = f"{before} {after}".lower()

        has_product = any(
            keyword in combined for keyword in self.product_keywords
        )
        # Checked before prices: a price that moves alongside new
        # vocabulary is reported as a product change.
        if has_product or self.novel_tokens(before, after):
            return "product"

        prices_before = self.extract_amounts(before)
        prices_after = self.extract_amounts(after)
        if (
            prices_before
            and len(prices_before) == len(prices_after)
            and any(
                old != new
                for old, new in zip(prices_before, prices_after)
            )
        ):
            return "pricing"

        if any(keyword in combined for keyword in self.pricing_keywords):
            return "pricing"

        return "other"

    def severity(
        self, change_type: ChangeType, similarity: float,
    ) -> Severity:
        """Rank a change by type and how far the texts drifted apart."""
        score = 1 - similarity
        if change_type == "pricing" or score > self.high_severity_score:
            return "high"
        if change_type == "product" or score > self.medium_severity_score:
            return "medium"
        return "low"

    # ── Summaries ────────────────────────────────────────

    def summarize(
        self,
        before: str,
        after: str,
        change_type: ChangeType,
        similarity: float,
    ) -> str:
        """One-line, human-readable description of the change.

        Advisory only; nothing downstream parses it.
        """
        if change_type == "product":
            return self._summarize_product(before, after)
        if change_type == "pricing":
            return self._summarize_pricing(before, after)
        return f"Content changed (similarity: {similarity * 100:.1f}%)"

    def _summarize_product(self, before: str, after: str) -> str:
        candidates = self.novel_tokens(before, after)
        if not candidates:
            return "New Menu Item Added"

        name = self._find_product_phrase(before, after) or ""
        if not name:
            first = candidates[0]
            match = re.search(
                rf"\b{re.escape(first)}\w*", after, re.IGNORECASE,
            )
            name = match.group(0) if match else first

        pretty = " ".join(
            word[:1].upper() + word[1:].lower()
            for word in name.split()
        )
        return f"New Menu Item Added: {pretty}"

    def _find_product_phrase(self, before: str, after: str) -> str | None:
        """First pair of adjacent new words, as written in *after*."""
        new_set = {
            w for w in self.new_words(before, after)
            if w not in self.stop_words and not self.is_amount(w)
        }
        words = after.lower().split()
        for first, second in zip(words, words[1:]):
            if first in new_set and second in new_set:
                match = re.search(
                    rf"\b{re.escape(first)}\s+{re.escape(second)}\w*",
                    after,
                    re.IGNORECASE,
                )
                if match:
                    return match.group(0)
        return None

    def _summarize_pricing(self, before: str, after: str) -> str:
        prices_before = self.extract_amounts(before)
        prices_after = self.extract_amounts(after)
        for old, new in zip(prices_before, prices_after):
            if old != new:
                return f"Price Updated: {old} → {new}"
        return "Price Updated"


DEFAULT_CLASSIFIER = ChangeClassifier()


def classify_change_type(before: str, after: str) -> ChangeType:
    """Classify with the default keyword lists."""
    return DEFAULT_CLASSIFIER.classify(before, after)


def determine_severity(change_type: ChangeType, similarity: float) -> Severity:
    """Rank with the default severity cut-offs."""
    return DEFAULT_CLASSIFIER.severity(change_type, similarity)
