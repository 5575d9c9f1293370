# rivalwatch/detection/similarity.py

"""Order-insensitive token similarity used as a change gate."""

MIN_TOKEN_LENGTH = 3


def tokenize(text: str) -> list[str]:
    """Split on whitespace, keeping tokens of three or more characters."""
    return [w for w in text.split() if len(w) >= MIN_TOKEN_LENGTH]


def compute_similarity(text_a: str, text_b: str) -> float:
    """Jaccard similarity of the two texts' token sets, in ``[0, 1]``.

    Two texts without any qualifying token are treated as identical.
    Token frequency and position are ignored.
    """
    words_a = set(tokenize(text_a))
    words_b = set(tokenize(text_b))

    union = words_a | words_b
    if not union:
        return 1.0

    return len(words_a & words_b) / len(union)
