from urllib.parse import quote


def encode_segment(segment: str) -> str:
    """Percent-encode a single path segment the way encodeURIComponent does."""
    return quote(segment, safe="-_.!~*'()")
