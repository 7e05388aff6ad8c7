"""
Message segmenter.

Splits one message body into segments that each carry a single fact, so a
message batching a payment, a purchase and a due-date reminder can be
extracted piece by piece. This is a heuristic: it may over- or under-split,
and extractors tolerate segments with nothing in them.
"""

import re
from dataclasses import dataclass
from typing import List

from debttrack.parsers.sms.extractors import extract_amounts, extract_labeled_fields

# Tokens whose trailing period is not a sentence end
ABBREVIATIONS = {
    "rs", "dr", "cr", "no", "a/c", "ac", "avl", "amt", "lmt", "ref", "txn",
    "mr", "mrs", "ms", "st", "approx", "bal", "nos",
}

SENTENCE_END_RE = re.compile(r"[.!?]+(?=\s*[A-Z])")
CLAUSE_BREAK_RE = re.compile(r"\n|[,;]\s*|\s+(?:or|and)\s+", re.IGNORECASE)
TRAILING_CONNECTOR_RE = re.compile(r"(?:\s*[,;]|\s+(?:or|and))+\s*$", re.IGNORECASE)


@dataclass(frozen=True)
class Segment:
    """One fact-bearing piece of a message."""

    text: str
    sentence: str
    index: int


def _is_sentence_end(body: str, start: int, end: int) -> bool:
    before = body[:start]
    after = body[end:]

    # Decimal point or dotted number
    if before[-1:].isdigit() and after[:1].isdigit():
        return False

    token = re.split(r"\s", before)[-1].lower() if before else ""
    token = token.lstrip("(")
    if body[start] == "." and token in ABBREVIATIONS:
        return False
    return True


def split_sentences(body: str) -> List[str]:
    """Split on ., ! or ? followed by an upper-case letter."""
    sentences = []
    last = 0
    for m in SENTENCE_END_RE.finditer(body):
        if not _is_sentence_end(body, m.start(), m.end()):
            continue
        sentences.append(body[last:m.end()])
        last = m.end()
    sentences.append(body[last:])
    return [s.strip() for s in sentences if s.strip()]


def split_on_amounts(sentence: str) -> List[str]:
    """
    Re-split a sentence holding more than one currency amount.

    Each amount after the first starts a new piece. The piece begins at the
    clause that introduces the amount ("Min amt due: INR 5893" stays whole):
    the last newline, comma, semicolon, "or" or "and" between the previous
    amount and this one. Without such a break the split is at the start of the
    amount's label ("... 5893.00 Total amt: INR 84356.07"), else at the marker.
    """
    amounts = extract_amounts(sentence)
    if len(amounts) < 2:
        return [sentence]

    label_starts = [start for start, _ in extract_labeled_fields(sentence).spans.values()]

    cuts = []
    for previous, current in zip(amounts, amounts[1:]):
        gap = sentence[previous.end:current.start]
        breaks = list(CLAUSE_BREAK_RE.finditer(gap))
        if breaks:
            cuts.append(previous.end + breaks[-1].end())
        else:
            starts = [s for s in label_starts if previous.end <= s <= current.start]
            cuts.append(min(starts) if starts else current.start)

    pieces = []
    last = 0
    for cut in cuts:
        pieces.append(sentence[last:cut])
        last = cut
    pieces.append(sentence[last:])
    return [TRAILING_CONNECTOR_RE.sub("", p).strip() for p in pieces]


def segment_message(body: str) -> List[Segment]:
    """
    Split a message body into segments.

    Returns:
        Non-empty segments in body order, each with its enclosing sentence
    """
    segments: List[Segment] = []
    for sentence in split_sentences(body):
        for piece in split_on_amounts(sentence):
            if piece:
                segments.append(Segment(text=piece, sentence=sentence, index=len(segments)))
    return segments
