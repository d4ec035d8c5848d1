"""
Content sampling for description generation.

Scans the markup pages of a package, strips everything that is not
readable text and keeps the highest-scoring extract. The score is a rough
heuristic: longer text, course vocabulary and visible structure (lists,
numbering, labels) all count in its favour.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup
from bs4.element import Comment

from app.services.archive import ArchiveReader

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 2000
ENTRY_POINT_NAMES = (
    "index.html", "index.htm", "main.html",
    "start.html", "content.html", "lesson.html",
)
GOOD_SCORE = 80
ACCEPTABLE_SCORE = 50
MAX_EXTRA_FILES = 5
MAX_SCORE = 100

MIN_BLOCK_LENGTH = 30
MIN_LIST_ITEM_LENGTH = 10
MIN_STRUCTURED_LENGTH = 100

EDUCATIONAL_KEYWORDS = (
    "learn", "course", "lesson", "module", "objective", "goal", "skill",
    "knowledge", "understand", "practice", "exercise", "activity",
    "assessment", "quiz", "test", "complete", "finish", "achieve",
    "master", "develop", "improve", "apply",
)

_WHITESPACE = re.compile(r"\s+")
_NUMBERED = re.compile(r"\d+\.")
_BULLETS = re.compile(r"[•\-\*]")


@dataclass
class ScoredText:
    text: str
    score: int


def _keyword_score(text: str) -> int:
    lower = text.lower()
    return sum(5 for keyword in EDUCATIONAL_KEYWORDS if keyword in lower)


# (name, scorer) pairs, summed in order and capped at MAX_SCORE
SCORING_RULES: Sequence[Tuple[str, Callable[[str], int]]] = (
    ("substantial", lambda t: 20 if len(t) > 200 else 0),
    ("long", lambda t: 20 if len(t) > 500 else 0),
    ("vocabulary", _keyword_score),
    ("labels", lambda t: 5 if ":" in t else 0),
    ("numbering", lambda t: 5 if _NUMBERED.search(t) else 0),
    ("bullets", lambda t: 5 if _BULLETS.search(t) else 0),
)


def score_text(text: str) -> int:
    return min(sum(rule(text) for _, rule in SCORING_RULES), MAX_SCORE)


def _clean(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def extract_meaningful_content(markup: str) -> ScoredText:
    """Extract headings, text blocks and list items from a page and score them"""
    try:
        soup = BeautifulSoup(markup, "html.parser")

        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()
        for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
            comment.extract()

        blocks: List[str] = []
        blocks.extend(
            _clean(h.get_text(" "))
            for h in soup.find_all(["h1", "h2", "h3", "h4", "h5", "h6"])
        )
        for block in soup.find_all(["p", "div"]):
            text = _clean(block.get_text(" "))
            if len(text) > MIN_BLOCK_LENGTH:
                blocks.append(text)
        for li in soup.find_all("li"):
            text = _clean(li.get_text(" "))
            if len(text) > MIN_LIST_ITEM_LENGTH:
                blocks.append(text)

        text = _clean(" ".join(b for b in blocks if b))
        if len(text) < MIN_STRUCTURED_LENGTH:
            text = _clean(soup.get_text(" "))

        return ScoredText(text=text, score=score_text(text))
    except Exception as e:
        logger.debug(f"Could not extract content from markup: {e}")
        return ScoredText(text="", score=0)


def _candidates(
    reader: ArchiveReader, entry_points: Iterable[str]
) -> List[str]:
    names: List[str] = []
    for name in list(entry_points) + list(ENTRY_POINT_NAMES):
        if name and name not in names and reader.has(name):
            names.append(name)
    return names


def sample_content(
    reader: ArchiveReader,
    max_length: Optional[int] = None,
    entry_points: Iterable[str] = (),
) -> str:
    """Return a bounded text sample from the package's markup.

    Declared entry points and conventional start pages are examined first.
    When none of them scores at least ACCEPTABLE_SCORE, up to five other
    markup files are scanned as well. Never raises; returns "" on failure.
    """
    limit = max_length or DEFAULT_MAX_LENGTH
    try:
        best = ScoredText(text="", score=0)
        examined = set()

        for name in _candidates(reader, entry_points):
            examined.add(name)
            try:
                result = extract_meaningful_content(reader.read_text(name))
            except Exception as e:
                logger.debug(f"Could not read {name}: {e}")
                continue
            if result.score > best.score or (not best.text and result.text):
                best = result
            if best.score > GOOD_SCORE:
                break

        if best.score < ACCEPTABLE_SCORE:
            extra = [n for n in reader.markup_names() if n not in examined]
            for name in extra[:MAX_EXTRA_FILES]:
                try:
                    result = extract_meaningful_content(reader.read_text(name))
                except Exception:
                    continue
                if result.score > best.score or (not best.text and result.text):
                    best = result

        return best.text[:limit]
    except Exception as e:
        logger.error(f"Error extracting content sample: {e}")
        return ""
