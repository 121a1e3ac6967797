"""Heuristic quality score for OCR candidates."""
import re
from dataclasses import asdict, dataclass

AIRPORT_CODE_RE = re.compile(r"\b[A-Z]{3}\b")
CHECKIN_RE = re.compile(
    r"check[\s-]?in|check[\s-]?out|embarque|boarding|departure|partida|chegada|arrival|h[oó]spede|guest",
    re.IGNORECASE,
)

LENGTH_CAP = 2000
LENGTH_POINTS = 40
LINES_CAP = 40
LINES_POINTS = 20
AIRPORT_BONUS = 15
CHECKIN_BONUS = 15
DIGIT_RATIO_PENALTY = 10
DIGIT_RATIO_MIN = 0.01
DIGIT_RATIO_MAX = 0.6


@dataclass(frozen=True)
class QualityMetrics:
    text_length: int
    line_count: int
    airport_codes: int
    has_checkin_tokens: bool
    digit_ratio: float
    score: int

    def to_dict(self) -> dict:
        return asdict(self)


def score_text_quality(text: str) -> QualityMetrics:
    """Score how much an extracted text looks like a usable travel document."""
    text = (text or "").strip()
    length = len(text)
    lines = [line for line in text.splitlines() if line.strip()]
    airport_codes = len(set(AIRPORT_CODE_RE.findall(text)))
    has_checkin = bool(CHECKIN_RE.search(text))
    digits = sum(1 for char in text if char.isdigit())
    digit_ratio = digits / length if length else 0.0

    score = 0.0
    if length:
        score += min(length, LENGTH_CAP) / LENGTH_CAP * LENGTH_POINTS
        score += min(len(lines), LINES_CAP) / LINES_CAP * LINES_POINTS
        if airport_codes:
            score += AIRPORT_BONUS
        if has_checkin:
            score += CHECKIN_BONUS
        if digit_ratio < DIGIT_RATIO_MIN or digit_ratio > DIGIT_RATIO_MAX:
            score -= DIGIT_RATIO_PENALTY

    return QualityMetrics(
        text_length=length,
        line_count=len(lines),
        airport_codes=airport_codes,
        has_checkin_tokens=has_checkin,
        digit_ratio=round(digit_ratio, 4),
        score=max(0, int(round(score))),
    )
