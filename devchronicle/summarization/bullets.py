"""
Bullet text helpers shared by the live and batch paths.
"""

from typing import Iterable, List, Optional

BULLET_MARKER = "- "
_ALT_MARKERS = ("•", "*")


def _lines(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return [line.strip() for line in text.replace("\r\n", "\n").split("\n") if line.strip()]


def extract_bullets(text: Optional[str]) -> List[str]:
    """Every line of text that starts with the bullet marker."""
    return [line for line in _lines(text) if line.startswith(BULLET_MARKER)]


def validate_bullets(text: Optional[str], max_bullets: int) -> List[str]:
    """Keep only lines starting with the bullet marker, capped at max_bullets."""
    if max_bullets <= 0:
        return []
    return extract_bullets(text)[:max_bullets]


def normalize_to_dash_bullets(text: Optional[str]) -> List[str]:
    """Turn arbitrary model text into dash bullets, one per non-blank line."""
    bullets = []
    for line in _lines(text):
        if line.startswith(BULLET_MARKER):
            bullets.append(line)
        elif line.startswith(_ALT_MARKERS):
            rest = line[1:].strip()
            if rest:
                bullets.append(BULLET_MARKER + rest)
        else:
            bullets.append(BULLET_MARKER + line)
    return bullets


def extract_last_bullet_line(text: Optional[str]) -> Optional[str]:
    """Return the last bullet line of text, even if it was cut off mid-sentence."""
    for line in reversed(_lines(text)):
        if line.startswith(BULLET_MARKER):
            return line
    return None


def bullet_key(bullet: str) -> str:
    """Case-insensitive identity used to deduplicate bullets."""
    return " ".join(bullet.strip().split()).casefold()


def dedupe_bullets(bullets: Iterable[str]) -> List[str]:
    seen = set()
    unique = []
    for bullet in bullets:
        key = bullet_key(bullet)
        if key not in seen:
            seen.add(key)
            unique.append(bullet)
    return unique
