"""
Continuation protocol for responses truncated by the output-token limit.

A day is summarized in at most ``MAX_ROUNDS`` completion calls. Each round's
bullets are validated and deduplicated against everything collected so far;
when a round is cut off, the trailing partial bullet is held back and the
next prompt asks the model to rewrite it in full before continuing.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Set

from .bullets import (
    BULLET_MARKER,
    bullet_key,
    extract_bullets,
    extract_last_bullet_line,
    normalize_to_dash_bullets,
)

MAX_ROUNDS = 4


@dataclass
class RoundResult:
    """What one completion round contributed."""
    new_bullets: List[str]
    partial_bullet: Optional[str]
    truncated: bool


@dataclass
class ContinuationState:
    """Bullets collected across the rounds of one day."""
    max_bullets: int
    max_rounds: int = MAX_ROUNDS
    bullets: List[str] = field(default_factory=list)
    rounds: int = 0
    first_response: Optional[str] = None
    partial_bullet: Optional[str] = None
    last_round: Optional[RoundResult] = None
    _keys: Set[str] = field(default_factory=set, repr=False)

    @property
    def remaining(self) -> int:
        return max(0, self.max_bullets - len(self.bullets))

    @property
    def is_complete(self) -> bool:
        """True once another round would not be useful."""
        if self.remaining == 0 or self.rounds >= self.max_rounds:
            return True
        last = self.last_round
        if last is None:
            return False
        return not last.truncated or not last.new_bullets

    def accept_round(self, text: str, truncated: bool) -> RoundResult:
        """Merge one round's output into the collected bullets."""
        if self.first_response is None:
            self.first_response = text
        self.rounds += 1

        candidates = extract_bullets(text)
        held_back = None
        if truncated and candidates:
            trailing = extract_last_bullet_line(text)
            if trailing is not None and candidates[-1] == trailing:
                held_back = candidates.pop()

        # The model echoed the cut-off text instead of completing it
        if self.partial_bullet is not None:
            candidates = [c for c in candidates if c != self.partial_bullet]

        added = []
        for candidate in candidates:
            if len(added) >= self.remaining:
                break
            key = bullet_key(candidate)
            if key in self._keys:
                continue
            self._keys.add(key)
            added.append(candidate)
        self.bullets.extend(added)

        self.partial_bullet = held_back
        self.last_round = RoundResult(new_bullets=added, partial_bullet=held_back, truncated=truncated)
        return self.last_round

    def final_bullets(self) -> List[str]:
        """Collected bullets, or the normalized first response when none were produced."""
        if self.bullets:
            return list(self.bullets)
        return normalize_to_dash_bullets(self.first_response)[:self.max_bullets]

    @property
    def used_fallback(self) -> bool:
        return not self.bullets


class ContinuationCompiler:
    """Builds the prompt for the next round after a truncated response."""

    def build_prompt(self, original_prompt: str, accepted_bullets: List[str],
                     partial_bullet: Optional[str], remaining_bullets: int) -> str:
        """
        Build a continuation prompt.

        Args:
            original_prompt: The evidence prompt sent in the first round
            accepted_bullets: Bullets already collected, which must not be repeated
            partial_bullet: Bullet that was cut off, if one was captured
            remaining_bullets: How many more bullets may be written

        Returns:
            User prompt for the next completion call
        """
        sections = [
            original_prompt.rstrip(),
            "",
            "Your previous answer was cut off by the output limit.",
        ]

        if accepted_bullets:
            sections.append("Bullets already written (do not repeat):")
            sections.extend(accepted_bullets)
        else:
            sections.append("No complete bullets were written yet.")

        if partial_bullet:
            sections.extend([
                "",
                "The last bullet was cut off:",
                partial_bullet,
                "First rewrite that exact bullet completely as a single line, then continue.",
            ])

        sections.extend([
            "",
            f"Write at most {max(remaining_bullets, 1)} more bullets.",
            f"Output bullets only, each on its own line starting with \"{BULLET_MARKER}\".",
        ])
        return "\n".join(sections)
