"""Rule-based detectors that score comment text before classification."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

from commentguard.moderation.domain.models import Comment, RuleCheckResult
from commentguard.moderation.domain.policy_files import read_policy_file

FLAG_MALICIOUS_LINK = "malicious_link"
FLAG_EXCESSIVE_LINKS = "excessive_links"
FLAG_PROFANITY = "profanity"
FLAG_SPAM_PATTERN = "spam_pattern"
FLAG_EXCESSIVE_CAPS = "excessive_caps"
FLAG_DUPLICATE_CONTENT = "duplicate_content"
FLAG_SIMILAR_CONTENT = "similar_content"

DEFAULT_FLAG_WEIGHTS: Mapping[str, int] = {
    FLAG_MALICIOUS_LINK: 5,
    FLAG_DUPLICATE_CONTENT: 4,
    FLAG_PROFANITY: 3,
    FLAG_SPAM_PATTERN: 3,
    FLAG_SIMILAR_CONTENT: 2,
    FLAG_EXCESSIVE_LINKS: 2,
    FLAG_EXCESSIVE_CAPS: 1,
}
UNKNOWN_FLAG_WEIGHT = 1

DEFAULT_HARD_FLAGS = frozenset({FLAG_MALICIOUS_LINK, FLAG_DUPLICATE_CONTENT})

_WHITESPACE_RE = re.compile(r"\s+")
_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_ASCII_LETTER_RE = re.compile(r"[A-Za-z]")

_DEFAULT_MALICIOUS_LINKS = (
    re.compile(r"bit\.ly/[a-z0-9]+", re.IGNORECASE),
    re.compile(r"tinyurl\.com/[a-z0-9]+", re.IGNORECASE),
    re.compile(r"t\.co/[a-z0-9]+", re.IGNORECASE),
    re.compile(r"\b(viagra|cialis|casino|poker|lottery|prize|winner)\b.*\.(com|net|org)", re.IGNORECASE),
    re.compile(r"\bredirect\b.*\burl=", re.IGNORECASE),
    re.compile(r"\bclick\b.*\bhere\b.*https?://", re.IGNORECASE),
)

_DEFAULT_PROFANITY = (
    re.compile(r"\b(fuck|shit|ass|damn|bitch|bastard|crap)\b", re.IGNORECASE),
    re.compile(r"\b(idiot|moron|stupid|dumb|retard)\b", re.IGNORECASE),
    re.compile(r"\b(kill|die|death|murder|threat)\b.*\b(you|your)\b", re.IGNORECASE),
)

_DEFAULT_SPAM = (
    re.compile(r"(.)\1{5,}"),
    re.compile(r"\b(\w+)\b(?:\s+\1\b){3,}", re.IGNORECASE),
)


@dataclass(frozen=True)
class RuleCorpus:
    """Immutable pattern tables and limits consumed by :class:`RuleDetector`."""

    malicious_link_patterns: tuple[re.Pattern[str], ...] = _DEFAULT_MALICIOUS_LINKS
    profanity_patterns: tuple[re.Pattern[str], ...] = _DEFAULT_PROFANITY
    spam_patterns: tuple[re.Pattern[str], ...] = _DEFAULT_SPAM
    url_pattern: re.Pattern[str] = re.compile(r"https?://[^\s]+")
    max_links: int = 3
    caps_min_length: int = 20
    caps_min_letters: int = 10
    caps_max_ratio: float = 0.7
    similarity_threshold: float = 0.8
    similarity_min_word_length: int = 3
    flag_weights: Mapping[str, int] = field(default_factory=lambda: dict(DEFAULT_FLAG_WEIGHTS))
    hard_flags: frozenset[str] = DEFAULT_HARD_FLAGS

    @staticmethod
    def default() -> "RuleCorpus":
        return RuleCorpus()

    @staticmethod
    def from_mapping(config: Mapping[str, Any]) -> "RuleCorpus":
        """Build a corpus from a config mapping; absent keys keep the defaults.

        Pattern lists accept plain strings (compiled case-insensitively) or
        mappings of the form ``{"pattern": "...", "ignore_case": false}``.
        """

        base = RuleCorpus.default()
        caps_cfg = config.get("caps") or {}
        similarity_cfg = config.get("similarity") or {}
        weights = dict(base.flag_weights)
        weights.update({str(k): int(v) for k, v in dict(config.get("weights") or {}).items()})
        hard_flags = config.get("hard_flags")
        return RuleCorpus(
            malicious_link_patterns=_compile_all(config.get("malicious_links"), base.malicious_link_patterns),
            profanity_patterns=_compile_all(config.get("profanity"), base.profanity_patterns),
            spam_patterns=_compile_all(config.get("spam"), base.spam_patterns),
            max_links=int(config.get("max_links", base.max_links)),
            caps_min_length=int(caps_cfg.get("min_length", base.caps_min_length)),
            caps_min_letters=int(caps_cfg.get("min_letters", base.caps_min_letters)),
            caps_max_ratio=float(caps_cfg.get("max_ratio", base.caps_max_ratio)),
            similarity_threshold=float(similarity_cfg.get("threshold", base.similarity_threshold)),
            similarity_min_word_length=int(similarity_cfg.get("min_word_length", base.similarity_min_word_length)),
            flag_weights=weights,
            hard_flags=frozenset(str(flag) for flag in hard_flags) if hard_flags is not None else base.hard_flags,
        )


def _compile_all(entries: Iterable[Any] | None, fallback: tuple[re.Pattern[str], ...]) -> tuple[re.Pattern[str], ...]:
    if entries is None:
        return fallback
    compiled: list[re.Pattern[str]] = []
    for entry in entries:
        if isinstance(entry, Mapping):
            flags = re.IGNORECASE if entry.get("ignore_case", True) else 0
            compiled.append(re.compile(str(entry["pattern"]), flags))
        else:
            compiled.append(re.compile(str(entry), re.IGNORECASE))
    return tuple(compiled)


def load_rule_corpus(path: str | Path | None) -> RuleCorpus:
    """Load a rule corpus from YAML/JSON, falling back to the built-in tables."""

    if not path:
        return RuleCorpus.default()
    data = read_policy_file(path, kind="rules")
    if data is None:
        return RuleCorpus.default()
    return RuleCorpus.from_mapping(data)


def normalize_content(content: str) -> str:
    """Lowercase, collapse whitespace and strip punctuation for comparisons."""

    collapsed = _WHITESPACE_RE.sub(" ", content.lower())
    return _PUNCTUATION_RE.sub("", collapsed).strip()


def jaccard_similarity(a: str, b: str, *, min_word_length: int = 3) -> float:
    """Word-set Jaccard index of two normalized strings, ignoring short words."""

    words_a = {word for word in a.split(" ") if len(word) >= min_word_length}
    words_b = {word for word in b.split(" ") if len(word) >= min_word_length}
    if not words_a and not words_b:
        return 1.0
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / len(words_a | words_b)


class RuleDetector:
    """Runs every rule check against a comment and scores the flags."""

    def __init__(self, corpus: RuleCorpus | None = None) -> None:
        self.corpus = corpus or RuleCorpus.default()

    def check_malicious_links(self, content: str) -> list[str]:
        flags: list[str] = []
        if any(pattern.search(content) for pattern in self.corpus.malicious_link_patterns):
            flags.append(FLAG_MALICIOUS_LINK)
        if len(self.corpus.url_pattern.findall(content)) > self.corpus.max_links:
            flags.append(FLAG_EXCESSIVE_LINKS)
        return flags

    def check_profanity(self, content: str) -> list[str]:
        if any(pattern.search(content) for pattern in self.corpus.profanity_patterns):
            return [FLAG_PROFANITY]
        return []

    def check_spam_patterns(self, content: str) -> list[str]:
        if any(pattern.search(content) for pattern in self.corpus.spam_patterns):
            return [FLAG_SPAM_PATTERN]
        return []

    def check_excessive_caps(self, content: str) -> list[str]:
        if len(content) < self.corpus.caps_min_length:
            return []
        letters = _ASCII_LETTER_RE.findall(content)
        if len(letters) < self.corpus.caps_min_letters:
            return []
        upper = sum(1 for letter in letters if letter.isupper())
        if upper / len(letters) > self.corpus.caps_max_ratio:
            return [FLAG_EXCESSIVE_CAPS]
        return []

    def check_duplicate_content(self, content: str, recent_contents: Sequence[str]) -> list[str]:
        normalized = normalize_content(content)
        similar = False
        for recent in recent_contents:
            recent_normalized = normalize_content(recent)
            if normalized == recent_normalized:
                return [FLAG_DUPLICATE_CONTENT]
            if not similar:
                similarity = jaccard_similarity(
                    normalized,
                    recent_normalized,
                    min_word_length=self.corpus.similarity_min_word_length,
                )
                similar = similarity > self.corpus.similarity_threshold
        return [FLAG_SIMILAR_CONTENT] if similar else []

    def score(self, flags: Iterable[str]) -> int:
        return sum(self.corpus.flag_weights.get(flag, UNKNOWN_FLAG_WEIGHT) for flag in flags)

    def check(self, content: str, recent_contents: Sequence[str] = ()) -> RuleCheckResult:
        raised: list[str] = []
        raised.extend(self.check_malicious_links(content))
        raised.extend(self.check_profanity(content))
        raised.extend(self.check_spam_patterns(content))
        raised.extend(self.check_excessive_caps(content))
        raised.extend(self.check_duplicate_content(content, recent_contents))
        flags = tuple(dict.fromkeys(raised))
        return RuleCheckResult(
            rule_score=self.score(flags),
            rule_flags=flags,
            hard_rule_triggered=any(flag in self.corpus.hard_flags for flag in flags),
        )


_default_detector = RuleDetector()


def check_hard_rules(
    content: str,
    recent_contents: Sequence[str] = (),
    corpus: RuleCorpus | None = None,
) -> RuleCheckResult:
    """Run all rule detectors over ``content``; pure and deterministic."""

    detector = _default_detector if corpus is None else RuleDetector(corpus)
    return detector.check(content, recent_contents)


def collect_recent_contents(history: Iterable[Comment], *, limit: int = 20) -> list[str]:
    """Return the newest ``limit`` comment bodies from a user's history."""

    ordered = sorted(history, key=lambda comment: comment.created_at, reverse=True)
    return [comment.content for comment in ordered[:limit]]
