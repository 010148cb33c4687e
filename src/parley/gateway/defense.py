"""Input defense against prompt injection.

Every inbound user message is sanitized and scored before it reaches
segmentation, persistence or a model:

- over-long input is truncated;
- chat-template control tokens are replaced, also inside base64 blobs;
- role-override attempts and known injection phrasings raise a threat score;
- a per-user profile flags anomalous messages (very long, symbol-heavy, repeated).

Messages scoring at or above the threshold are rejected. Tool output is
wrapped in explicit delimiters with control tokens filtered before it is fed
back to the model.
"""

import base64
import binascii
import hashlib
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field

from parley.config.schema import DefenseConfig

logger = logging.getLogger(__name__)

DANGEROUS_TOKENS = [
    "<system>",
    "</system>",
    "<|im_start|>",
    "<|im_end|>",
    "<|endoftext|>",
    "<|padding|>",
    "[INST]",
    "[/INST]",
    "<<SYS>>",
    "<</SYS>>",
    "<|assistant|>",
    "<|user|>",
    "<|system|>",
]

DANGEROUS_TOKEN_PATTERN = re.compile(
    "|".join(re.escape(token) for token in DANGEROUS_TOKENS), re.IGNORECASE
)
BASE64_PATTERN = re.compile(r"[A-Za-z0-9+/]{20,}={0,2}")
SPECIAL_CHAR_PATTERN = re.compile(r"[a-zA-Z0-9\s.,!?'\"()-]")

FILTERED = "[FILTERED]"
BASE64_FILTERED = "[BASE64_FILTERED]"

ROLE_OVERRIDE_PATTERNS = [
    re.compile(r"\bAssistant:\s", re.IGNORECASE),
    re.compile(r"\bSystem:\s", re.IGNORECASE),
    re.compile(r"\[SYSTEM\]", re.IGNORECASE),
    re.compile(r"\[ASSISTANT\]", re.IGNORECASE),
    re.compile(r"role[\"']?\s*[:=]\s*[\"']?(system|assistant)", re.IGNORECASE),
    re.compile(r"^###\s*(system|assistant)\s*$", re.IGNORECASE | re.MULTILINE),
]
ROLE_OVERRIDE_SCORE = 0.4


@dataclass(frozen=True)
class InjectionPattern:
    """A known injection phrasing and how strongly it indicates an attack."""

    label: str
    pattern: re.Pattern[str]
    weight: float


def _injection(label: str, regex: str, weight: float) -> InjectionPattern:
    return InjectionPattern(label, re.compile(regex, re.IGNORECASE), weight)


INJECTION_PATTERNS = [
    _injection(
        "ignore_instructions",
        r"ignore (?:all )?(?:previous|prior|above) (?:instructions|prompts|rules)",
        0.9,
    ),
    _injection("role_reassignment", r"you are now\b", 0.7),
    _injection("pretend", r"pretend (?:you are|to be|you're)\b", 0.6),
    _injection("system_override", r"system\s*override", 0.85),
    _injection(
        "forget_instructions",
        r"forget (?:all |everything |your )?(?:previous |prior )?(?:instructions|rules|constraints)",
        0.9,
    ),
    _injection("new_instructions", r"new (?:system )?instructions?:", 0.8),
    _injection(
        "prompt_extraction",
        r"(?:reveal|show|display|output|print) (?:your |the )?(?:system ?prompt|instructions|rules)",
        0.85,
    ),
    _injection("act_as", r"act as (?:if you (?:are|were)|an? )", 0.5),
    _injection("jailbreak", r"jailbreak", 0.8),
    _injection("dan_mode", r"\bDAN\b", 0.9),
    _injection("do_anything", r"do anything now", 0.85),
    _injection("developer_mode", r"developer mode", 0.7),
    _injection("privilege_escalation", r"(?:sudo|admin|root) mode", 0.8),
    _injection("disregard", r"disregard (?:all )?(?:previous|prior|safety)", 0.9),
    _injection("ignore_fr", r"ignorez? (?:les |toutes les )?instructions? pr[eé]c[eé]dentes?", 0.85),
    _injection(
        "ignore_de", r"ignoriere? (?:alle )?(?:vorherigen |bisherigen )?(?:Anweisungen|Instruktionen)", 0.85
    ),
    _injection("ignore_es", r"ignora (?:le |todas las )?instrucciones? (?:previas|anteriores)", 0.85),
    _injection("ignore_ja", r"前の指示を無視", 0.85),
    _injection("ignore_ru", r"игнорируй предыдущие инструкции", 0.85),
]

TOOL_RESULT_PREFIX = "─── Tool Result ───\n"
TOOL_RESULT_SUFFIX = "\n─── End Tool Result ───"

RECENT_HASHES = 20


@dataclass
class DefenseResult:
    """Outcome of checking one inbound message."""

    allowed: bool
    content: str
    threat_score: float = 0.0
    flags: list[str] = field(default_factory=list)
    reason: str | None = None


@dataclass
class UserProfile:
    """Rolling statistics of a user's recent messages."""

    average_length: float = 100.0
    message_count: int = 0
    recent_hashes: list[str] = field(default_factory=list)


def sanitize_input(content: str, max_length: int = 10_000) -> tuple[str, list[str]]:
    """Truncate input and filter control tokens, including base64-smuggled ones.

    Returns:
        Sanitized content and the flags raised
    """
    flags: list[str] = []
    if len(content) > max_length:
        content = content[:max_length]
        flags.append("input_truncated")

    if DANGEROUS_TOKEN_PATTERN.search(content):
        flags.append("dangerous_tokens_stripped")
        content = DANGEROUS_TOKEN_PATTERN.sub(FILTERED, content)

    for blob in BASE64_PATTERN.findall(content):
        decoded = _decode_base64(blob)
        if decoded is None:
            continue
        if DANGEROUS_TOKEN_PATTERN.search(decoded) or injection_score(decoded) > 0.5:
            flags.append("base64_injection_detected")
            content = content.replace(blob, BASE64_FILTERED)

    return content, flags


def _decode_base64(blob: str) -> str | None:
    padded = blob + "=" * (-len(blob) % 4)
    try:
        return base64.b64decode(padded, validate=True).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        return None


def has_role_override(content: str) -> bool:
    """Check user content for attempts to speak as another role."""
    return any(pattern.search(content) for pattern in ROLE_OVERRIDE_PATTERNS)


def match_injection_patterns(content: str) -> tuple[float, list[str]]:
    """Score content against the known injection phrasings.

    Returns:
        The highest matching weight and the labels of all matches
    """
    score = 0.0
    labels: list[str] = []
    for injection in INJECTION_PATTERNS:
        if injection.pattern.search(content):
            labels.append(injection.label)
            score = max(score, injection.weight)
    return score, labels


def injection_score(content: str) -> float:
    return match_injection_patterns(content)[0]


def wrap_tool_result(tool_name: str, result: str) -> str:
    """Delimit tool output so the model treats it as data, not instructions."""
    sanitized = DANGEROUS_TOKEN_PATTERN.sub(FILTERED, result)
    return f"{TOOL_RESULT_PREFIX}[{tool_name}]: {sanitized}{TOOL_RESULT_SUFFIX}"


class InputDefense:
    """Sanitizes and scores inbound user messages.

    Per-user profiles are kept in a bounded LRU so long-running gateways do
    not grow without limit.
    """

    def __init__(self, config: DefenseConfig | None = None, max_profiles: int = 10_000):
        """Initialize the defense.

        Args:
            config: Defense configuration (defaults if None)
            max_profiles: Most users tracked for anomaly detection
        """
        self.config = config or DefenseConfig()
        self.max_profiles = max_profiles
        self._profiles: OrderedDict[str, UserProfile] = OrderedDict()

    def check(self, user_id: str, content: str) -> DefenseResult:
        """Check one user message.

        Args:
            user_id: Who sent the message (session id when anonymous)
            content: Raw message text

        Returns:
            The decision, with the sanitized text to use from here on
        """
        if not self.config.enabled:
            return DefenseResult(allowed=True, content=content)

        sanitized, flags = sanitize_input(content, self.config.max_input_length)
        threat = 0.0

        if has_role_override(sanitized):
            flags.append("role_override_attempt")
            threat = ROLE_OVERRIDE_SCORE

        pattern_score, labels = match_injection_patterns(sanitized)
        threat = max(threat, pattern_score)
        flags.extend(labels)

        anomaly_score, anomaly_flags = self._detect_anomalies(user_id, sanitized)
        threat = max(threat, anomaly_score)
        flags.extend(anomaly_flags)

        if threat >= self.config.threat_threshold:
            reason = f"Threat score {threat:.2f} exceeds threshold. Flags: {', '.join(flags)}"
            logger.warning("Blocked input from %s: %s", user_id, reason)
            return DefenseResult(
                allowed=False, content=sanitized, threat_score=threat, flags=flags, reason=reason
            )

        if flags:
            logger.info("Input from %s flagged: %s", user_id, flags)
        return DefenseResult(allowed=True, content=sanitized, threat_score=threat, flags=flags)

    def _detect_anomalies(self, user_id: str, content: str) -> tuple[float, list[str]]:
        profile = self._profiles.pop(user_id, None) or UserProfile()
        self._profiles[user_id] = profile
        while len(self._profiles) > self.max_profiles:
            self._profiles.popitem(last=False)

        score = 0.0
        flags: list[str] = []

        if profile.message_count > 3 and len(content) > profile.average_length * 5:
            flags.append("anomaly_long_message")
            score = max(score, 0.4)

        special = len(SPECIAL_CHAR_PATTERN.sub("", content))
        if content and special / len(content) > 0.4:
            flags.append("anomaly_special_chars")
            score = max(score, 0.3)

        digest = hashlib.md5(content.lower().strip().encode("utf-8")).hexdigest()
        if profile.recent_hashes.count(digest) >= 2:
            flags.append("anomaly_repeated_message")
            score = max(score, 0.5)

        profile.message_count += 1
        profile.average_length += (len(content) - profile.average_length) / profile.message_count
        profile.recent_hashes.append(digest)
        del profile.recent_hashes[:-RECENT_HASHES]

        return score, flags
