"""
Markup capability registry.

Static, read-only table mapping (engine id, optional voice id) to the markup
support a backend offers. Some engines change support per voice tier; the
tier is guessed from the voice id by substring match, which is a heuristic
and can misclassify unusual voice names.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

logger = logging.getLogger("ttsbridge.capabilities")

# Wildcard entry of unsupported_tags meaning "every tag"
ALL_TAGS = "all"

COMMON_TAGS = ("speak", "prosody", "break", "emphasis", "voice", "phoneme", "say-as", "sub", "p", "s")


class SupportLevel(Enum):
    """How much of the markup dialect an engine honours."""
    FULL = "full"
    LIMITED = "limited"
    NONE = "none"


@dataclass(frozen=True)
class CapabilityProfile:
    """Markup capabilities of one engine (optionally narrowed to one voice)."""
    supports_markup: bool
    support_level: SupportLevel
    supported_tags: FrozenSet[str] = field(default_factory=frozenset)
    unsupported_tags: FrozenSet[str] = field(default_factory=frozenset)
    requires_namespace: bool = False
    requires_version: bool = False

    @property
    def strips_everything(self) -> bool:
        """True when transformation must remove all markup."""
        return not self.supports_markup or ALL_TAGS in self.unsupported_tags

    def supports_tag(self, tag: str) -> bool:
        tag = tag.lower()
        if self.strips_everything or tag in self.unsupported_tags:
            return False
        return not self.supported_tags or tag in self.supported_tags


@dataclass(frozen=True)
class VoiceTier:
    """Capability overlay applied when a voice id matches a tier."""
    name: str
    support_level: SupportLevel
    unsupported_tags: FrozenSet[str] = field(default_factory=frozenset)


def _profile(
    level: SupportLevel,
    supported: Iterable[str] = (),
    unsupported: Iterable[str] = (),
    namespace: bool = False,
    version: bool = False,
) -> CapabilityProfile:
    return CapabilityProfile(
        supports_markup=level is not SupportLevel.NONE,
        support_level=level,
        supported_tags=frozenset(supported),
        unsupported_tags=frozenset(unsupported),
        requires_namespace=namespace,
        requires_version=version,
    )


NO_MARKUP = _profile(SupportLevel.NONE, unsupported=[ALL_TAGS])

_BASE_PROFILES: Dict[str, CapabilityProfile] = {
    # Full markup support
    "sapi": _profile(SupportLevel.FULL, COMMON_TAGS, version=True),
    "witai": _profile(SupportLevel.FULL, COMMON_TAGS),
    "watson": _profile(SupportLevel.FULL, COMMON_TAGS),
    "azure": _profile(SupportLevel.FULL, COMMON_TAGS + ("mstts:express-as",), namespace=True, version=True),

    # Support depends on the voice tier
    "polly": _profile(
        SupportLevel.LIMITED,
        ("speak", "prosody", "break", "voice", "phoneme", "say-as", "sub", "p", "s", "mark", "lang"),
        namespace=True,
    ),
    "google": _profile(SupportLevel.LIMITED, COMMON_TAGS + ("mark", "lang", "audio")),
    "espeak": _profile(
        SupportLevel.LIMITED,
        ("speak", "prosody", "break", "emphasis", "p", "s"),
        ("voice", "phoneme", "say-as", "sub"),
    ),
    "espeak-wasm": _profile(
        SupportLevel.LIMITED,
        ("speak", "prosody", "break", "emphasis", "p", "s"),
        ("voice", "phoneme", "say-as", "sub"),
    ),

    # Plain text only
    "elevenlabs": NO_MARKUP,
    "openai": NO_MARKUP,
    "playht": NO_MARKUP,
    "sherpaonnx": NO_MARKUP,
    "sherpaonnx-wasm": NO_MARKUP,
    "edge": NO_MARKUP,
    "pyttsx3": NO_MARKUP,
    "piper": NO_MARKUP,
}

# Ordered: the first substring that matches the lower-cased voice id wins.
_VOICE_TIERS: Dict[str, Tuple[Tuple[str, VoiceTier], ...]] = {
    "polly": (
        ("neural", VoiceTier("neural", SupportLevel.LIMITED,
                             frozenset({"emphasis", "amazon:auto-breaths", "amazon:effect"}))),
        ("generative", VoiceTier("generative", SupportLevel.LIMITED,
                                 frozenset({"emphasis", "amazon:auto-breaths", "amazon:effect", "mark"}))),
        ("long-form", VoiceTier("long-form", SupportLevel.FULL)),
    ),
    "google": (
        ("neural2", VoiceTier("neural2", SupportLevel.LIMITED, frozenset({"mark"}))),
        ("journey", VoiceTier("journey", SupportLevel.NONE, frozenset({ALL_TAGS}))),
        ("studio", VoiceTier("studio", SupportLevel.NONE, frozenset({ALL_TAGS}))),
        ("wavenet", VoiceTier("wavenet", SupportLevel.FULL)),
        ("standard", VoiceTier("standard", SupportLevel.FULL)),
    ),
}

# Tier used when no substring matches
_DEFAULT_TIERS: Dict[str, VoiceTier] = {
    "polly": VoiceTier("standard", SupportLevel.FULL),
    "google": VoiceTier("standard", SupportLevel.FULL),
}


class CapabilityRegistry:
    """
    Read-only lookup of capability profiles.

    The module-level `registry` is built once at import. `register_profile()`
    is meant for start-up wiring of extra engines, before any synthesis runs.
    """

    def __init__(
        self,
        profiles: Mapping[str, CapabilityProfile],
        voice_tiers: Mapping[str, Tuple[Tuple[str, VoiceTier], ...]],
        default_tiers: Mapping[str, VoiceTier],
    ):
        self._profiles = dict(profiles)
        self._voice_tiers = dict(voice_tiers)
        self._default_tiers = dict(default_tiers)

    @property
    def profiles(self) -> Mapping[str, CapabilityProfile]:
        return MappingProxyType(self._profiles)

    def known_engines(self) -> List[str]:
        return sorted(self._profiles)

    def register_profile(
        self,
        engine_id: str,
        profile: CapabilityProfile,
        voice_tiers: Optional[Iterable[Tuple[str, VoiceTier]]] = None,
        default_tier: Optional[VoiceTier] = None,
    ):
        """Add or replace the profile of an engine."""
        engine_id = engine_id.lower()
        self._profiles[engine_id] = profile
        if voice_tiers is not None:
            self._voice_tiers[engine_id] = tuple(voice_tiers)
        if default_tier is not None:
            self._default_tiers[engine_id] = default_tier
        logger.info(f"Registered capability profile for '{engine_id}' ({profile.support_level.value})")

    def detect_voice_tier(self, engine_id: str, voice_id: str) -> Optional[VoiceTier]:
        """Guess the voice tier from the voice id; None if the engine has no tiers."""
        engine_id = engine_id.lower()
        tiers = self._voice_tiers.get(engine_id)
        if not tiers:
            return None

        lowered = voice_id.lower()
        for needle, tier in tiers:
            if needle in lowered:
                return tier
        return self._default_tiers.get(engine_id)

    def resolve(self, engine_id: str, voice_id: Optional[str] = None) -> CapabilityProfile:
        """Resolve the capability profile for an engine and optional voice."""
        base = self._profiles.get((engine_id or "").lower())
        if base is None:
            logger.debug(f"Unknown engine '{engine_id}', assuming no markup support")
            return NO_MARKUP

        if voice_id:
            tier = self.detect_voice_tier(engine_id, voice_id)
            if tier is not None:
                logger.debug(f"Voice '{voice_id}' on '{engine_id}' detected as tier '{tier.name}'")
                return replace(
                    base,
                    supports_markup=tier.support_level is not SupportLevel.NONE,
                    support_level=tier.support_level,
                    unsupported_tags=tier.unsupported_tags,
                )

        return base


registry = CapabilityRegistry(_BASE_PROFILES, _VOICE_TIERS, _DEFAULT_TIERS)


def resolve(engine_id: str, voice_id: Optional[str] = None) -> CapabilityProfile:
    """Resolve a profile from the process-wide registry."""
    return registry.resolve(engine_id, voice_id)
