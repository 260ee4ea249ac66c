"""
Unified voice model and filtering helpers.

Adapters describe their voices with Voice/LanguageCode so callers can filter
them the same way regardless of engine.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

_LANGUAGE_NAMES = {
    "ar": "Arabic", "cs": "Czech", "da": "Danish", "de": "German", "el": "Greek",
    "en": "English", "es": "Spanish", "fi": "Finnish", "fr": "French", "he": "Hebrew",
    "hi": "Hindi", "hu": "Hungarian", "id": "Indonesian", "it": "Italian", "ja": "Japanese",
    "ko": "Korean", "nl": "Dutch", "no": "Norwegian", "pl": "Polish", "pt": "Portuguese",
    "ro": "Romanian", "ru": "Russian", "sv": "Swedish", "th": "Thai", "tr": "Turkish",
    "uk": "Ukrainian", "vi": "Vietnamese", "zh": "Chinese",
}

_REGION_NAMES = {
    "AU": "Australia", "BR": "Brazil", "CA": "Canada", "CN": "China", "DE": "Germany",
    "ES": "Spain", "FR": "France", "GB": "United Kingdom", "HK": "Hong Kong", "IE": "Ireland",
    "IN": "India", "IT": "Italy", "JP": "Japan", "KR": "Korea", "MX": "Mexico",
    "NZ": "New Zealand", "PT": "Portugal", "RU": "Russia", "TW": "Taiwan",
    "US": "United States", "ZA": "South Africa",
}

_ISO_639_3 = {
    "ar": "ara", "cs": "ces", "da": "dan", "de": "deu", "el": "ell", "en": "eng",
    "es": "spa", "fi": "fin", "fr": "fra", "he": "heb", "hi": "hin", "hu": "hun",
    "id": "ind", "it": "ita", "ja": "jpn", "ko": "kor", "nl": "nld", "no": "nor",
    "pl": "pol", "pt": "por", "ro": "ron", "ru": "rus", "sv": "swe", "th": "tha",
    "tr": "tur", "uk": "ukr", "vi": "vie", "zh": "zho",
}

_SEPARATOR_RE = re.compile(r"[_\s]+")


@dataclass
class LanguageCode:
    bcp47: str
    iso639_3: str = ""
    display: str = ""


@dataclass
class Voice:
    id: str
    name: str
    language_codes: List[LanguageCode] = field(default_factory=list)
    gender: Optional[str] = None  # "Male", "Female" or "Unknown"
    provider: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "language_codes": [vars(code).copy() for code in self.language_codes],
            "gender": self.gender,
            "provider": self.provider,
        }


def normalize_language(code: str) -> LanguageCode:
    """
    Normalize "en_us", "en-US" or "en" into a LanguageCode.

    Unknown languages keep their code as display name.
    """
    parts = _SEPARATOR_RE.sub("-", code.strip()).split("-")
    language = parts[0].lower()
    region = parts[1].upper() if len(parts) > 1 and parts[1] else ""

    bcp47 = f"{language}-{region}" if region else language
    display = _LANGUAGE_NAMES.get(language, code)
    if region:
        display = f"{display} ({_REGION_NAMES.get(region, region)})"

    return LanguageCode(bcp47=bcp47, iso639_3=_ISO_639_3.get(language, ""), display=display)


def normalize_gender(gender: Optional[str]) -> str:
    value = (gender or "").strip().lower()
    if value in ("male", "m"):
        return "Male"
    if value in ("female", "f"):
        return "Female"
    return "Unknown"


def filter_by_language(voices: Iterable[Voice], language_code: str) -> List[Voice]:
    """Voices speaking `language_code` (BCP-47, case-insensitive)."""
    wanted = language_code.lower()
    return [v for v in voices if any(code.bcp47.lower() == wanted for code in v.language_codes)]


def filter_by_gender(voices: Iterable[Voice], gender: str) -> List[Voice]:
    return [v for v in voices if v.gender == gender]


def filter_by_provider(voices: Iterable[Voice], provider: str) -> List[Voice]:
    return [v for v in voices if v.provider == provider]


def find_by_id(voices: Iterable[Voice], voice_id: str) -> Optional[Voice]:
    return next((v for v in voices if v.id == voice_id), None)


def get_available_languages(voices: Iterable[Voice]) -> List[str]:
    """Unique BCP-47 codes across all voices, in first-seen order."""
    languages = {}
    for voice in voices:
        for code in voice.language_codes:
            languages.setdefault(code.bcp47, None)
    return list(languages)
