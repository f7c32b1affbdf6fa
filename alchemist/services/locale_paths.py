# alchemist/services/locale_paths.py
"""
URL path <-> language tag helpers.

Every application path is representable with or without a leading locale
segment ("/ja/pricing" vs "/pricing"). Only an exact, case-sensitive match
of the first segment against SUPPORTED_LANGUAGES counts as a locale, so an
unknown first segment is always treated as a real route segment.
"""
from __future__ import annotations
from typing import Optional

SUPPORTED_LANGUAGES: tuple[str, ...] = ("en", "zh-CN", "zh-TW", "ja", "es", "ko")
DEFAULT_LANGUAGE = "en"

# Runtime locale -> supported tag. Also consulted with the primary subtag
# alone, so "zh-HK" folds to "zh" and then to "zh-CN".
LANGUAGE_ALIASES: dict[str, str] = {
    "zh-CN": "zh-CN",
    "zh-Hans": "zh-CN",
    "zh": "zh-CN",
    "zh-TW": "zh-TW",
    "zh-Hant": "zh-TW",
    "ja": "ja",
    "ja-JP": "ja",
    "es": "es",
    "es-ES": "es",
    "ko": "ko",
    "ko-KR": "ko",
}


def is_supported(lang: str | None) -> bool:
    return lang in SUPPORTED_LANGUAGES


def extract_language(path: str) -> Optional[str]:
    segments = [s for s in (path or "").split("/") if s]
    if segments and segments[0] in SUPPORTED_LANGUAGES:
        return segments[0]
    return None


def strip_language(path: str) -> str:
    lang = extract_language(path)
    if not lang:
        return path
    rest = path.lstrip("/")[len(lang):]
    return rest or "/"


def inject_language(path: str, lang: str) -> str:
    clean = strip_language(path or "/")
    if not clean.startswith("/"):
        clean = "/" + clean
    return f"/{lang}" if clean == "/" else f"/{lang}{clean}"


def resolve_default_language(preferred: str | None = None) -> str:
    """
    Map the runtime's reported locale (e.g. "es-ES", "zh-HK") onto a supported tag:
    exact match, then the alias table, then the primary subtag, then DEFAULT_LANGUAGE.
    """
    tag = (preferred or "").strip().replace("_", "-")
    if not tag:
        return DEFAULT_LANGUAGE
    if tag in SUPPORTED_LANGUAGES:
        return tag
    if tag in LANGUAGE_ALIASES:
        return LANGUAGE_ALIASES[tag]
    prefix = tag.split("-")[0]
    if prefix in LANGUAGE_ALIASES:
        return LANGUAGE_ALIASES[prefix]
    return DEFAULT_LANGUAGE


def hreflang_urls(path: str, base_url: str = "https://resumealchemist.qwizai.com") -> list[tuple[str, str]]:
    clean = strip_language(path)
    base = base_url.rstrip("/")
    return [
        (lang, f"{base}{clean if lang == DEFAULT_LANGUAGE else inject_language(clean, lang)}")
        for lang in SUPPORTED_LANGUAGES
    ]
