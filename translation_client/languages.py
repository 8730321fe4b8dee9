from typing import Any, Optional

from translation_client.exceptions import InvalidParameterError
from translation_client.models import GlossaryRef

_DEPRECATED_TARGETS = {
    "en": 'target_lang="en" is deprecated, please use "en-GB" or "en-US" instead.',
    "pt": 'target_lang="pt" is deprecated, please use "pt-PT" or "pt-BR" instead.',
}


def standardize_language_code(code: str) -> str:
    """Lower-case the language part and upper-case any region, e.g. "EN-us" -> "en-US"."""
    if not code:
        raise InvalidParameterError("language code must be a non-empty string")
    language, _, region = code.partition("-")
    if region:
        return f"{language.lower()}-{region.upper()}"
    return language.lower()


def build_translation_params(
    source_lang: Optional[str],
    target_lang: str,
    formality: Optional[str] = None,
    glossary: Optional[GlossaryRef] = None,
) -> dict[str, Any]:
    """Request parameters shared by text and document translation"""
    target_lang = standardize_language_code(target_lang)
    if target_lang in _DEPRECATED_TARGETS:
        raise InvalidParameterError(_DEPRECATED_TARGETS[target_lang])

    params: dict[str, Any] = {"target_lang": target_lang}
    if source_lang is not None:
        params["source_lang"] = standardize_language_code(source_lang)
    if formality is not None and formality.lower() != "default":
        params["formality"] = formality.lower()
    if glossary is not None:
        if source_lang is None:
            raise InvalidParameterError("source_lang is required if using a glossary")
        params["glossary_id"] = glossary.resolve_id()
    return params
