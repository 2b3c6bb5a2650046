import logging
from typing import Any, Dict, Iterable, Mapping, Optional

from src.logging_config import LOGGER_NAME
from src.string_analyzer import TranslationChanges, TranslationNeed

logger = logging.getLogger(LOGGER_NAME)


def merge_batch_translations(
        modified_xcstrings_data: Dict[str, Any],
        string_translation_map: Mapping[str, TranslationNeed],
        batch_translations: Iterable[Mapping[str, Any]],
        translation_changes: Optional[TranslationChanges] = None
) -> TranslationChanges:
    """
    Write provider translations into the analyzed catalog and classify each change.

    Items are applied in response order. A translation is only written for a key
    the analyzer requested and a language that key needed; anything else is logged
    and skipped. Applied values overwrite the string unit and mark it
    ``translated``. Needed languages the provider did not return stay as they are.

    Args:
        modified_xcstrings_data (Dict[str, Any]): The analyzer's catalog copy, updated in place.
        string_translation_map (Mapping[str, TranslationNeed]): Per-key needs from the analyzer.
        batch_translations (Iterable[Mapping[str, Any]]): Provider items shaped
            ``{"key": ..., "translations": {language: value}}``.
        translation_changes (Optional[TranslationChanges]): Ledger to extend, normally
            the analyzer's so stale removals carry through. A new one is used if omitted.

    Returns:
        TranslationChanges: The ledger with ``added`` and ``updated`` filled in.
    """
    if translation_changes is None:
        translation_changes = TranslationChanges()

    strings = modified_xcstrings_data.get('strings', {})

    for translation_result in batch_translations:
        key = translation_result.get('key')
        string_entry = strings.get(key)
        translation_info = string_translation_map.get(key)

        if string_entry is None or translation_info is None:
            logger.warning(f"Received translation for unknown key: {key}")
            continue

        localizations = string_entry.get('localizations')
        if localizations is None:
            localizations = string_entry['localizations'] = {}

        for lang, translated_value in (translation_result.get('translations') or {}).items():
            if lang not in translation_info.languages:
                logger.warning(f"Ignoring translation for key '{key}' in language '{lang}' that was not requested.")
                continue

            localization = localizations.get(lang)
            if localization is None:
                localization = localizations[lang] = {}
            localization['stringUnit'] = {
                "state": "translated",
                "value": translated_value
            }

            change_key = f"{key} ({lang})"
            if translation_info.is_new.get(lang):
                translation_changes.added.append(change_key)
            else:
                translation_changes.updated.append(change_key)
            logger.debug(f"Merged translation for '{change_key}'.")

    return translation_changes
