import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, TypedDict


class StringUnit(TypedDict, total=False):
    state: str
    value: str


class Localization(TypedDict, total=False):
    stringUnit: StringUnit


class StringEntry(TypedDict, total=False):
    comment: str
    shouldTranslate: bool
    extractionState: str
    localizations: Dict[str, Localization]


class XCStrings(TypedDict, total=False):
    sourceLanguage: str
    version: str
    strings: Dict[str, StringEntry]


@dataclass
class TranslationRequest:
    """A single key sent to the translation provider with every language it still needs."""
    key: str
    text: str
    target_languages: List[str]
    comment: Optional[str] = None


@dataclass
class TranslationNeed:
    """Languages a key needs, and whether each one had no localization before the run."""
    languages: List[str]
    is_new: Dict[str, bool] = field(default_factory=dict)


@dataclass
class TranslationChanges:
    added: List[str] = field(default_factory=list)
    updated: List[str] = field(default_factory=list)
    stale_removed: List[str] = field(default_factory=list)

    def has_changes(self) -> bool:
        return bool(self.added or self.updated or self.stale_removed)


@dataclass
class StringAnalysisResult:
    translation_requests: List[TranslationRequest]
    translation_changes: TranslationChanges
    string_translation_map: Dict[str, TranslationNeed]
    modified_xcstrings_data: Dict[str, Any]
    xcstrings_modified: bool
    fallback_to_key_count: int


def needs_translation(localization: Optional[Localization]) -> bool:
    """
    Decide whether a single language of a string needs (re)translation.

    A language needs work when it has no localization or string unit, when the
    value is empty or whitespace only, or when it is flagged ``needs_review``.
    """
    string_unit = (localization or {}).get('stringUnit')
    if not string_unit:
        return True
    value = string_unit.get('value')
    if not value or not value.strip():
        return True
    return string_unit.get('state') == 'needs_review'


def _source_text_candidate(entry: StringEntry, source_language: Optional[str]) -> Optional[str]:
    if not source_language:
        return None
    localization = entry.get('localizations', {}).get(source_language) or {}
    value = (localization.get('stringUnit') or {}).get('value')
    if value is None:
        return None
    return value.strip()


def analyze_strings_for_translation(
        xcstrings_data: XCStrings,
        target_languages: Sequence[str],
        source_language_for_text: Optional[str] = None
) -> StringAnalysisResult:
    """
    Find the strings that need translation and build the request batch.

    The catalog is deep-copied first; stale entries are removed from the copy and
    entries without a ``localizations`` map get an empty one. The caller's data is
    never modified.

    Args:
        xcstrings_data (XCStrings): The parsed catalog.
        target_languages (Sequence[str]): Distinct language codes, in the order
            requests should list them.
        source_language_for_text (Optional[str]): Language whose value is sent as
            the text to translate. When absent, or when that value is empty, the
            key itself is sent.

    Returns:
        StringAnalysisResult: Requests in catalog order, the per-key need index,
        the modified copy and change counters.

    Raises:
        ValueError: If ``target_languages`` is empty or contains duplicates.
    """
    target_languages = list(target_languages)
    if not target_languages:
        raise ValueError("At least one target language is required.")
    if len(set(target_languages)) != len(target_languages):
        raise ValueError(f"Target languages must be distinct: {', '.join(target_languages)}")

    modified_xcstrings_data = copy.deepcopy(xcstrings_data)
    strings = modified_xcstrings_data.setdefault('strings', {})

    translation_requests: List[TranslationRequest] = []
    translation_changes = TranslationChanges()
    string_translation_map: Dict[str, TranslationNeed] = {}
    xcstrings_modified = False
    fallback_to_key_count = 0

    for key, entry in list(strings.items()):
        if entry.get('extractionState') == 'stale':
            del strings[key]
            xcstrings_modified = True
            translation_changes.stale_removed.append(key)
            continue

        if entry.get('shouldTranslate') is False:
            continue

        if entry.get('localizations') is None:
            entry['localizations'] = {}
        localizations = entry['localizations']

        languages_needed: List[str] = []
        is_new: Dict[str, bool] = {}
        for lang in target_languages:
            localization = localizations.get(lang)
            if needs_translation(localization):
                languages_needed.append(lang)
                is_new[lang] = localization is None

        if not languages_needed:
            continue

        source_text = _source_text_candidate(entry, source_language_for_text)
        if not source_text:
            fallback_to_key_count += 1
            source_text = key

        translation_requests.append(TranslationRequest(
            key=key,
            text=source_text,
            target_languages=languages_needed,
            comment=entry.get('comment')
        ))
        string_translation_map[key] = TranslationNeed(languages=languages_needed, is_new=is_new)

    return StringAnalysisResult(
        translation_requests=translation_requests,
        translation_changes=translation_changes,
        string_translation_map=string_translation_map,
        modified_xcstrings_data=modified_xcstrings_data,
        xcstrings_modified=xcstrings_modified,
        fallback_to_key_count=fallback_to_key_count
    )
