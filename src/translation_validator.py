from typing import Any, Iterable, List, Mapping, Sequence, Tuple
import re
from collections import Counter

from src.string_analyzer import TranslationRequest

# printf-style specifiers used by Foundation strings (%@, %d, %lld, %1$@, %.2f, ...)
# and brace placeholders such as {0} or {name}. An escaped "%%" is matched first
# so it is never read as the start of a specifier.
PLACEHOLDER_REGEX = re.compile(
    r'%%'
    r'|%(?:\d+\$)?[-+0#]*\d*(?:\.\d+)?(?:hh|h|ll|l|q|z|t|j|L)?[@dDiuUxXoOfFeEgGcCsSpaA]'
    r'|\{[^{}]+\}'
)


def check_key_coverage(requested_keys: Sequence[str], received_keys: Iterable[str]) -> Tuple[List[str], List[str]]:
    """
    Compares the keys returned by the provider against the keys that were requested.

    Args:
        requested_keys: Keys sent in the batch, in request order.
        received_keys: Keys found in the provider response.

    Returns:
        A tuple containing two lists:
        - missing_keys: Requested keys absent from the response, in request order.
        - extra_keys: Returned keys that were never requested, in response order.
    """
    received = list(dict.fromkeys(received_keys))
    requested = set(requested_keys)
    received_set = set(received)
    missing_keys = [key for key in requested_keys if key not in received_set]
    extra_keys = [key for key in received if key not in requested]
    return missing_keys, extra_keys


def check_placeholder_parity(base_string: str, target_string: str) -> bool:
    """
    Checks if the multiset of placeholders is identical between a source and a translated string.
    Reordering is allowed; translations frequently move arguments around.

    Args:
        base_string: The source text that was sent for translation.
        target_string: The translated string.

    Returns:
        True if both strings carry the same placeholders, False otherwise.
    """
    base_placeholders = Counter(PLACEHOLDER_REGEX.findall(base_string))
    target_placeholders = Counter(PLACEHOLDER_REGEX.findall(target_string))

    return base_placeholders == target_placeholders


def find_placeholder_mismatches(
        translation_requests: Sequence[TranslationRequest],
        batch_translations: Iterable[Mapping[str, Any]]
) -> List[str]:
    """
    Lists "<key> (<language>)" identifiers whose translation lost or gained placeholders.

    Only requested languages of requested keys are inspected. The result is a
    diagnostic: mismatching translations are still merged.
    """
    requests_by_key = {request.key: request for request in translation_requests}
    mismatches: List[str] = []
    for item in batch_translations:
        request = requests_by_key.get(item.get('key'))
        if request is None:
            continue
        for lang, value in (item.get('translations') or {}).items():
            if lang not in request.target_languages or not isinstance(value, str):
                continue
            if not check_placeholder_parity(request.text, value):
                mismatches.append(f"{request.key} ({lang})")
    return mismatches
