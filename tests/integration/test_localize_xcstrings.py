"""
Integration tests for the localization run.

A real catalog file is analyzed, merged and written back; only the translation
provider is replaced with an AsyncMock.
"""
import json
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.localize_xcstrings import (
    build_change_report,
    resolve_source_language,
    run_localization
)
from src.string_analyzer import TranslationChanges
from src.translation_service import TranslationServiceError


def _fake_service(batch_translations=None, side_effect=None):
    service = MagicMock()
    service.get_batch_translations = AsyncMock(return_value=batch_translations, side_effect=side_effect)
    return service


def _read(path):
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()


BATCH = [
    {"key": "Hello", "translations": {"de": "Hallo", "fr": "Bonjour"}},
    {"key": "Welcome %@", "translations": {"de": "Herzlich willkommen, %@!", "fr": "Bienvenue, %@ !"}},
    {"key": "Not requested", "translations": {"de": "Nicht angefragt", "fr": "Pas demandé"}},
]


@pytest.mark.asyncio
async def test_full_run_writes_catalog_and_report(app_config):
    service = _fake_service(BATCH)

    exit_code = await run_localization(app_config, service)

    assert exit_code == 0
    content = _read(app_config.xcstrings_file_path)
    assert '"sourceLanguage" : "en"' in content
    catalog = json.loads(content)
    strings = catalog["strings"]

    assert "Old title" not in strings
    assert strings["AppName"] == {"shouldTranslate": False}
    assert strings["Hello"]["localizations"]["de"] == {"stringUnit": {"state": "translated", "value": "Hallo"}}
    assert strings["Welcome %@"]["localizations"]["fr"]["stringUnit"] == {
        "state": "translated", "value": "Bienvenue, %@ !"
    }
    # Not needed for this key, so the provider's value is ignored.
    assert strings["Welcome %@"]["localizations"]["de"]["stringUnit"]["value"] == "Willkommen, %@!"
    # Requested but missing from the response: left as it was.
    assert strings["Settings"]["localizations"]["de"]["stringUnit"]["value"] == "   "
    assert "Not requested" not in strings
    assert list(strings) == ["Hello", "Welcome %@", "AppName", "Settings", "Done"]

    requests = service.get_batch_translations.call_args.args[0]
    assert [request.key for request in requests] == ["Hello", "Welcome %@", "Settings"]
    assert service.get_batch_translations.call_args.args[1] == "en"

    report = _read(app_config.change_report_path)
    assert "- `Hello (de)`" in report
    assert "- `Hello (fr)`" in report
    assert "- `Welcome %@ (fr)`" in report
    assert "- `Old title`" in report


@pytest.mark.asyncio
async def test_provider_failure_leaves_file_untouched(app_config):
    original = _read(app_config.xcstrings_file_path)
    service = _fake_service(side_effect=TranslationServiceError("boom"))

    exit_code = await run_localization(app_config, service)

    assert exit_code == 1
    assert _read(app_config.xcstrings_file_path) == original
    assert not os.path.exists(app_config.change_report_path)


@pytest.mark.asyncio
async def test_dry_run_neither_translates_nor_writes(app_config):
    app_config.dry_run = True
    original = _read(app_config.xcstrings_file_path)
    service = _fake_service(BATCH)

    exit_code = await run_localization(app_config, service)

    assert exit_code == 0
    service.get_batch_translations.assert_not_called()
    assert _read(app_config.xcstrings_file_path) == original
    assert not os.path.exists(app_config.change_report_path)


@pytest.mark.asyncio
async def test_stale_only_changes_are_written_without_provider_call(app_config):
    catalog = {
        "sourceLanguage": "en",
        "strings": {
            "Done": {"localizations": {
                "de": {"stringUnit": {"state": "translated", "value": "Fertig"}},
                "fr": {"stringUnit": {"state": "translated", "value": "Terminé"}}
            }},
            "Gone": {"extractionState": "stale"}
        },
        "version": "1.0"
    }
    with open(app_config.xcstrings_file_path, 'w', encoding='utf-8') as f:
        json.dump(catalog, f)
    service = _fake_service([])

    exit_code = await run_localization(app_config, service)

    assert exit_code == 0
    service.get_batch_translations.assert_not_called()
    assert list(json.loads(_read(app_config.xcstrings_file_path))["strings"]) == ["Done"]
    assert "- `Gone`" in _read(app_config.change_report_path)


@pytest.mark.asyncio
async def test_up_to_date_catalog_is_not_rewritten(app_config):
    catalog = {"strings": {"Done": {"localizations": {
        "de": {"stringUnit": {"state": "translated", "value": "Fertig"}},
        "fr": {"stringUnit": {"state": "translated", "value": "Terminé"}}
    }}}}
    raw = json.dumps(catalog)
    with open(app_config.xcstrings_file_path, 'w', encoding='utf-8') as f:
        f.write(raw)
    os.makedirs(os.path.dirname(app_config.change_report_path), exist_ok=True)
    with open(app_config.change_report_path, 'w', encoding='utf-8') as f:
        f.write("old report")

    exit_code = await run_localization(app_config, _fake_service([]))

    assert exit_code == 0
    assert _read(app_config.xcstrings_file_path) == raw
    assert not os.path.exists(app_config.change_report_path)


@pytest.mark.asyncio
async def test_unparseable_catalog_aborts_before_analysis(app_config):
    with open(app_config.xcstrings_file_path, 'w', encoding='utf-8') as f:
        f.write("{ not json")
    service = _fake_service(BATCH)

    with patch('src.localize_xcstrings.analyze_strings_for_translation') as mock_analyze:
        exit_code = await run_localization(app_config, service)

    assert exit_code == 1
    mock_analyze.assert_not_called()
    service.get_batch_translations.assert_not_called()


@pytest.mark.asyncio
async def test_write_failure_returns_error_without_report(app_config):
    from src.xcstrings_file import XCStringsFileError

    with patch('src.localize_xcstrings.write_xcstrings_file', side_effect=XCStringsFileError("read-only")):
        exit_code = await run_localization(app_config, _fake_service(BATCH))

    assert exit_code == 1
    assert not os.path.exists(app_config.change_report_path)


@pytest.mark.asyncio
async def test_source_language_override_selects_text(app_config):
    app_config.source_language = "en"
    service = _fake_service([])

    await run_localization(app_config, service)

    requests = service.get_batch_translations.call_args.args[0]
    texts = {request.key: request.text for request in requests}
    assert texts["Welcome %@"] == "Welcome, %@!"
    assert texts["Hello"] == "Hello"


def test_resolve_source_language():
    assert resolve_source_language("ja", {"sourceLanguage": "en"}) == "ja"
    assert resolve_source_language(None, {"sourceLanguage": "de"}) == "de"
    assert resolve_source_language(None, {}) == "en"


def test_change_report_lists_every_change():
    changes = TranslationChanges(
        added=["Hello (fr)"],
        updated=["Welcome (de)"],
        stale_removed=["Old title"]
    )

    report = build_change_report(changes, "Localizable.xcstrings", ["fr", "de"], "gpt-4o-mini", "en", 2)

    assert "was updated with 3 change(s)" in report
    assert "**Target languages:** fr, de" in report
    assert "no source value):** 2" in report
    for entry in changes.added + changes.updated + changes.stale_removed:
        assert f"- `{entry}`" in report
