import json
import os

import pytest

from src.app_config import AppConfig


@pytest.fixture
def sample_xcstrings():
    """A catalog covering every state the analyzer distinguishes."""
    return {
        "sourceLanguage": "en",
        "strings": {
            "Hello": {
                "localizations": {}
            },
            "Welcome %@": {
                "comment": "Greeting on the home screen",
                "localizations": {
                    "en": {"stringUnit": {"state": "translated", "value": "Welcome, %@!"}},
                    "de": {"stringUnit": {"state": "translated", "value": "Willkommen, %@!"}},
                    "fr": {"stringUnit": {"state": "needs_review", "value": "Bienvenue, %@ !"}}
                }
            },
            "Old title": {
                "extractionState": "stale",
                "localizations": {
                    "de": {"stringUnit": {"state": "translated", "value": "Alter Titel"}}
                }
            },
            "AppName": {
                "shouldTranslate": False
            },
            "Settings": {
                "localizations": {
                    "de": {"stringUnit": {"state": "translated", "value": "   "}},
                    "fr": {"stringUnit": {"state": "translated", "value": "Réglages"}}
                }
            },
            "Done": {
                "localizations": {
                    "de": {"stringUnit": {"state": "translated", "value": "Fertig"}},
                    "fr": {"stringUnit": {"state": "translated", "value": "Terminé"}}
                }
            }
        },
        "version": "1.0"
    }


@pytest.fixture
def xcstrings_file(tmp_path, sample_xcstrings):
    """Writes the sample catalog to a temporary .xcstrings file and returns its path."""
    file_path = tmp_path / "Localizable.xcstrings"
    file_path.write_text(json.dumps(sample_xcstrings, ensure_ascii=False, indent=2), encoding="utf-8")
    return str(file_path)


@pytest.fixture
def app_config(tmp_path, xcstrings_file):
    return AppConfig(
        project_root=str(tmp_path),
        xcstrings_file_path=xcstrings_file,
        change_report_path=os.path.join(str(tmp_path), "logs", "translation_changes.md"),
        target_languages=["de", "fr"],
        source_language=None,
        model_name="gpt-4o-mini",
        base_system_prompt="",
        dry_run=False,
        openai_client=None
    )
