import asyncio
import logging
import os
import sys
from typing import List, Optional

# --- Python Version Check ---
if sys.version_info < (3, 11):
    sys.stderr.write("Error: This script requires Python 3.11 or newer.\n")
    sys.stderr.write(f"You are running Python {sys.version.split()[0]}.\n")
    sys.exit(1)
# --- End Version Check ---

from src.app_config import AppConfig, load_app_config
from src.logging_config import LOGGER_NAME
from src.string_analyzer import TranslationChanges, analyze_strings_for_translation
from src.translation_merger import merge_batch_translations
from src.translation_service import OpenAITranslationService, TranslationServiceError
from src.translation_validator import find_placeholder_mismatches
from src.xcstrings_file import XCStringsFileError, load_xcstrings_file, write_xcstrings_file

logger = logging.getLogger(LOGGER_NAME)

DEFAULT_SOURCE_LANGUAGE = "en"


def resolve_source_language(source_language_override: Optional[str], xcstrings_data: dict) -> str:
    """Configured override first, then the catalog's ``sourceLanguage``, then English."""
    return (source_language_override or xcstrings_data.get('sourceLanguage') or DEFAULT_SOURCE_LANGUAGE).strip()


def format_change_summary(changes: TranslationChanges) -> List[str]:
    lines = []
    if changes.added:
        lines.append(f"Added translations for {len(changes.added)} strings: {', '.join(changes.added)}")
    if changes.updated:
        lines.append(f"Updated translations for {len(changes.updated)} strings: {', '.join(changes.updated)}")
    if changes.stale_removed:
        lines.append(
            f"Removed stale extraction state from {len(changes.stale_removed)} strings: "
            f"{', '.join(changes.stale_removed)}"
        )
    return lines


def build_change_report(
        changes: TranslationChanges,
        xcstrings_file_path: str,
        target_languages: List[str],
        model_name: str,
        source_language: str,
        fallback_to_key_count: int
) -> str:
    """
    Render the ledger of a run as Markdown, suitable as a pull request description.
    """
    total_changes = len(changes.added) + len(changes.updated) + len(changes.stale_removed)
    lines = [
        "## 🌐 Localization Update",
        "",
        f"`{xcstrings_file_path}` was updated with {total_changes} change(s).",
        "",
        f"- **Source language:** {source_language}",
        f"- **Target languages:** {', '.join(target_languages)}",
        f"- **Model:** {model_name}",
        f"- **Added:** {len(changes.added)}, **Updated:** {len(changes.updated)}, "
        f"**Stale removed:** {len(changes.stale_removed)}",
    ]
    if fallback_to_key_count:
        lines.append(f"- **Keys translated from the key text (no source value):** {fallback_to_key_count}")

    for title, entries in (
            ("Added translations", changes.added),
            ("Updated translations", changes.updated),
            ("Removed stale strings", changes.stale_removed)):
        if not entries:
            continue
        lines.extend(["", f"### {title}", ""])
        lines.extend(f"- `{entry}`" for entry in entries)

    return "\n".join(lines) + "\n"


def write_change_report(report_path: str, content: str) -> None:
    report_dir = os.path.dirname(report_path)
    if report_dir:
        os.makedirs(report_dir, exist_ok=True)
    with open(report_path, 'w', encoding='utf-8') as f:
        f.write(content)


def remove_change_report(report_path: str) -> None:
    """Make sure no report from a previous run is left behind."""
    if os.path.exists(report_path):
        os.remove(report_path)


def log_run_summary(
        config: AppConfig,
        source_language: str,
        changes: TranslationChanges,
        fallback_to_key_count: int,
        file_written: bool
) -> None:
    logger.info("")
    logger.info("=== Localization Summary ===")
    logger.info(f"File processed: {config.xcstrings_file_path}")
    logger.info(f"Target languages: {', '.join(config.target_languages)}")
    logger.info(f"OpenAI model used: {config.model_name}")
    if config.base_system_prompt:
        logger.info(f"Base system prompt: {config.base_system_prompt}")
    logger.info(f"Effective source language: {source_language}")

    if changes.has_changes():
        logger.info("Translation changes:")
        if changes.added:
            logger.info(f"  - Added: {len(changes.added)} translations")
        if changes.updated:
            logger.info(f"  - Updated: {len(changes.updated)} translations")
        if changes.stale_removed:
            logger.info(f"  - Removed stale extraction state from: {len(changes.stale_removed)} strings")
    else:
        logger.info("Translation changes: None")
    if fallback_to_key_count:
        logger.info(f"Strings translated from their key: {fallback_to_key_count}")

    if file_written:
        logger.info(f"Files modified: {config.xcstrings_file_path}")
        logger.info(f"Change report: {config.change_report_path}")
    else:
        logger.info("Files modified: None")
    logger.info("============================")


async def run_localization(
        config: AppConfig,
        translation_service: Optional[OpenAITranslationService] = None
) -> int:
    """
    Run one localization pass over the configured catalog.

    Args:
        config (AppConfig): The loaded configuration.
        translation_service (Optional[OpenAITranslationService]): Provider client. Built
            from ``config.openai_client`` when omitted and translations are needed.

    Returns:
        int: Process exit status, 0 on success and 1 on any fatal error.
    """
    xcstrings_file_path = config.xcstrings_file_path
    logger.info(f"XCStrings file: {xcstrings_file_path}")
    logger.info(f"Target languages: {', '.join(config.target_languages)}")
    logger.info(f"OpenAI model: {config.model_name}")
    if config.base_system_prompt:
        logger.info(f"Base system prompt: {config.base_system_prompt}")

    if not config.target_languages:
        logger.error("No target languages specified.")
        return 1

    try:
        xcstrings_data = load_xcstrings_file(xcstrings_file_path)
    except XCStringsFileError as e:
        logger.error(str(e))
        return 1
    logger.info(f"Successfully parsed {xcstrings_file_path}. Found {len(xcstrings_data['strings'])} string keys.")

    source_language = resolve_source_language(config.source_language, xcstrings_data)
    if config.source_language:
        logger.info(f"Source language (from configuration): {source_language}")
    else:
        logger.info(f"Source language (from catalog/default): {source_language}")

    analysis = analyze_strings_for_translation(
        xcstrings_data,
        config.target_languages,
        config.source_language
    )
    changes = analysis.translation_changes

    for key in changes.stale_removed:
        logger.info(f"Removed stale string entry: {key}")

    requests = analysis.translation_requests
    if requests:
        logger.info(f"Found {len(requests)} strings requiring translation. Processing in batch...")
        if analysis.fallback_to_key_count:
            logger.info(f"{analysis.fallback_to_key_count} string(s) have no source text; their key will be translated.")

        if config.dry_run:
            for request in requests:
                logger.info(f"[Dry Run] Would translate '{request.key}' to: {', '.join(request.target_languages)}")
            logger.info("[Dry Run] Skipping translation request and file write.")
            log_run_summary(config, source_language, changes, analysis.fallback_to_key_count, False)
            return 0

        try:
            if translation_service is None:
                translation_service = OpenAITranslationService(config.openai_client, config.model_name)
            batch_translations = await translation_service.get_batch_translations(
                requests,
                source_language,
                config.base_system_prompt
            )
        except TranslationServiceError as e:
            logger.error(f"Translation failed, no changes were written: {e}")
            return 1

        for change_key in find_placeholder_mismatches(requests, batch_translations):
            logger.warning(f"Placeholder mismatch in translation for '{change_key}'.")

        merge_batch_translations(
            analysis.modified_xcstrings_data,
            analysis.string_translation_map,
            batch_translations,
            changes
        )

    for line in format_change_summary(changes):
        logger.info(line)
    if not changes.has_changes():
        logger.info(f"No new strings requiring translation found in {xcstrings_file_path}")

    file_written = False
    if analysis.xcstrings_modified or changes.added or changes.updated:
        if config.dry_run:
            logger.info(f"[Dry Run] Would write changes to {xcstrings_file_path}.")
        else:
            try:
                write_xcstrings_file(xcstrings_file_path, analysis.modified_xcstrings_data)
            except XCStringsFileError as e:
                logger.error(str(e))
                return 1
            file_written = True
            logger.info(f"Changes written to {xcstrings_file_path}")
    else:
        logger.info(f"No changes needed for {xcstrings_file_path}")

    if file_written:
        report = build_change_report(
            changes,
            xcstrings_file_path,
            config.target_languages,
            config.model_name,
            source_language,
            analysis.fallback_to_key_count
        )
        write_change_report(config.change_report_path, report)
        logger.info(f"Change report written to {config.change_report_path}")
    elif not config.dry_run:
        remove_change_report(config.change_report_path)

    log_run_summary(config, source_language, changes, analysis.fallback_to_key_count, file_written)
    logger.info("Localization process completed.")
    return 0


async def main() -> int:
    """
    Main function to orchestrate the localization process.
    """
    config = load_app_config()
    return await run_localization(config)


def cli() -> None:
    try:
        exit_code = asyncio.run(main())
    except Exception as main_exc:
        logger.error(f"An unexpected error occurred during execution: {main_exc}", exc_info=True)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    cli()
