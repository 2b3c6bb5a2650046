"""Application configuration module for the localization run."""
import logging
import os
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Union

import yaml
from dotenv import load_dotenv
from openai import AsyncOpenAI, OpenAIError

from src.logging_config import setup_logger


@dataclass
class AppConfig:
    """Application configuration dataclass."""
    # Core paths
    project_root: str
    xcstrings_file_path: str
    change_report_path: str

    # Language configuration
    target_languages: List[str]
    source_language: Optional[str]

    # Model configuration
    model_name: str
    base_system_prompt: str

    # Processing settings
    dry_run: bool

    # OpenAI client
    openai_client: Optional[AsyncOpenAI]


def _compute_project_root() -> str:
    """Compute the project root directory."""
    script_real_path = os.path.realpath(__file__)
    script_dir = os.path.dirname(script_real_path)
    return os.path.abspath(os.path.join(script_dir, os.pardir))


def _load_dotenv_files(project_root: str) -> None:
    """Load .env files from project root or docker directory."""
    dotenv_path_project_root = os.path.join(project_root, '.env')
    dotenv_path_docker_dir = os.path.join(project_root, 'docker', '.env')

    if os.path.exists(dotenv_path_project_root):
        load_dotenv(dotenv_path_project_root)
    elif os.path.exists(dotenv_path_docker_dir):
        load_dotenv(dotenv_path_docker_dir)


def _load_yaml_config(project_root: str) -> Dict[str, Any]:
    """Load the YAML configuration file, falling back to defaults when it is missing or invalid."""
    default_config_path = os.path.join(project_root, 'config.yaml')
    config_file = os.environ.get('TRANSLATOR_CONFIG_FILE', default_config_path)

    if not os.path.isabs(config_file):
        config_file = os.path.abspath(config_file)

    config = {}
    try:
        if not os.path.exists(config_file):
            print(f"Warning: Configuration file '{config_file}' not found. Using default configuration.",
                  file=sys.stderr)
            print(f"Tip: Create a config.yaml file in '{project_root}' or set TRANSLATOR_CONFIG_FILE environment variable.",
                  file=sys.stderr)
            return config

        if not os.access(config_file, os.R_OK):
            print(f"Error: Configuration file '{config_file}' exists but is not readable. Check file permissions.",
                  file=sys.stderr)
            return config

        with open(config_file, 'r', encoding='utf-8') as config_file_stream:
            loaded_config = yaml.safe_load(config_file_stream)
            if loaded_config is None:
                print(f"Warning: Configuration file '{config_file}' is empty. Using default configuration.",
                      file=sys.stderr)
            elif isinstance(loaded_config, dict):
                config = loaded_config
                print(f"Successfully loaded configuration from: {config_file}", file=sys.stderr)
            else:
                print(f"Error: Configuration file '{config_file}' must contain a YAML dictionary. Using defaults.",
                      file=sys.stderr)

    except yaml.YAMLError as e:
        print(f"Error: Invalid YAML in configuration file '{config_file}': {e}", file=sys.stderr)
        print("Please check your YAML syntax. Using default configuration.", file=sys.stderr)
    except (OSError, IOError) as e:
        print(f"Error: Could not read configuration file '{config_file}': {e}", file=sys.stderr)
        print("Using default configuration.", file=sys.stderr)

    return config


def _setup_logger_from_config(config: Dict[str, Any]) -> logging.Logger:
    """Set up logger based on configuration."""
    log_config = config.get('logging', {})
    log_level_str = log_config.get('log_level', 'INFO').upper()
    log_file_path = log_config.get('log_file_path', 'logs/localization_log.log')
    log_to_console = log_config.get('log_to_console', True)
    return setup_logger(log_level_str, log_file_path, log_to_console)


def _log_dotenv_status(logger: logging.Logger, project_root: str) -> None:
    """Log the status of .env file loading."""
    dotenv_path_project_root = os.path.join(project_root, '.env')
    dotenv_path_docker_dir = os.path.join(project_root, 'docker', '.env')

    if os.path.exists(dotenv_path_project_root):
        logger.info("Loaded environment variables from: %s", dotenv_path_project_root)
    elif os.path.exists(dotenv_path_docker_dir):
        logger.info("Loaded environment variables from: %s", dotenv_path_docker_dir)
    else:
        logger.info(
            "No .env file found in project root ('%s') or in docker/ ('%s'). Relying on system environment variables if any.",
            dotenv_path_project_root,
            dotenv_path_docker_dir
        )


def parse_target_languages(value: Union[str, List[str], None]) -> List[str]:
    """
    Normalize the target language setting.

    Accepts a comma-separated string ("de, fr,ja") or a YAML list. Entries are
    stripped, blanks dropped and duplicates removed, keeping the first occurrence.
    """
    if value is None:
        return []
    if isinstance(value, str):
        candidates = value.split(',')
    else:
        candidates = [str(item) for item in value]
    languages = [lang.strip() for lang in candidates if lang and lang.strip()]
    return list(dict.fromkeys(languages))


def _create_openai_client(dry_run: bool, logger: logging.Logger) -> Optional[AsyncOpenAI]:
    """Create OpenAI client if not in dry run mode."""
    if dry_run:
        logger.info("Running in dry-run mode, OpenAI client will not be initialized")
        return None

    api_key_from_env = os.environ.get('OPENAI_API_KEY')
    if not api_key_from_env:
        logger.critical("CRITICAL: OPENAI_API_KEY environment variable not found.")
        logger.critical("Please set OPENAI_API_KEY or enable dry_run mode in configuration.")
        logger.critical("For dry-run mode, set 'dry_run: true' in your config file.")
        sys.exit(1)

    if not api_key_from_env.startswith('sk-'):
        logger.warning("Warning: OPENAI_API_KEY does not start with 'sk-'. This may be invalid.")

    try:
        client = AsyncOpenAI(api_key=api_key_from_env)
        logger.info("OpenAI client initialized successfully")
        return client
    except OpenAIError as e:
        logger.critical("Failed to initialize OpenAI client: %s", str(e))
        logger.critical("Please check your OPENAI_API_KEY and network connectivity.")
        sys.exit(1)


def load_app_config() -> AppConfig:
    """
    Load application configuration from YAML file and environment variables.

    Environment variables take precedence over the YAML file for the catalog path,
    target languages, model, base system prompt and source language.

    Returns:
        AppConfig: The loaded application configuration.
    """
    project_root = _compute_project_root()

    _load_dotenv_files(project_root)

    config = _load_yaml_config(project_root)

    logger = _setup_logger_from_config(config)

    _log_dotenv_status(logger, project_root)

    target_languages = parse_target_languages(
        os.environ.get('TARGET_LANGUAGES', config.get('target_languages'))
    )
    if not target_languages:
        logger.critical("CRITICAL: No target languages specified.")
        logger.critical("Set 'target_languages' in your config file or the TARGET_LANGUAGES environment variable.")
        sys.exit(1)

    source_language = os.environ.get('SOURCE_LANGUAGE', config.get('source_language')) or None
    if source_language:
        source_language = source_language.strip() or None

    dry_run = config.get('dry_run', False)
    xcstrings_file_path = os.environ.get(
        'XCSTRINGS_FILE_PATH', config.get('xcstrings_file_path', 'Localizable.xcstrings')
    )
    model_name = os.environ.get('OPENAI_MODEL', config.get('model_name', 'gpt-4o-mini'))
    base_system_prompt = os.environ.get('BASE_SYSTEM_PROMPT', config.get('base_system_prompt', '')) or ''

    openai_client = _create_openai_client(dry_run, logger)

    return AppConfig(
        project_root=project_root,
        xcstrings_file_path=xcstrings_file_path,
        change_report_path=config.get('change_report_path', 'logs/translation_changes.md'),
        target_languages=target_languages,
        source_language=source_language,
        model_name=model_name,
        base_system_prompt=base_system_prompt,
        dry_run=dry_run,
        openai_client=openai_client
    )
