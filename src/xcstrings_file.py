import json
import logging
import os
import tempfile
from typing import Any, Dict

import jsonschema

from src.logging_config import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

# Shape checked when a catalog is read. Only the members the analyzer and merger
# rely on are typed; everything else Xcode stores (variations, substitutions, ...)
# is accepted as-is and written back untouched.
XCSTRINGS_SCHEMA = {
    "type": "object",
    "properties": {
        "sourceLanguage": {"type": "string"},
        "version": {"type": "string"},
        "strings": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "properties": {
                    "comment": {"type": "string"},
                    "shouldTranslate": {"type": "boolean"},
                    "extractionState": {"type": "string"},
                    "localizations": {
                        "type": "object",
                        "additionalProperties": {
                            "type": "object",
                            "properties": {
                                "stringUnit": {
                                    "type": "object",
                                    "properties": {
                                        "state": {"type": "string"},
                                        "value": {"type": "string"}
                                    }
                                }
                            }
                        }
                    }
                }
            }
        }
    },
    "required": ["strings"]
}


class XCStringsFileError(Exception):
    """Raised when a string catalog cannot be read, validated or written."""


def load_xcstrings_file(file_path: str) -> Dict[str, Any]:
    """
    Read and validate an .xcstrings catalog.

    Args:
        file_path (str): Path to the catalog.

    Returns:
        Dict[str, Any]: The parsed catalog, keys in file order.

    Raises:
        XCStringsFileError: If the file is missing, unreadable, not JSON, or not a catalog.
    """
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            content = f.read()
    except (IOError, OSError, UnicodeDecodeError) as e:
        raise XCStringsFileError(f"Could not read {file_path}: {e}") from e

    try:
        xcstrings_data = json.loads(content)
    except json.JSONDecodeError as e:
        raise XCStringsFileError(f"Failed to parse {file_path}: {e}") from e

    try:
        jsonschema.validate(instance=xcstrings_data, schema=XCSTRINGS_SCHEMA)
    except jsonschema.ValidationError as e:
        location = "/".join(str(part) for part in e.absolute_path) or "<root>"
        raise XCStringsFileError(f"{file_path} is not a valid string catalog at '{location}': {e.message}") from e

    logger.debug(f"Loaded {len(xcstrings_data['strings'])} string keys from '{file_path}'.")
    return xcstrings_data


def format_xcstrings_json(xcstrings_data: Dict[str, Any]) -> str:
    """
    Serialize a catalog the way Xcode writes it: two-space indentation,
    literal non-ASCII characters, and a space before every key colon.
    """
    return json.dumps(xcstrings_data, ensure_ascii=False, indent=2, separators=(',', ' : '))


def write_xcstrings_file(file_path: str, xcstrings_data: Dict[str, Any]) -> None:
    """
    Write a catalog to disk atomically.

    The content goes to a temporary file in the destination directory which then
    replaces the target, so readers never observe a partially written catalog.

    Args:
        file_path (str): Destination path.
        xcstrings_data (Dict[str, Any]): The catalog to write.

    Raises:
        XCStringsFileError: If the catalog could not be written.
    """
    content = format_xcstrings_json(xcstrings_data)
    target_dir = os.path.dirname(os.path.abspath(file_path))

    temp_file_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode='w', delete=False, dir=target_dir, suffix='.xcstrings.tmp', encoding='utf-8'
        ) as temp_f:
            temp_file_path = temp_f.name
            temp_f.write(content)
            temp_f.flush()
            os.fsync(temp_f.fileno())
        os.replace(temp_file_path, file_path)
        temp_file_path = None
    except (IOError, OSError) as e:
        raise XCStringsFileError(f"Error writing updated {file_path}: {e}") from e
    finally:
        if temp_file_path and os.path.exists(temp_file_path):
            try:
                os.remove(temp_file_path)
            except OSError as _e:
                logger.warning("Could not delete temporary catalog file '%s': %s", temp_file_path, _e)
