"""Language table and extension-based language detection."""

import json
import logging
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

UNKNOWN_LANGUAGE = "unknown"


class LanguageConfig:
    """Configuration for a single language tag."""

    def __init__(
        self,
        name: str,
        extensions: List[str],
        is_code: bool,
        display_name: str,
        filenames: Optional[List[str]] = None,
    ):
        """Initialize language configuration.

        Args:
            name: Language tag (python, c_sharp, etc.)
            extensions: File extensions including the leading dot
            is_code: Whether files count as source code in statistics
            display_name: Human readable name
            filenames: Exact file names that map to this language
        """
        self.name = name
        self.extensions = extensions
        self.is_code = is_code
        self.display_name = display_name
        self.filenames = filenames or []


class LanguageRegistry:
    """Registry of language configurations loaded from languages.json."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize language registry.

        Args:
            config_path: Path to a languages.json file, defaults to the bundled table
        """
        if config_path is None:
            config_path = str(Path(__file__).parent / "languages.json")

        self.config_path = config_path
        self.languages: Dict[str, LanguageConfig] = {}
        self.extension_map: Dict[str, str] = {}
        self.filename_map: Dict[str, str] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load language configurations from JSON file."""
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                config_data = json.load(f)
        except Exception as e:
            logger.error(f"Error loading language config from {self.config_path}: {e}")
            raise

        for lang_name, lang_config in config_data.items():
            language = LanguageConfig(
                name=lang_name,
                extensions=lang_config["extensions"],
                is_code=lang_config.get("is_code", True),
                display_name=lang_config.get("display_name", lang_name),
                filenames=lang_config.get("filenames"),
            )
            self.languages[lang_name] = language

            for ext in language.extensions:
                self.extension_map[ext.lower()] = lang_name
            for filename in language.filenames:
                self.filename_map[filename] = lang_name

        logger.debug(f"Loaded {len(self.languages)} language configurations")

    def detect_language(self, file_path: str) -> str:
        """Detect language from a file's name or extension.

        Args:
            file_path: Path to the file

        Returns:
            Language tag, or "unknown" when not recognised
        """
        path = PurePosixPath(file_path.replace("\\", "/"))
        if path.name in self.filename_map:
            return self.filename_map[path.name]

        extension = path.suffix.lower()
        if extension in self.extension_map:
            return self.extension_map[extension]

        return UNKNOWN_LANGUAGE

    def get_language_config(self, language: str) -> Optional[LanguageConfig]:
        return self.languages.get(language)

    def is_code_language(self, language: str) -> bool:
        config = self.languages.get(language)
        return bool(config and config.is_code)

    def display_name(self, language: str) -> str:
        config = self.languages.get(language)
        return config.display_name if config else language

    def get_supported_languages(self) -> List[str]:
        return list(self.languages.keys())

    def get_supported_extensions(self) -> List[str]:
        return list(self.extension_map.keys())

    def is_supported_file(self, file_path: str) -> bool:
        """Check whether a file maps to a known language.

        Args:
            file_path: Path to the file

        Returns:
            True if the language is recognised
        """
        return self.detect_language(file_path) != UNKNOWN_LANGUAGE


# Global registry instance
_registry: Optional[LanguageRegistry] = None


def get_language_registry() -> LanguageRegistry:
    """Get the shared, read-only language registry.

    Returns:
        Language registry instance
    """
    global _registry
    if _registry is None:
        _registry = LanguageRegistry()
    return _registry
