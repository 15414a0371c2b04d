"""Parser contract and language-tag dispatch.

Each language has its own parser class that knows how to turn one file's
source into symbols and an unresolved graph fragment. The registry picks
the parser from the file record's language tag alone.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ...config import DEFAULT_MAX_FILE_SIZE
from ..models import FileRecord, ParseResult

logger = logging.getLogger(__name__)


class LanguageParser(ABC):
    """Base class for language-specific symbol and reference extraction."""

    language: str = ""

    @abstractmethod
    def parse(self, record: FileRecord, source: str) -> ParseResult:
        """Extract symbols and references from decoded source text.

        Args:
            record: File record of the file being parsed
            source: Decoded file contents

        Returns:
            Parse result for the file
        """


class ParserRegistry:
    """Maps language tags to parser instances."""

    def __init__(
        self,
        parsers: Optional[Dict[str, LanguageParser]] = None,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    ):
        """Initialize parser registry.

        Args:
            parsers: Language tag to parser mapping, defaults to the built-in set
            max_file_size: Content above this many bytes is not parsed
        """
        self._parsers: Dict[str, LanguageParser] = (
            dict(parsers) if parsers is not None else default_parsers()
        )
        self.max_file_size = max_file_size

    def get_parser(self, language: str) -> Optional[LanguageParser]:
        return self._parsers.get(language)

    def register_parser(self, language: str, parser: LanguageParser) -> None:
        self._parsers[language] = parser

    def get_supported_languages(self) -> List[str]:
        return sorted(self._parsers.keys())

    def supports(self, language: str) -> bool:
        return language in self._parsers

    def extract(self, record: FileRecord, content: bytes) -> ParseResult:
        """Run the parser registered for the record's language.

        Never raises: unknown languages and oversized content give an empty
        result, and parser exceptions are logged and turned into an empty
        result that carries the error message.

        Args:
            record: File record selecting the parser
            content: Raw file bytes

        Returns:
            Parse result for the file
        """
        parser = self._parsers.get(record.language)
        if parser is None:
            return ParseResult.empty()

        if len(content) > self.max_file_size:
            logger.debug(f"Skipping parse of oversized file {record.path}")
            return ParseResult.empty()

        try:
            source = content.decode("utf-8", errors="replace")
            return parser.parse(record, source)
        except Exception as e:
            logger.error(f"Error parsing {record.path} ({record.language}): {e}")
            return ParseResult.empty(error=f"{type(e).__name__}: {e}")


def default_parsers() -> Dict[str, LanguageParser]:
    """Build the built-in language tag to parser table."""
    from .csharp_parser import CSharpParser
    from .go_parser import GoParser
    from .java_parser import JavaParser
    from .javascript_parser import JavaScriptParser
    from .python_parser import PythonParser

    javascript = JavaScriptParser()
    return {
        "python": PythonParser(),
        "javascript": javascript,
        "typescript": javascript,
        "java": JavaParser(),
        "go": GoParser(),
        "c_sharp": CSharpParser(),
    }
