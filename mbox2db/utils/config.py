"""
Configuration Management Module
Handles loading and validation of environment variables and settings
"""

import os
from typing import List
from dataclasses import dataclass, field
from dotenv import load_dotenv

from ..modules.date_normalizer import DATE_FORMATS


DEFAULT_LABEL_HEADER = "X-Gmail-Labels"
LOG_FORMATS = ("text", "json")


@dataclass
class ScannerConfig:
    """Configuration for reading the mbox archive"""
    read_buffer_size: int = 1024 * 1024
    strict_from_lines: bool = False
    unescape_from_lines: bool = True


@dataclass
class ParserConfig:
    """Configuration for per-message decoding"""
    max_body_size: int = 0
    max_mime_depth: int = 20
    max_mime_parts: int = 100
    label_header: str = DEFAULT_LABEL_HEADER
    date_formats: List[str] = field(default_factory=list)
    envelope_date_fallback: bool = False
    workers: int = 1


@dataclass
class FilterConfig:
    """Which labelled messages are written to the database"""
    include_spam: bool = False
    include_trash: bool = False
    include_spam_and_trash: bool = False


@dataclass
class SystemConfig:
    """Configuration for system settings"""
    log_level: str = "INFO"
    log_file: str = ""
    log_format: str = "text"
    progress_interval: int = 100
    output_dir: str = "."


class Config:
    """Main configuration class"""

    def __init__(self, env_file: str = ".env"):
        """
        Initialize configuration from environment file

        Args:
            env_file: Path to environment file (default: .env). A missing
                file is not an error; the process environment is used as is.
        """
        load_dotenv(env_file)

        self.scanner = self._load_scanner_config()
        self.parser = self._load_parser_config()
        self.filters = self._load_filter_config()
        self.system = self._load_system_config()

    def _load_scanner_config(self) -> ScannerConfig:
        """Load mbox scanner configuration"""
        return ScannerConfig(
            read_buffer_size=int(os.getenv("READ_BUFFER_SIZE", str(1024 * 1024))),
            strict_from_lines=self._get_bool("MBOX_STRICT_FROM", False),
            unescape_from_lines=self._get_bool("MBOX_UNESCAPE_FROM", True),
        )

    def _load_parser_config(self) -> ParserConfig:
        """Load message decoding configuration"""
        return ParserConfig(
            max_body_size=int(os.getenv("MAX_BODY_SIZE", "0")),
            max_mime_depth=int(os.getenv("MAX_MIME_DEPTH", "20")),
            max_mime_parts=int(os.getenv("MAX_MIME_PARTS", "100")),
            label_header=os.getenv("LABEL_HEADER", DEFAULT_LABEL_HEADER) or DEFAULT_LABEL_HEADER,
            date_formats=self._parse_list(os.getenv("DATE_FORMATS", "")),
            envelope_date_fallback=self._get_bool("ENVELOPE_DATE_FALLBACK", False),
            workers=int(os.getenv("PARSE_WORKERS", "1")),
        )

    def _load_filter_config(self) -> FilterConfig:
        """Load Spam/Trash inclusion flags"""
        return FilterConfig(
            include_spam=self._get_bool("INCLUDE_SPAM", False),
            include_trash=self._get_bool("INCLUDE_TRASH", False),
            include_spam_and_trash=self._get_bool("INCLUDE_SPAM_AND_TRASH", False),
        )

    def _load_system_config(self) -> SystemConfig:
        """Load system configuration"""
        return SystemConfig(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE", ""),
            log_format=os.getenv("LOG_FORMAT", "text").strip().lower(),
            progress_interval=int(os.getenv("PROGRESS_INTERVAL", "100")),
            output_dir=os.getenv("OUTPUT_DIR", "."),
        )

    @staticmethod
    def _parse_list(value: str) -> List[str]:
        """Normalize a comma or newline separated string into a clean list."""
        if not value:
            return []

        return [
            item.strip()
            for item in value.replace("\n", ",").split(",")
            if item.strip()
        ]

    @staticmethod
    def _get_bool(key: str, default: bool = False) -> bool:
        """Convert environment variable to boolean"""
        value = os.getenv(key, str(default)).lower()
        return value in ('true', '1', 'yes', 'on')

    def validate(self) -> bool:
        """
        Validate configuration

        Returns:
            True if configuration is valid

        Raises:
            ValueError: If configuration is invalid
        """
        if self.scanner.read_buffer_size <= 0:
            raise ValueError("READ_BUFFER_SIZE must be positive")

        if self.parser.max_body_size < 0:
            raise ValueError("MAX_BODY_SIZE cannot be negative (use 0 for unlimited)")

        if self.parser.max_mime_depth <= 0:
            raise ValueError("MAX_MIME_DEPTH must be positive")

        if self.parser.max_mime_parts <= 0:
            raise ValueError("MAX_MIME_PARTS must be positive")

        if self.parser.workers <= 0:
            raise ValueError("PARSE_WORKERS must be at least 1")

        unknown = [name for name in self.parser.date_formats if name not in DATE_FORMATS]
        if unknown:
            raise ValueError(
                f"Unknown date format(s) in DATE_FORMATS: {', '.join(unknown)}. "
                f"Known formats: {', '.join(DATE_FORMATS)}"
            )

        if self.system.log_format not in LOG_FORMATS:
            raise ValueError(f"LOG_FORMAT must be one of: {', '.join(LOG_FORMATS)}")

        if self.system.progress_interval <= 0:
            raise ValueError("PROGRESS_INTERVAL must be positive")

        return True
