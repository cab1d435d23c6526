#!/usr/bin/env python3
"""
Mbox to SQLite Converter
Main orchestrator that wires the scanner, assembler, filter and writer
"""

import sys
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .modules.filter_policy import FilterPolicy
from .modules.mbox_scanner import MboxScanner
from .modules.record_assembler import RecordAssembler
from .modules.sqlite_writer import SQLiteWriter
from .utils.colors import Colors
from .utils.config import Config
from .utils.logging_formatter import LogFormatter
from .utils.metrics import ParseMetrics
from .utils.output_paths import resolve_output_path
from .utils.structured_logging import JSONFormatter
from .utils.ui import Spinner


@dataclass
class ConversionSummary:
    """Outcome of one conversion run"""
    input_path: Path
    output_path: Path
    converted: int = 0
    skipped: int = 0
    unparsed_dates: int = 0
    skip_hint: Optional[str] = None
    metrics: Dict[str, Any] = field(default_factory=dict)


class MboxConversionPipeline:
    """Main pipeline orchestrator"""

    def __init__(self, config: Optional[Config] = None, config_file: str = ".env"):
        """
        Initialize pipeline

        Args:
            config: Loaded configuration (read from config_file when None)
            config_file: Path to environment file
        """
        self.config = config if config is not None else Config(config_file)

        self._setup_logging()

        self.logger = logging.getLogger("MboxConversionPipeline")
        self.metrics = ParseMetrics()

    def _setup_logging(self):
        """Setup logging configuration"""
        system = self.config.system

        # Resolve log level with safe fallback
        level_name = str(system.log_level).upper()
        level = logging.getLevelName(level_name)
        invalid_level = not isinstance(level, int)
        if invalid_level:
            level = logging.INFO

        console = logging.StreamHandler(sys.stderr)
        if system.log_format == "json":
            console.setFormatter(JSONFormatter())
        else:
            console.setFormatter(LogFormatter(use_color=Colors.enabled(sys.stderr)))
        handlers = [console]

        if system.log_file:
            # Create logs directory if needed
            log_path = Path(system.log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path)
            if system.log_format == "json":
                file_handler.setFormatter(JSONFormatter())
            else:
                file_handler.setFormatter(LogFormatter(use_color=False))
            handlers.append(file_handler)

        logging.basicConfig(level=level, handlers=handlers, force=True)

        if invalid_level:
            logging.getLogger("MboxConversionPipeline").warning(
                "Invalid log level '%s'; defaulting to INFO", system.log_level
            )

    def run(
        self,
        input_path: Union[str, Path],
        output_path: Optional[Union[str, Path]] = None,
        destructive: bool = False,
        policy: Optional[FilterPolicy] = None,
    ) -> ConversionSummary:
        """
        Convert one mbox archive into an SQLite database

        Args:
            input_path: The mbox file
            output_path: Database path (chosen by resolve_output_path when None)
            destructive: Write to emails.db, replacing an existing database
            policy: Spam/Trash filtering (from configuration when None)

        Returns:
            ConversionSummary for the run

        Raises:
            ValueError: If the configuration is invalid
            OSError: If the input cannot be read or the output cannot be created
            sqlite3.Error: If the database rejects the data
        """
        self.config.validate()

        input_path = Path(input_path)
        if not input_path.is_file():
            raise FileNotFoundError(f"Input file not found: {input_path}")

        output_path = resolve_output_path(output_path, destructive, self.config.system.output_dir)
        policy = policy or FilterPolicy.from_config(self.config.filters)
        self.metrics.reset()
        assembler = RecordAssembler.from_config(self.config.parser, self.metrics)
        interval = self.config.system.progress_interval

        self.logger.info("Converting %s into %s", input_path, output_path)

        summary = ConversionSummary(input_path=input_path, output_path=output_path)
        with MboxScanner.from_config(input_path, self.config.scanner) as scanner, \
                SQLiteWriter(output_path, replace=destructive) as writer:
            with Spinner("Starting conversion...") as spinner:
                for assembled in assembler.iter_records(scanner):
                    if assembled.failure:
                        spinner.println(
                            f"Warning: Failed to parse email {assembled.index + 1}: {assembled.failure}"
                        )

                    if policy.should_skip(assembled.verdict):
                        summary.skipped += 1
                        continue

                    writer.write(assembled.record)
                    summary.converted += 1
                    if summary.converted % interval == 0:
                        spinner.update(f"Processed {summary.converted} emails ({summary.skipped} skipped)")

                spinner.update(f"Processed {summary.converted} emails ({summary.skipped} skipped)")

        summary.unparsed_dates = self.metrics.unparsed_dates
        summary.skip_hint = policy.skip_hint(summary.skipped)
        summary.metrics = self.metrics.get_summary()

        self.logger.info(
            "Conversion complete: converted=%d skipped=%d unparsed_dates=%d",
            summary.converted, summary.skipped, summary.unparsed_dates
        )
        if summary.metrics["decode_defects"]:
            self.logger.info("Decode defects: %s", summary.metrics["decode_defects"])

        return summary
