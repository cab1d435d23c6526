import sys
import signal
import sqlite3
import argparse
from typing import Optional, List, NoReturn

from .utils.config import Config
from .utils.colors import Colors
from .modules.filter_policy import FilterPolicy


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


class AppRunner:
    """Encapsulates argument parsing, configuration loading and execution of the mbox converter."""

    def __init__(self, args: Optional[List[str]] = None) -> None:
        """
        Initialize the runner with CLI arguments.

        Args:
            args: Command line arguments without the program name (defaults to sys.argv[1:])
        """
        self.args = self.build_parser().parse_args(args)

    @staticmethod
    def build_parser() -> argparse.ArgumentParser:
        """Build the command line parser."""
        parser = argparse.ArgumentParser(
            prog="mbox2db",
            description="Convert an mbox archive (e.g. a Gmail Takeout export) into an SQLite database.",
        )
        parser.add_argument("input", help="Path to the mbox file")
        parser.add_argument(
            "-o", "--output",
            help="Database path (default: YYYY-MM-DD-emails.db, numbered if it exists)",
        )
        parser.add_argument(
            "-d", "--destructive", action="store_true",
            help="Write to emails.db, replacing any existing database",
        )
        parser.add_argument("--include-spam", action="store_true", help="Keep messages labelled Spam")
        parser.add_argument("--include-trash", action="store_true", help="Keep messages labelled Trash")
        parser.add_argument(
            "--include-spam-and-trash", action="store_true",
            help="Keep messages labelled Spam or Trash",
        )
        parser.add_argument("--env-file", default=".env", help="Environment file to load (default: .env)")
        parser.add_argument(
            "--workers", type=int,
            help="Number of decoding processes (overrides PARSE_WORKERS)",
        )
        return parser

    def run(self) -> int:
        """
        Execute the main application flow.

        Returns:
            Process exit status
        """
        self.setup_signal_handlers()
        self.print_banner()

        try:
            config = self.load_config()
            summary = self.start_pipeline(config)
        except KeyboardInterrupt:
            print(Colors.warning("\nConversion interrupted; nothing was committed."))
            return EXIT_INTERRUPTED
        except (OSError, sqlite3.Error, ValueError) as e:
            print(Colors.error(f"Error: {e}"))
            return EXIT_FAILURE

        self.print_summary(summary)
        return EXIT_OK

    def setup_signal_handlers(self) -> None:
        """Register handlers for graceful shutdown."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    @staticmethod
    def _signal_handler(signum, frame) -> NoReturn:
        """Handle shutdown signals."""
        print("\nReceived shutdown signal, stopping gracefully...")
        raise KeyboardInterrupt

    def print_banner(self) -> None:
        """Print the application startup banner."""
        print(Colors.colorize("=" * 80, Colors.CYAN))
        print(Colors.colorize("mbox2db", Colors.BOLD + Colors.CYAN))
        print(Colors.colorize("Mailbox archive to SQLite converter", Colors.GREY))
        print(Colors.colorize("=" * 80, Colors.CYAN))
        print()

    def load_config(self) -> Config:
        """Load the environment file and apply command line overrides."""
        config = Config(self.args.env_file)

        filters = config.filters
        filters.include_spam = filters.include_spam or self.args.include_spam
        filters.include_trash = filters.include_trash or self.args.include_trash
        filters.include_spam_and_trash = filters.include_spam_and_trash or self.args.include_spam_and_trash

        if self.args.workers is not None:
            config.parser.workers = self.args.workers

        config.validate()
        return config

    def start_pipeline(self, config: Config):
        """Instantiate and run the conversion pipeline."""
        from .main import MboxConversionPipeline
        print(f"{Colors.GREEN}Converting {self.args.input}...{Colors.RESET}")
        pipeline = MboxConversionPipeline(config)
        return pipeline.run(
            self.args.input,
            output_path=self.args.output,
            destructive=self.args.destructive,
            policy=FilterPolicy.from_config(config.filters),
        )

    @staticmethod
    def print_summary(summary) -> None:
        """Print the end-of-run report."""
        print()
        print(Colors.success(f"✔ Successfully converted {summary.converted} emails to database"))
        if summary.skip_hint:
            print(f"    {summary.skip_hint}")
        if summary.unparsed_dates:
            print(Colors.warning(f"    {summary.unparsed_dates} emails have no parseable date (date_parsed is NULL)"))
        print(f"Database written to: {summary.output_path}")


def main(argv: Optional[List[str]] = None) -> NoReturn:
    """Console script entry point."""
    sys.exit(AppRunner(argv).run())


if __name__ == "__main__":
    main()
