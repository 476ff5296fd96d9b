"""Command line interface for recordsheet with subcommands."""

import argparse
import importlib
import logging
import sys
import textwrap
from pathlib import Path

from pydantic import BaseModel, TypeAdapter, ValidationError

from recordsheet import __version__, config, setup_logging
from recordsheet.exceptions import RecordSheetError
from recordsheet.xlsx_api import export_to_xlsx, import_from_xlsx
from recordsheet.xlsx_common import XLSXDeserializationError, XLSXSerializationError

logger = logging.getLogger(__name__)


def process_common_options(args, raw_args):
    # set up logging
    loglevel = logging.INFO + (args.quieter - args.verboser) * 10
    logfile = args.logfile
    if logfile is None:
        setup_logging(loglevel)
    else:
        logfile.parents[0].mkdir(exist_ok=True, parents=True)
        setup_logging(loglevel, logfile)

    logger.info("Executing cmd: recordsheet %s", " ".join(raw_args))
    logger.debug("Processing common options.")

    # load config
    if args.config is not None:
        if args.config.exists():
            config.load_config(config_file=Path(args.config))
        else:
            msg = "Config file not found at: %s"
            logger.error(msg, args.config)
            raise RecordSheetError(msg % args.config)

    if not args.FILE.exists():
        msg = "File not found: %s"
        logger.error(msg, args.FILE)
        raise RecordSheetError(msg % args.FILE)


def load_model_class(model_path: str) -> type[BaseModel]:
    """Import a pydantic model given as "package.module:ClassName"."""
    module_name, _, class_name = model_path.partition(":")
    if not module_name or not class_name:
        msg = f'Model must be given as "module:ClassName", got "{model_path}".'
        raise RecordSheetError(msg)
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        msg = f'Cannot import module "{module_name}": {exc}'
        raise RecordSheetError(msg) from exc

    model_class = getattr(module, class_name, None)
    if not (isinstance(model_class, type) and issubclass(model_class, BaseModel)):
        msg = f'"{model_path}" is not a pydantic model.'
        raise RecordSheetError(msg)
    return model_class


def read_cmd(args):
    model_class = load_model_class(args.model)
    records = import_from_xlsx(args.FILE, model_class)
    logger.info("Read %i records from %s.", len(records), args.FILE)
    content = TypeAdapter(list[model_class]).dump_json(records, indent=2)
    if args.output is None:
        sys.stdout.write(content.decode("utf-8") + "\n")
    else:
        args.output.write_bytes(content)
        logger.info("Saved records to %s", args.output)


def write_cmd(args):
    model_class = load_model_class(args.model)
    records = TypeAdapter(list[model_class]).validate_json(args.FILE.read_bytes())
    export_to_xlsx(records, args.output, model_class=model_class)
    logger.info("Wrote %i records to %s", len(records), args.output)


class DecentFormatter(argparse.HelpFormatter):
    """
    An argparse formatter that preserves newlines & keeps indentation.
    """

    def _fill_text(self, text, width, indent):
        """
        Reformat text while keeping newlines for lines shorter than width.
        """
        lines = []
        for line in textwrap.indent(textwrap.dedent(text), indent).splitlines():
            lines.append(textwrap.fill(line, width, subsequent_indent=indent))
        return "\n".join(lines)


def root_cmd(args):
    if args.version:  # pragma: no cover
        print(f"recordsheet {__version__}")


def create_root_parser():
    parser = argparse.ArgumentParser(
        prog="recordsheet",
        description=(
            "Read spreadsheet rows into pydantic records and write records "
            "to styled xlsx files."
        ),
        allow_abbrev=False,
        formatter_class=DecentFormatter,
    )
    parser.add_argument(
        "-V",
        "--version",
        help="The version of recordsheet command line interface.",
        action="store_true",
    )
    parser.set_defaults(func=root_cmd)
    return parser


def create_common_options_parser():
    parser = argparse.ArgumentParser(
        prog="recordsheet",
        allow_abbrev=False,
        add_help=False,
        formatter_class=DecentFormatter,
    )
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "-v",
        "--verbose",
        action="count",
        dest="verboser",
        default=0,
        help="More verbose output. Repeat to increase verbosity (-vv or -vvv).",
    )
    group.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        dest="quieter",
        help="Less verbose output. Repeat to reduce verbosity (-qq or -qqq).",
    )
    parser.add_argument(
        "--config",
        help="Path to a toml config file with an [xlsx] section.",
        type=Path,
        required=False,
    )
    parser.add_argument(
        "-l",
        "--logfile",
        help=(
            "Activate logging to a file at given path. "
            "The path will be created if it is not existing."
        ),
        type=Path,
    )
    parser.add_argument(
        "-m",
        "--model",
        help='The record type as "package.module:ClassName".',
        required=True,
    )
    return parser


def add_read_subparser(subparsers, options):
    parser = subparsers.add_parser(
        "read",
        description=(
            "Read all sheets of an xlsx or xls file into records of the given "
            "model and print them as JSON."
        ),
        help="Read a spreadsheet into JSON records.",
        **options,
    )
    parser.add_argument(
        "-o",
        "--output",
        help="Write the JSON array to this file instead of stdout.",
        type=Path,
    )
    parser.add_argument(
        "FILE",
        type=Path,
        help="The spreadsheet (xlsx or xls) to read.",
    )
    parser.set_defaults(func=read_cmd)


def add_write_subparser(subparsers, options):
    parser = subparsers.add_parser(
        "write",
        description="Render a JSON array of records as an xlsx file.",
        help="Write JSON records to a spreadsheet.",
        **options,
    )
    parser.add_argument(
        "-o",
        "--output",
        help="The xlsx file to write.",
        type=Path,
        required=True,
    )
    parser.add_argument(
        "FILE",
        type=Path,
        help="A JSON file with an array of records.",
    )
    parser.set_defaults(func=write_cmd)


def main_cli(raw_args=None):
    """Setup CLI app and run commands based on args."""
    parser = create_root_parser()

    subparsers = parser.add_subparsers(
        title="Subcommands",
        dest="subcommand",
        description="Get help for commands with recordsheet COMMAND --help",
    )
    # Options shared by all subcommands. The root parser cannot be used for
    # this because it includes the sub-commands and their help.
    common_options_parser = create_common_options_parser()
    common_options = {
        "parents": [common_options_parser],
        "formatter_class": DecentFormatter,
    }
    add_read_subparser(subparsers, common_options)
    add_write_subparser(subparsers, common_options)

    if not raw_args:
        parser.print_help()
        return

    # parse_args calls sys.exit(2) if invalid commands are given.
    args = parser.parse_args(raw_args)
    if hasattr(args, "config"):
        process_common_options(args, raw_args)
    args.func(args)


def run_cli_app(raw_args=None):
    """Entry point for running the cli app."""
    if raw_args is None:
        raw_args = sys.argv[1:]
    try:
        main_cli(raw_args)
    except (
        RecordSheetError,
        XLSXDeserializationError,
        XLSXSerializationError,
        ValidationError,
    ) as e:
        logger.error("Terminating with error: %s", e)  # noqa: TRY400
        sys.exit(1)
    except Exception:  # pragma: no cover
        logger.exception("Unexpected error.")
        sys.exit(3)  # value 2 is used by argparse for invalid args.


if __name__ == "__main__":
    run_cli_app(sys.argv[1:])
