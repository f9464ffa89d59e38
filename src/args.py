"""Argument parsing functionality for gavfetch."""

import argparse


def build_parser():
    """Builds the command line parser."""
    parser = argparse.ArgumentParser(
        prog="gavfetch",
        description=(
            "gavfetch - Resolve Maven-style artifact coordinates through local, "
            "application and remote repositories"
        ),
        add_help=True,
    )

    parser.add_argument("COORDINATES",
                        help="Coordinates as [@repo:]group:artifact:version[:classifier]",
                        nargs="+",
                        metavar="COORDINATE",
                        type=str)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to repository configuration file (YAML)",
                        action="store",
                        type=str)
    parser.add_argument("-o", "--output",
                        dest="OUTPUT",
                        help="Directory to copy resolved artifacts into",
                        action="store",
                        type=str)
    parser.add_argument("--repository",
                        dest="REPOSITORY",
                        help="Resolve every coordinate from this repository id only",
                        action="store",
                        type=str)
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str.upper,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)
    parser.add_argument("-q", "--quiet",
                        dest="QUIET",
                        help="Do not report progress to the console.",
                        action="store_true")
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
