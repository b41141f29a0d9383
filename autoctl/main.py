import sys
from typing import List, Optional

import autoctl.local.console as console
from autoctl.local.config import effective_settings as config
from autoctl.log.setup import setup_logging, verbosity_to_level


def main(argv: Optional[List[str]] = None) -> int:
    """The main entry point for the pg_autoctl command line."""
    args = console.parse_command_line(argv)
    if not args.command:
        console.build_parser().print_help(sys.stderr)
        return config.EXIT_CODE_BAD_ARGS

    setup_logging(verbosity_to_level(args.verbose, args.quiet), service=args.command)
    return console.execute_command(args.command, args)


if __name__ == "__main__":
    sys.exit(main())
