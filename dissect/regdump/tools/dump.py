from __future__ import annotations

import argparse
import sys
from pathlib import Path

from dissect.regdump.exceptions import Error
from dissect.regdump.hive import RegistryHive
from dissect.regdump.walk import DumpOptions, dump


class ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def main(argv: list[str] | None = None) -> int:
    parser = ArgumentParser(
        prog="regdump",
        description="Dump a registry hive as text, one line per value.",
        add_help=False,
    )
    parser.add_argument("hives", metavar="HIVE", type=Path, nargs="+", help="registry hive file(s) to dump")
    parser.add_argument("-h", "--hex", action="store_true", help="use hexadecimal for type & size, placed before key")
    parser.add_argument("-k", "--keys", action="store_true", help="keys only (implies -t)")
    parser.add_argument("-s", "--string", action="store_true", help="include the entire string data")
    parser.add_argument("-t", "--time", action="store_true", help="include key timestamp (seconds)")
    parser.add_argument("-T", "--time-full", action="store_true", help="include key timestamp (full resolution)")
    parser.add_argument("-v", "--values", action="store_true", help="values only")
    parser.add_argument("-?", "--help", action="help", help="show this help message and exit")

    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        parser.print_help()
        return 0

    args = parser.parse_args(argv)

    options = DumpOptions(
        hex_type=args.hex,
        only_values=args.values,
        only_keys=args.keys,
        all_string=args.string,
        time_sec=args.time or args.keys,
        time_full=args.time_full,
    )

    show_hive = len(args.hives) > 1
    rc = 0

    for idx, path in enumerate(args.hives):
        try:
            with path.open("rb") as fh:
                hive = RegistryHive(fh)
        except OSError as e:
            print(f"{path}: {e.strerror}", file=sys.stderr)
            rc = 1
            continue
        except Error as e:
            print(f"{path}: {e}.", file=sys.stderr)
            rc = 1
            continue

        if show_hive:
            print(f"{path}\n")

        try:
            for line in dump(hive, options):
                print(line)
        except Error as e:
            sys.stdout.flush()
            print(f"{path}: {e}.", file=sys.stderr)
            rc = 1

        if show_hive and idx + 1 < len(args.hives):
            print()

    return rc


if __name__ == "__main__":
    sys.exit(main())
