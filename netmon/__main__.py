#!/usr/bin/env python3

import sys
import argparse
import logging
import logging.handlers
import os

from netmon import monitor
from netmon import config


def setup_logging(args):
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        if isinstance(handler, logging.StreamHandler) and handler.stream in (sys.stdout, sys.stderr):
            if args.silent:
                root_logger.removeHandler(handler)
            elif args.quiet:
                handler.setLevel(logging.WARNING)
            elif args.verbose:
                root_logger.setLevel(logging.DEBUG)

    if args.log_file:
        log_dir = os.path.dirname(args.log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        # daily files, 60 days kept
        file_handler = logging.handlers.TimedRotatingFileHandler(
            args.log_file, when="midnight", backupCount=60
        )
        file_handler.setFormatter(
            logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        )
        root_logger.addHandler(file_handler)


def main():
    main_parser = argparse.ArgumentParser("netmon")
    main_parser.add_argument("--verbose", action="store_true")
    main_parser.add_argument("--silent", action="store_true")
    main_parser.add_argument("--quiet", action="store_true")
    main_parser.add_argument(
        "--log-file", default=config.LOG_FILE, help="also log to this file"
    )
    main_parser.set_defaults(func=lambda a: main_parser.print_help())
    subparsers = main_parser.add_subparsers()

    parser = subparsers.add_parser(
        "monitor", help="Ping every cluster node from an interface, forever"
    )
    monitor.setup_args(parser)
    parser.set_defaults(func=monitor.main)

    parser = subparsers.add_parser(
        "peers", help="Print the cluster nodes and this node's address"
    )
    monitor.setup_peers_args(parser)
    parser.set_defaults(func=monitor.main_peers)

    args = main_parser.parse_args()
    setup_logging(args)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
