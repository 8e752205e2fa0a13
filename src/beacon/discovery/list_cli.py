"""
Command line interface for listing the services announced on the local network.
"""
import argparse
import logging
import textwrap
import time
from typing import Set

from beacon.discovery.config import MULTICAST_GROUP, MULTICAST_PORT, DiscoveryConfig
from beacon.discovery.engine import ServiceDiscovery
from beacon.discovery.record import ServiceRecord


def handle_user_arguments(args=None) -> argparse.Namespace:
    """
    Parse the arguments from the command line.

    :return: The namespace of arguments read from the command line.
    """
    description = textwrap.dedent(
        """\
    List the services announced on the local network.
    """
    )
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument(
        "-t",
        "--search-time",
        type=float,
        default=10.0,
        metavar="SECONDS",
        help="Time to listen for, or 0 to listen until interrupted.",
    )
    parser.add_argument(
        "--discover",
        dest="discover_names",
        action="append",
        default=[],
        metavar="NAME",
        help="Also send discovery queries for a service with this name.",
    )
    parser.add_argument(
        "--tag",
        dest="tags",
        action="append",
        default=[],
        help="Tag to send with discovery queries, can be given several times.",
    )
    parser.add_argument("--group", default=MULTICAST_GROUP)
    parser.add_argument("-p", "--port", type=int, default=MULTICAST_PORT)
    parser.add_argument(
        "--interface",
        default=None,
        help="Address or host name of the local interface to join the group on.",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    arguments = parser.parse_args(args)
    return arguments


def list_services(arguments: argparse.Namespace) -> Set[ServiceRecord]:
    config = DiscoveryConfig(
        group=arguments.group,
        port=arguments.port,
        interface=arguments.interface,
    )
    services: Set[ServiceRecord] = set()

    def print_new_service(record: ServiceRecord):
        if record not in services:
            services.add(record)
            print(record)

    with ServiceDiscovery(config) as discovery:
        discovery.subscribe(print_new_service)
        for name in arguments.discover_names:
            discovery.start_continuous_discovery(name, arguments.tags)
        try:
            if arguments.search_time > 0:
                time.sleep(arguments.search_time)
            else:
                while True:
                    time.sleep(1)
        except KeyboardInterrupt:
            print("Closing due to keyboard interrupt.")
    return services


def main(args=None):
    """
    Entry point for the command line.
    """
    arguments = handle_user_arguments(args)
    level = logging.DEBUG if arguments.verbose else logging.WARNING
    # use the nice logger formatting if available
    try:
        from rich.logging import RichHandler

        logging.basicConfig(level=level, handlers=[RichHandler(rich_tracebacks=True)])
    except ImportError:
        logging.basicConfig(level=level)
    logging.captureWarnings(True)

    services = list_services(arguments)
    print(f"Found {len(services)} service(s).")


if __name__ == "__main__":
    main()
