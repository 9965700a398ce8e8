# This file is Copyright (c) 2020 LambdaConcept <contact@lambdaconcept.com>
# License: BSD

import argparse
import logging
import os

from amaranth.cli import main_parser, main_runner

from sdramctl.common import PhySettings, GeomSettings, TimingSettings
from sdramctl.core.controller import ControllerSettings, SDRAMController

__ALL__ = ["main"]

logger = logging.getLogger(__name__)

# Logging ------------------------------------------------------------------------------------------


class ColorFormatter(logging.Formatter):
    """Colors records by level"""

    magenta = "\x1b[35m"
    blue = "\x1b[34m"
    yellow = "\x1b[33;21m"
    red = "\x1b[31;21m"
    bold_red = "\x1b[31;1m"
    reset = "\x1b[0m"
    fmt = "%(levelname)s: %(message)s (%(name)s)"

    COLORS = {
        logging.DEBUG: magenta,
        logging.INFO: blue,
        logging.WARNING: yellow,
        logging.ERROR: red,
        logging.CRITICAL: bold_red,
    }

    def format(self, record):
        color = self.COLORS.get(record.levelno, "")
        return logging.Formatter(color + self.fmt + self.reset).format(record)


def setup_logging(verbose=False):
    root = logging.getLogger("sdramctl")
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(ColorFormatter())
        root.addHandler(handler)
    if verbose or os.getenv("DEBUG"):
        root.setLevel(logging.DEBUG)
    else:
        root.setLevel(logging.INFO)

# Command line -------------------------------------------------------------------------------------


def build_parser():
    parser = argparse.ArgumentParser(
        prog="sdramctl", description="SDR SDRAM controller core generator")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="log elaboration details")

    geom = parser.add_argument_group("geometry")
    geom.add_argument("--databits", type=int, default=16, help="data bus width")
    geom.add_argument("--bankbits", type=int, default=2, help="bank address bits")
    geom.add_argument("--rowbits", type=int, default=13, help="row address bits")
    geom.add_argument("--colbits", type=int, default=9, help="column address bits")
    geom.add_argument("--address-width", type=int, default=None,
                      help="request address width (default: just wide enough)")

    timing = parser.add_argument_group("timings, in clock cycles")
    timing.add_argument("--cl", type=int, default=3, help="CAS latency")
    timing.add_argument("--trp", type=int, default=3, help="precharge period")
    timing.add_argument("--trcd", type=int, default=3, help="activate to read/write delay")
    timing.add_argument("--twr", type=int, default=3, help="write recovery time")
    timing.add_argument("--trfc", type=int, default=10, help="refresh cycle time")
    timing.add_argument("--tras", type=int, default=6, help="activate to precharge delay")
    timing.add_argument("--tmrd", type=int, default=2, help="load mode to command delay")
    timing.add_argument("--trefi", type=int, default=782, help="refresh interval")
    timing.add_argument("--tinit", type=int, default=200, help="power-up delay")

    parser.add_argument("--no-refresh", action="store_true",
                        help="do not generate the refresh timer")
    parser.add_argument("--safe-refresh", action="store_true",
                        help="precharge open rows before refresh, issue AUTO REFRESH once")

    return main_parser(parser)


def controller_from_args(args):
    phy = PhySettings(databits=args.databits, cl=args.cl)
    geom = GeomSettings(bankbits=args.bankbits, rowbits=args.rowbits, colbits=args.colbits)
    timing = TimingSettings(tRP=args.trp, tRCD=args.trcd, tWR=args.twr, tRFC=args.trfc,
                            tRAS=args.tras, tMRD=args.tmrd, tREFI=args.trefi,
                            tINIT=args.tinit)
    settings = ControllerSettings(with_refresh=not args.no_refresh,
                                  safe_refresh=args.safe_refresh,
                                  address_width=args.address_width)
    return SDRAMController(phy, geom, timing, settings)


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if args.action is None:
        parser.print_help()
        return

    try:
        design = controller_from_args(args)
    except ValueError as e:
        parser.error(str(e))

    logger.info("%s: %d bit requests, %d bit data", args.action,
                design.interface.address_width, design.interface.data_width)
    try:
        main_runner(parser, args, design, name="sdramctl", ports=design.ports())
    finally:
        output = getattr(args, "generate_file", None)
        if output is not None:
            output.close()
