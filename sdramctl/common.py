# This file is Copyright (c) 2016-2019 Florent Kermarrec <florent@enjoy-digital.fr>
# This file is Copyright (c) 2020 LambdaConcept <contact@lambdaconcept.com>
# License: BSD

import logging

from amaranth import *

__ALL__ = ["sdram_commands", "decode_command", "mode_register", "exact_log2",
           "PhySettings", "GeomSettings", "TimingSettings", "check_settings",
           "get_address_width", "CommandBus", "Pads", "tXXDController"]

logger = logging.getLogger(__name__)

# Commands -----------------------------------------------------------------------------------------

sdram_commands = {
    # Name: cs_n, ras_n, cas_n, we_n
    "NOP":      "0111", # No operation
    "DESELECT": "1111", # Device deselect
    "ACT":      "0011", # Bank activate
    "RD":       "0101", # Read
    "WR":       "0100", # Write
    "PRE":      "0010", # Precharge (all banks when A10 is set)
    "REF":      "0001", # Auto refresh
    "LMR":      "0000", # Load mode register
    "BST":      "0110", # Burst terminate
}

# Commands the engine issues; an override table must encode all of them.
_required_commands = ("NOP", "ACT", "RD", "WR", "PRE", "REF", "LMR")


def decode_command(commands, cs_n, ras_n, cas_n, we_n):
    """Name of the command currently on the bus, or ``None`` for an unknown pattern"""
    if cs_n:
        return "DESELECT"
    pattern = "{:d}{:d}{:d}{:d}".format(cs_n, ras_n, cas_n, we_n)
    for name, encoding in commands.items():
        if name != "DESELECT" and encoding == pattern:
            return name
    return None

# Helpers ------------------------------------------------------------------------------------------


def exact_log2(n):
    if not isinstance(n, int) or n <= 0 or n & (n - 1):
        raise ValueError("{!r} is not a power of 2".format(n))
    return n.bit_length() - 1


def mode_register(cl, burst_type=0, write_burst_single=False):
    """SDR mode register word

    Burst length is always 1: the controller moves one beat per request.
    """
    return (int(write_burst_single) << 9) | (cl << 4) | (burst_type << 3)

# Settings -----------------------------------------------------------------------------------------


class Settings:
    def set_attributes(self, attributes):
        for k, v in attributes.items():
            if k != "self":
                setattr(self, k, v)


class PhySettings(Settings):
    def __init__(self, databits, cl, memtype="SDR", burst_type=0,
                 write_burst_single=False, commands=None):
        self.set_attributes(locals())
        if commands is None:
            self.commands = dict(sdram_commands)


class GeomSettings(Settings):
    def __init__(self, bankbits, rowbits, colbits):
        self.set_attributes(locals())
        self.addressbits = max(rowbits, colbits)


class TimingSettings(Settings):
    def __init__(self, tRP, tRCD, tWR, tRFC, tRAS, tMRD, tREFI, tINIT):
        self.set_attributes(locals())


def get_address_width(settings):
    """Request address width: explicit, or just wide enough for every field"""
    if getattr(settings, "address_width", None) is not None:
        return settings.address_width
    geom = settings.geom
    return (exact_log2(settings.phy.databits//8) +
            geom.colbits + geom.rowbits + geom.bankbits)


def check_settings(settings):
    """Reject inconsistent controller settings before anything gets elaborated"""
    phy, geom, timing = settings.phy, settings.geom, settings.timing

    if phy.memtype != "SDR":
        raise ValueError("memtype must be SDR, not {!r}".format(phy.memtype))
    if not isinstance(phy.databits, int) or phy.databits < 8 or phy.databits % 8:
        raise ValueError("databits must be a multiple of 8, not {!r}".format(phy.databits))
    try:
        exact_log2(phy.databits//8)
    except ValueError:
        raise ValueError("databits must be a power of 2 bytes wide, not {!r}"
                         .format(phy.databits)) from None
    if phy.cl not in (1, 2, 3):
        raise ValueError("CAS latency must be 1, 2 or 3, not {!r}".format(phy.cl))
    if phy.burst_type not in (0, 1):
        raise ValueError("burst_type must be 0 or 1, not {!r}".format(phy.burst_type))

    missing = [name for name in _required_commands if name not in phy.commands]
    if missing:
        raise ValueError("Command table has no encoding for {}".format(", ".join(missing)))
    for name, encoding in phy.commands.items():
        if (not isinstance(encoding, str) or len(encoding) != 4 or
                any(bit not in "01" for bit in encoding)):
            raise ValueError("Command {} must be encoded as 4 bits, not {!r}"
                             .format(name, encoding))

    for name in ("bankbits", "rowbits", "colbits"):
        value = getattr(geom, name)
        if not isinstance(value, int) or value < 1:
            raise ValueError("{} must be a positive integer, not {!r}".format(name, value))
    if geom.colbits > 10:
        raise ValueError("colbits must leave A10 free for the precharge flag, not {!r}"
                         .format(geom.colbits))
    # Column addresses stop below A10, so only the row drives the bus up to A10
    if geom.rowbits < 11:
        raise ValueError("rowbits must be at least 11 to carry the A10 precharge flag, not {!r}"
                         .format(geom.rowbits))

    for name in ("tRP", "tRCD", "tWR", "tRFC", "tRAS", "tMRD", "tINIT"):
        value = getattr(timing, name)
        if not isinstance(value, int) or value < 0:
            raise ValueError("{} must be a non-negative integer, not {!r}".format(name, value))
    if not isinstance(timing.tREFI, int) or timing.tREFI < 1:
        raise ValueError("tREFI must be a positive integer, not {!r}".format(timing.tREFI))

    needed = (exact_log2(phy.databits//8) + geom.colbits + geom.rowbits + geom.bankbits)
    address_width = get_address_width(settings)
    if not isinstance(address_width, int) or address_width < needed:
        raise ValueError("address_width must be at least {} bits, not {!r}"
                         .format(needed, address_width))

    logger.debug("settings: %d banks, %d rows, %d columns, %d bit data, CL%d",
                 2**geom.bankbits, 2**geom.rowbits, 2**geom.colbits, phy.databits, phy.cl)

# Buses --------------------------------------------------------------------------------------------


class CommandBus:
    """SDRAM command bus

    Strobes are active low and rest on the NOP encoding whenever nothing else drives them.
    """

    def __init__(self, addressbits, bankbits, databits, commands=None, name=None):
        self.commands = sdram_commands if commands is None else commands
        prefix = "" if name is None else name + "_"
        cs_n, ras_n, cas_n, we_n = (int(bit) for bit in self.commands["NOP"])

        self.cs_n  = Signal(reset=cs_n, name=prefix + "cs_n")
        self.ras_n = Signal(reset=ras_n, name=prefix + "ras_n")
        self.cas_n = Signal(reset=cas_n, name=prefix + "cas_n")
        self.we_n  = Signal(reset=we_n, name=prefix + "we_n")
        self.a     = Signal(addressbits, name=prefix + "a")
        self.ba    = Signal(bankbits, name=prefix + "ba")
        self.dqm   = Signal(databits//8, name=prefix + "dqm")

    def command_fields(self):
        return [self.cs_n, self.ras_n, self.cas_n, self.we_n, self.a, self.ba, self.dqm]

    def issue(self, command, a=None, ba=None):
        cs_n, ras_n, cas_n, we_n = (int(bit) for bit in self.commands[command])
        stmts = [
            self.cs_n.eq(cs_n),
            self.ras_n.eq(ras_n),
            self.cas_n.eq(cas_n),
            self.we_n.eq(we_n),
        ]
        if a is not None:
            stmts.append(self.a.eq(a))
        if ba is not None:
            stmts.append(self.ba.eq(ba))
        return stmts

    def connect(self, target):
        return [t.eq(s) for s, t in zip(self.command_fields(), target.command_fields())]


class Pads(CommandBus):
    """Device side of the controller: command bus plus a split tristate data bus"""

    def __init__(self, addressbits, bankbits, databits, commands=None, name=None):
        super().__init__(addressbits, bankbits, databits, commands=commands, name=name)
        prefix = "" if name is None else name + "_"
        self.dq_o  = Signal(databits, name=prefix + "dq_o")
        self.dq_oe = Signal(name=prefix + "dq_oe")
        self.dq_i  = Signal(databits, name=prefix + "dq_i")

    def fields(self):
        return self.command_fields() + [self.dq_o, self.dq_oe, self.dq_i]

# Timing Controllers -------------------------------------------------------------------------------


class tXXDController(Elaboratable):
    """Minimum spacing after a command

    ``ready`` drops in the cycle after ``valid`` is strobed and rises again ``txxd`` cycles
    after the strobe. ``None`` or 0 never constrains anything.
    """

    def __init__(self, txxd):
        self.valid = Signal()
        self.ready = Signal(reset=1, attrs={"no_retiming": True})
        self._txxd = txxd

    def elaborate(self, platform):
        m = Module()

        if self._txxd:
            count = Signal(range(max(self._txxd, 2)))
            with m.If(self.valid):
                m.d.sync += [
                    count.eq(self._txxd - 1),
                    self.ready.eq(int(self._txxd == 1)),
                ]
            with m.Elif(~self.ready):
                m.d.sync += count.eq(count - 1)
                with m.If(count == 1):
                    m.d.sync += self.ready.eq(1)

        return m
