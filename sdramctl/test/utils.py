import unittest
import warnings
from collections import namedtuple
from contextlib import contextmanager

from amaranth import *
from amaranth.sim import *

from sdramctl.common import *
from sdramctl.core.controller import ControllerSettings, SDRAMController


__all__ = ["FHDLTestCase", "runSimulation", "make_settings", "make_controller", "tick",
           "wait_until", "bus_request", "bus_write", "bus_read", "Sample", "CommandMonitor",
           "SDRAMModel"]

def runSimulation(module, process, vcd_filename=None, clock=1e-6, passive=()):
    sim = Simulator(module)
    sim.add_clock(clock)
    sim.add_sync_process(process)
    for p in passive:
        sim.add_sync_process(p)
    if vcd_filename is None:
        sim.run()
    else:
        with sim.write_vcd(vcd_filename):
            sim.run()

class FHDLTestCase(unittest.TestCase):
    @contextmanager
    def assertRaises(self, exception, msg=None):
        with super().assertRaises(exception) as cm:
            yield
        if msg is not None:
            # unittest.assertRaises has no way to match the whole message.
            self.assertEqual(str(cm.exception), msg)

    @contextmanager
    def assertRaisesRegex(self, exception, regex=None):
        with super().assertRaises(exception) as cm:
            yield
        if regex is not None:
            self.assertRegex(str(cm.exception), regex)

    @contextmanager
    def assertWarns(self, category, msg=None):
        with warnings.catch_warnings(record=True) as warns:
            warnings.simplefilter("always")
            yield
        self.assertEqual(len(warns), 1)
        self.assertEqual(warns[0].category, category)
        if msg is not None:
            self.assertEqual(str(warns[0].message), msg)

# Settings -----------------------------------------------------------------------------------------

def make_settings(databits=16, bankbits=2, rowbits=13, colbits=9, cl=3, with_refresh=True,
                  safe_refresh=False, address_width=None, **timings):
    t = dict(tRP=3, tRCD=3, tWR=3, tRFC=10, tRAS=5, tMRD=2, tREFI=782, tINIT=200)
    t.update(timings)
    settings = ControllerSettings(with_refresh=with_refresh, safe_refresh=safe_refresh,
                                  address_width=address_width)
    settings.phy = PhySettings(databits=databits, cl=cl)
    settings.geom = GeomSettings(bankbits=bankbits, rowbits=rowbits, colbits=colbits)
    settings.timing = TimingSettings(**t)
    return settings

def make_controller(**kwargs):
    s = make_settings(**kwargs)
    return SDRAMController(s.phy, s.geom, s.timing, s)

# Bus helpers --------------------------------------------------------------------------------------

def tick(n=1):
    for _ in range(n):
        yield
    yield Delay(1e-9)

def wait_until(signal, timeout=2000):
    cycles = 0
    while not (yield signal):
        yield from tick()
        cycles += 1
        if cycles >= timeout:
            raise RuntimeError("Timed out waiting for {}".format(signal.name))
    return cycles

def bus_request(bus, addr, we=0, data=0, sel=None, timeout=2000):
    yield bus.addr.eq(addr)
    yield bus.we.eq(we)
    yield bus.wdata.eq(data)
    if sel is not None:
        yield bus.sel.eq(sel)
    yield bus.valid.eq(1)
    yield Delay(1e-9)
    yield from wait_until(bus.ready, timeout)
    yield from tick()
    yield bus.valid.eq(0)
    yield bus.we.eq(0)
    yield bus.sel.eq(2**len(bus.sel) - 1)
    yield Delay(1e-9)

def bus_write(bus, addr, data, sel=None, timeout=2000):
    yield from bus_request(bus, addr, we=1, data=data, sel=sel, timeout=timeout)

def bus_read(bus, addr, timeout=2000):
    yield from bus_request(bus, addr, we=0, timeout=timeout)
    yield from wait_until(bus.rdata_valid, timeout)
    return (yield bus.rdata)

# Command bus monitor ------------------------------------------------------------------------------

Sample = namedtuple("Sample", "cycle cmd a ba dqm signals")

class CommandMonitor:
    """Samples the command bus in the middle of every clock cycle

    ``signals`` maps names to extra signals recorded with each sample. Cycle 0 is the first
    cycle after the first clock edge.
    """
    def __init__(self, bus, signals=None, clock=1e-6):
        self.bus = bus
        self.signals = dict(signals or {})
        self.clock = clock
        self.trace = []

    def sample(self, cycle):
        bus = self.bus
        cmd = decode_command(bus.commands,
                             (yield bus.cs_n), (yield bus.ras_n),
                             (yield bus.cas_n), (yield bus.we_n))
        signals = {}
        for name, signal in self.signals.items():
            signals[name] = (yield signal)
        sample = Sample(cycle, cmd, (yield bus.a), (yield bus.ba), (yield bus.dqm), signals)
        self.trace.append(sample)
        return sample

    def drive(self, cycle):
        yield from ()

    def step(self, sample):
        pass

    def process(self):
        yield Passive()
        cycle = 0
        while True:
            yield from self.drive(cycle)
            yield Delay(self.clock/2)
            sample = yield from self.sample(cycle)
            self.step(sample)
            cycle += 1
            yield

    def commands(self, *names):
        return [s for s in self.trace
                if s.cmd not in ("NOP", "DESELECT") and (not names or s.cmd in names)]

    def first(self, name, after=-1):
        for s in self.trace:
            if s.cycle > after and s.cmd == name:
                return s
        raise LookupError("No {} after cycle {}".format(name, after))

    def asserted(self, name):
        return [s.cycle for s in self.trace if s.signals.get(name)]

# SDRAM device model -------------------------------------------------------------------------------

class SDRAMModel(CommandMonitor):
    """Behavioral SDR SDRAM device on the controller pads

    Tracks the open row of every bank, stores written words (honouring dqm), puts read
    data on ``dq_i`` for the whole cycle ``cl`` cycles after each read command and checks
    minimum command spacings.
    Protocol and timing errors are collected in ``violations`` rather than raised, so a
    test can report all of them at once.
    """

    # (previous command, next command, minimum spacing)
    rules = [
        ("PRE", "ACT", "tRP"),
        ("PRE", "REF", "tRP"),
        ("PRE", "LMR", "tRP"),
        ("ACT", "RD",  "tRCD"),
        ("ACT", "WR",  "tRCD"),
        ("ACT", "PRE", "tRAS"),
        ("WR",  "PRE", "tWR"),
        ("REF", "ACT", "tRFC"),
        ("REF", "REF", "tRFC"),
        ("REF", "PRE", "tRFC"),
        ("LMR", "ACT", "tMRD"),
        ("LMR", "REF", "tMRD"),
    ]

    def __init__(self, pads, settings, signals=None, clock=1e-6):
        signals = dict(signals or {})
        signals.update(dq_o=pads.dq_o, dq_oe=pads.dq_oe)
        super().__init__(pads, signals, clock)

        self.settings = settings
        self.nbanks = 2**settings.geom.bankbits
        self.rowmask = 2**settings.geom.rowbits - 1
        self.colmask = 2**settings.geom.colbits - 1
        self.nbytes = settings.phy.databits//8

        self.open_rows = {}
        self.memory = {}
        self.mode = None
        self.violations = []
        self._last = {}
        self._reads = {}

    def violation(self, sample, message):
        self.violations.append("cycle {}: {} {}".format(sample.cycle, sample.cmd, message))

    def _banks(self, sample):
        if sample.cmd in ("REF", "LMR"):
            return list(range(self.nbanks))
        if sample.cmd == "PRE" and sample.a & 2**10:
            return list(range(self.nbanks))
        return [sample.ba]

    def _check_spacing(self, sample, banks):
        for prev, cmd, name in self.rules:
            if cmd != sample.cmd:
                continue
            delay = getattr(self.settings.timing, name)
            for bank in banks:
                last = self._last.get((prev, bank))
                if last is not None and sample.cycle - last < delay:
                    self.violation(sample, "{} cycles after {}, {} is {}".format(
                        sample.cycle - last, prev, name, delay))

    def execute(self, sample):
        if sample.cmd in ("NOP", "DESELECT"):
            return
        if sample.cmd is None:
            self.violation(sample, "is not a known command")
            return

        banks = self._banks(sample)
        self._check_spacing(sample, banks)
        for bank in banks:
            self._last[(sample.cmd, bank)] = sample.cycle

        if sample.cmd == "ACT":
            if sample.ba in self.open_rows:
                self.violation(sample, "to bank {} with a row open".format(sample.ba))
            self.open_rows[sample.ba] = sample.a & self.rowmask
        elif sample.cmd == "PRE":
            for bank in banks:
                self.open_rows.pop(bank, None)
        elif sample.cmd in ("REF", "LMR"):
            if self.open_rows:
                self.violation(sample, "with rows open in banks {}".format(sorted(self.open_rows)))
            if sample.cmd == "LMR":
                self.mode = sample.a
        elif sample.cmd in ("WR", "RD"):
            if sample.ba not in self.open_rows:
                self.violation(sample, "to closed bank {}".format(sample.ba))
                return
            key = (sample.ba, self.open_rows[sample.ba], sample.a & self.colmask)
            word = self.memory.get(key, 0)
            if sample.cmd == "WR":
                if not sample.signals["dq_oe"]:
                    self.violation(sample, "without data on the bus")
                for i in range(self.nbytes):
                    if not sample.dqm & (1 << i):
                        byte = 0xff << 8*i
                        word = (word & ~byte) | (sample.signals["dq_o"] & byte)
                self.memory[key] = word
            else:
                self._reads[sample.cycle + self.settings.phy.cl] = word

    def drive(self, cycle):
        yield self.bus.dq_i.eq(self._reads.pop(cycle, 0))

    def step(self, sample):
        self.execute(sample)
