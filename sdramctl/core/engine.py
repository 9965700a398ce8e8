# This file is Copyright (c) 2015 Sebastien Bourdeauducq <sb@m-labs.hk>
# This file is Copyright (c) 2016-2019 Florent Kermarrec <florent@enjoy-digital.fr>
# This file is Copyright (c) 2020 LambdaConcept <contact@lambdaconcept.com>
# License: BSD

"""SDRAM command engine (initialization, refresh, rows and columns)."""

import logging
from contextlib import contextmanager
from enum import IntEnum

from amaranth import *

from sdramctl.common import *
from sdramctl.core.address import AddressMapper

__ALL__ = ["EngineState", "CommandEngine"]

logger = logging.getLogger(__name__)


class EngineState(IntEnum):
    Idle                = 0
    InitPrechargeAll    = 1
    InitLoadMode        = 2
    InitRefresh1        = 3
    InitRefresh2        = 4
    RefreshPrechargeAll = 5
    AutoRefresh         = 6
    PrechargeBank       = 7
    Active              = 8
    Write               = 9
    WriteRecovery       = 10
    Read                = 11


@contextmanager
def expired(m, timer):
    """Body runs in the cycle ``timer`` reads 0; every other cycle counts it down"""
    with m.If(timer == 0):
        yield
    with m.Else():
        m.d.sync += timer.eq(timer - 1)


class CommandEngine(Elaboratable):
    """Converts requests into SDRAM commands

    The engine owns the command bus and the per-bank row state. From ``Idle`` it serves,
    in this order, the initialization request, a refresh request (the pulse, or one that
    arrived while the engine was busy) and the bus request. Bus requests open the target
    row when needed, precharging the bank first if it holds another row.

    Timed states issue their command in their first cycle, when the shared timer still
    holds the value it was loaded with, then wait for the timer to run out. A state
    loaded with N therefore lasts N+1 cycles. ``AutoRefresh`` is the exception: it holds
    AUTO REFRESH on the bus for all of its cycles, and refresh leaves the rows open. With
    ``settings.safe_refresh`` open rows are precharged first (``RefreshPrechargeAll``)
    and AUTO REFRESH goes out once, which is what a real device needs.

    Parameters
    ----------
    settings : ControllerSettings
        Controller settings with ``phy``, ``geom`` and ``timing`` attached; ``safe_refresh``
        selects the refresh sequence

    Attributes
    ----------
    init_req : Signal(), in
        Run the initialization sequence, from the InitSequencer
    init_ack : Signal(), out
        Initialization request taken
    refresh_req : Signal(), in
        Refresh pulse from the RefreshTimer
    valid, addr, we, wdata, sel : in
        Bus request, accepted when ``valid & ready``
    ready : Signal(), out
        A request offered now would be accepted
    idle : Signal(), out
    refreshing : Signal(), out
    state : Signal(range(len(EngineState))), out
        Current ``EngineState``
    write_active, write_data, write_data_valid, read_active, read_data_valid : out
        Strobes for the DataPathArbiter
    bank_open, bank_row : Array
        Row state of every bank
    cmd : CommandBus
    """

    def __init__(self, settings):
        check_settings(settings)
        self.settings = settings

        phy, geom = settings.phy, settings.geom
        address_width = get_address_width(settings)
        nbanks = 2**geom.bankbits

        self.init_req = Signal()
        self.init_ack = Signal()
        self.refresh_req = Signal()

        self.valid = Signal()
        self.addr = Signal(address_width)
        self.we = Signal()
        self.wdata = Signal(phy.databits)
        self.sel = Signal(phy.databits//8, reset=2**(phy.databits//8) - 1)

        self.ready = Signal()
        self.idle = Signal()
        self.refreshing = Signal()
        self.state = Signal(range(len(EngineState)))

        self.write_active = Signal()
        self.write_data = Signal(phy.databits)
        self.write_data_valid = Signal()
        self.read_active = Signal()
        self.read_data_valid = Signal()

        self.bank_open = Array(Signal(name="bank{}_open".format(n)) for n in range(nbanks))
        self.bank_row = Array(Signal(geom.rowbits, name="bank{}_row".format(n))
                              for n in range(nbanks))

        self.cmd = CommandBus(geom.addressbits, geom.bankbits, phy.databits,
                              commands=phy.commands)

        self.mapper = AddressMapper(address_width, phy.databits,
                                    geom.bankbits, geom.rowbits, geom.colbits)

        logger.debug("command engine: %d banks, %d bit requests, mode word 0x%03x",
                     nbanks, address_width,
                     mode_register(phy.cl, phy.burst_type, phy.write_burst_single))

    def _access(self, m, timer, is_write):
        with m.If(is_write):
            m.next = "Write"
        with m.Else():
            m.d.sync += timer.eq(self.settings.phy.cl)
            m.next = "Read"

    def elaborate(self, platform):
        m = Module()

        phy, timing = self.settings.phy, self.settings.timing
        cmd = self.cmd

        m.submodules.mapper = mapper = self.mapper
        m.submodules.trascon = trascon = tXXDController(timing.tRAS)

        timer = Signal(32)

        # Request latch ----------------------------------------------------------------------------
        req_pending = Signal()
        req_addr = Signal.like(self.addr)
        req_we = Signal()
        req_wdata = Signal.like(self.wdata)
        req_sel = Signal.like(self.sel)

        offered = Signal()
        m.d.comb += [
            self.ready.eq(self.idle & ~self.refreshing & ~req_pending),
            offered.eq(self.valid & self.ready),
        ]

        with m.If(offered):
            m.d.sync += [
                req_pending.eq(1),
                req_addr.eq(self.addr),
                req_we.eq(self.we),
                req_wdata.eq(self.wdata),
                req_sel.eq(self.sel),
            ]

        # A request offered in Idle is decoded from the bus, a latched one from the latch.
        has_req = req_pending | offered
        is_write = Mux(offered, self.we, req_we)
        m.d.comb += mapper.address.eq(Mux(offered, self.addr, req_addr))

        m.d.comb += [
            self.write_data.eq(req_wdata),
            self.write_data_valid.eq(req_we),
        ]

        # Refresh latch ----------------------------------------------------------------------------
        refresh_pending = Signal()
        with m.If(self.refresh_req):
            m.d.sync += refresh_pending.eq(1)
        wants_refresh = self.refresh_req | refresh_pending

        # Row tracking -----------------------------------------------------------------------------
        bank, row, col = mapper.bank, mapper.row, mapper.col
        row_opened = Signal()
        row_hit = Signal()
        any_opened = Signal()
        m.d.comb += [
            row_opened.eq(self.bank_open[bank]),
            row_hit.eq(row_opened & (self.bank_row[bank] == row)),
            any_opened.eq(Cat(*self.bank_open).any()),
        ]

        precharge_all = 2**10
        mode_word = mode_register(phy.cl, phy.burst_type, phy.write_burst_single)

        # Control and command generation FSM -------------------------------------------------------
        with m.FSM() as fsm:
            with m.State("Idle"):
                with m.If(self.init_req):
                    m.d.comb += self.init_ack.eq(1)
                    m.d.sync += timer.eq(timing.tRP)
                    m.next = "InitPrechargeAll"
                with m.Elif(wants_refresh):
                    m.d.sync += [
                        refresh_pending.eq(0),
                        self.refreshing.eq(1),
                    ]
                    if self.settings.safe_refresh:
                        with m.If(any_opened):
                            m.d.sync += timer.eq(timing.tRP)
                            m.next = "RefreshPrechargeAll"
                        with m.Else():
                            m.d.sync += timer.eq(timing.tRFC)
                            m.next = "AutoRefresh"
                    else:
                        m.d.sync += timer.eq(timing.tRFC)
                        m.next = "AutoRefresh"
                with m.Elif(has_req):
                    m.d.sync += req_pending.eq(0)
                    with m.If(row_hit):
                        self._access(m, timer, is_write)
                    with m.Elif(row_opened):
                        m.d.sync += timer.eq(timing.tRP)
                        m.next = "PrechargeBank"
                    with m.Else():
                        m.d.sync += timer.eq(timing.tRCD)
                        m.next = "Active"

            # Initialization -----------------------------------------------------------------------
            with m.State("InitPrechargeAll"):
                with m.If(timer == timing.tRP):
                    m.d.comb += cmd.issue("PRE", a=precharge_all, ba=0)
                with expired(m, timer):
                    m.d.sync += [opened.eq(0) for opened in self.bank_open]
                    m.d.sync += timer.eq(timing.tMRD)
                    m.next = "InitLoadMode"

            with m.State("InitLoadMode"):
                with m.If(timer == timing.tMRD):
                    m.d.comb += cmd.issue("LMR", a=mode_word, ba=0)
                with expired(m, timer):
                    m.d.sync += timer.eq(timing.tRFC)
                    m.next = "InitRefresh1"

            with m.State("InitRefresh1"):
                with m.If(timer == timing.tRFC):
                    m.d.comb += cmd.issue("REF")
                with expired(m, timer):
                    m.d.sync += timer.eq(timing.tRFC)
                    m.next = "InitRefresh2"

            with m.State("InitRefresh2"):
                with m.If(timer == timing.tRFC):
                    m.d.comb += cmd.issue("REF")
                with expired(m, timer):
                    m.next = "Idle"

            # Refresh ------------------------------------------------------------------------------
            with m.State("RefreshPrechargeAll"):
                # Wait for tRAS before closing rows
                with m.If(trascon.ready):
                    with m.If(timer == timing.tRP):
                        m.d.comb += cmd.issue("PRE", a=precharge_all, ba=0)
                    with expired(m, timer):
                        m.d.sync += [opened.eq(0) for opened in self.bank_open]
                        m.d.sync += timer.eq(timing.tRFC)
                        m.next = "AutoRefresh"

            with m.State("AutoRefresh"):
                if self.settings.safe_refresh:
                    with m.If(timer == timing.tRFC):
                        m.d.comb += cmd.issue("REF")
                else:
                    m.d.comb += cmd.issue("REF")
                with expired(m, timer):
                    m.d.sync += self.refreshing.eq(0)
                    m.next = "Idle"

            # Row management -----------------------------------------------------------------------
            with m.State("PrechargeBank"):
                with m.If(trascon.ready):
                    with m.If(timer == timing.tRP):
                        m.d.comb += cmd.issue("PRE", a=0, ba=bank)
                    with expired(m, timer):
                        m.d.sync += [
                            self.bank_open[bank].eq(0),
                            timer.eq(timing.tRCD),
                        ]
                        m.next = "Active"

            with m.State("Active"):
                with m.If(timer == timing.tRCD):
                    m.d.comb += cmd.issue("ACT", a=row, ba=bank)
                    m.d.comb += trascon.valid.eq(1)
                with expired(m, timer):
                    m.d.sync += [
                        self.bank_open[bank].eq(1),
                        self.bank_row[bank].eq(row),
                    ]
                    self._access(m, timer, req_we)

            # Column accesses ----------------------------------------------------------------------
            with m.State("Write"):
                m.d.comb += cmd.issue("WR", a=col, ba=bank)
                m.d.comb += [
                    cmd.dqm.eq(~req_sel),
                    self.write_active.eq(1),
                ]
                m.d.sync += timer.eq(timing.tWR)
                m.next = "WriteRecovery"

            with m.State("WriteRecovery"):
                with expired(m, timer):
                    m.next = "Idle"

            with m.State("Read"):
                m.d.comb += self.read_active.eq(1)
                with m.If(timer == phy.cl):
                    m.d.comb += cmd.issue("RD", a=col, ba=bank)
                with expired(m, timer):
                    m.d.comb += self.read_data_valid.eq(1)
                    m.next = "Idle"

        m.d.comb += self.idle.eq(fsm.ongoing("Idle"))
        for state in EngineState:
            with m.If(fsm.ongoing(state.name)):
                m.d.comb += self.state.eq(state.value)

        return m
