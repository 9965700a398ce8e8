# This file is Copyright (c) 2015 Sebastien Bourdeauducq <sb@m-labs.hk>
# This file is Copyright (c) 2016-2019 Florent Kermarrec <florent@enjoy-digital.fr>
# This file is Copyright (c) 2020 LambdaConcept <contact@lambdaconcept.com>
# License: BSD

"""SDR SDRAM Controller."""

import logging

from amaranth import *

from sdramctl.common import *
from sdramctl.core.datapath import DataPathArbiter
from sdramctl.core.engine import CommandEngine
from sdramctl.core.initializer import InitSequencer
from sdramctl.core.refresher import RefreshTimer

__ALL__ = ["ControllerSettings", "Interface", "SDRAMController"]

logger = logging.getLogger(__name__)

# Settings -----------------------------------------------------------------------------------------


class ControllerSettings(Settings):
    def __init__(self,
                 # Refresh
                 with_refresh=True,
                 # Close open rows first and issue AUTO REFRESH on a single cycle
                 safe_refresh=False,

                 # Request address width, None for the smallest that covers the device
                 address_width=None):
        self.set_attributes(locals())

# Interface ----------------------------------------------------------------------------------------


class Interface:
    """Request side of the controller

    One beat per request. ``rdata_valid`` pulses once for every accepted read, in the
    cycle ``rdata`` holds its data.
    """

    def __init__(self, address_width, data_width):
        self.address_width = address_width
        self.data_width = data_width

        self.valid = Signal()
        self.ready = Signal()
        self.addr = Signal(address_width)
        self.we = Signal()
        self.wdata = Signal(data_width)
        self.sel = Signal(data_width//8, reset=2**(data_width//8) - 1)

        self.rdata = Signal(data_width)
        self.rdata_valid = Signal()
        self.error = Signal()
        self.init_done = Signal()

    def fields(self):
        return [self.valid, self.ready, self.addr, self.we, self.wdata, self.sel,
                self.rdata, self.rdata_valid, self.error, self.init_done]

# Controller ---------------------------------------------------------------------------------------


class SDRAMController(Elaboratable):
    def __init__(self, phy_settings, geom_settings, timing_settings, controller_settings=None):
        if controller_settings is None:
            controller_settings = ControllerSettings()

        # Settings ---------------------------------------------------------------------------------
        self.settings = controller_settings
        self.settings.phy = phy_settings
        self.settings.geom = geom_settings
        self.settings.timing = timing_settings
        check_settings(self.settings)

        address_width = get_address_width(self.settings)

        # Interface (User) -------------------------------------------------------------------------
        self.interface = Interface(address_width, phy_settings.databits)

        # Pads (SDRAM) -----------------------------------------------------------------------------
        self.pads = Pads(geom_settings.addressbits, geom_settings.bankbits,
                         phy_settings.databits, commands=phy_settings.commands, name="sdram")

        # Components -------------------------------------------------------------------------------
        self.engine = CommandEngine(self.settings)
        self.initializer = InitSequencer(timing_settings.tINIT)
        self.datapath = DataPathArbiter(phy_settings.databits)
        self.refresher = None
        if self.settings.with_refresh:
            self.refresher = RefreshTimer(timing_settings.tREFI)
        else:
            logger.warning("refresh disabled, memory contents will decay")

        logger.debug("controller: %d bit address, %d bit data, refresh %s",
                     address_width, phy_settings.databits,
                     "off" if not self.settings.with_refresh else
                     "safe" if self.settings.safe_refresh else "on")

    def ports(self):
        return self.interface.fields() + self.pads.fields()

    def elaborate(self, platform):
        m = Module()

        iface = self.interface
        pads = self.pads

        m.submodules.engine = engine = self.engine
        m.submodules.initializer = initializer = self.initializer
        m.submodules.datapath = datapath = self.datapath

        # Initialization ---------------------------------------------------------------------------
        m.d.comb += [
            initializer.engine_idle.eq(engine.idle),
            initializer.engine_ack.eq(engine.init_ack),
            engine.init_req.eq(initializer.init_req),
            iface.init_done.eq(initializer.done),
        ]

        # Refresh ----------------------------------------------------------------------------------
        if self.refresher is not None:
            m.submodules.refresher = refresher = self.refresher
            m.d.comb += [
                # Same condition as iface.ready, a latched request is served first
                refresher.ready.eq(engine.ready),
                engine.refresh_req.eq(refresher.refresh_req),
            ]

        # Requests ---------------------------------------------------------------------------------
        m.d.comb += [
            engine.valid.eq(iface.valid),
            engine.addr.eq(iface.addr),
            engine.we.eq(iface.we),
            engine.wdata.eq(iface.wdata),
            engine.sel.eq(iface.sel),
            iface.ready.eq(engine.ready),
            iface.error.eq(0),
        ]

        # Data path --------------------------------------------------------------------------------
        m.d.comb += [
            datapath.write_active.eq(engine.write_active),
            datapath.write_data.eq(engine.write_data),
            datapath.write_data_valid.eq(engine.write_data_valid),
            datapath.read_active.eq(engine.read_active),
            datapath.read_data_valid_i.eq(engine.read_data_valid),

            pads.dq_o.eq(datapath.dq_o),
            pads.dq_oe.eq(datapath.dq_oe),
            datapath.dq_i.eq(pads.dq_i),

            iface.rdata.eq(datapath.read_data),
            iface.rdata_valid.eq(datapath.read_data_valid),
        ]

        # Commands ---------------------------------------------------------------------------------
        m.d.comb += engine.cmd.connect(pads)

        return m
