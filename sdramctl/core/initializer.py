# This file is Copyright (c) 2020 LambdaConcept <contact@lambdaconcept.com>
# License: BSD

"""Power-up initialization request."""

import logging

from amaranth import *

__ALL__ = ["InitSequencer"]

logger = logging.getLogger(__name__)


class InitSequencer(Elaboratable):
    """Init Sequencer

    Waits tINIT cycles after reset, then asks the command engine to run the device
    initialization (precharge all, load mode, two auto refreshes). The request is held
    until the engine acknowledges it; ``done`` stays set until the next reset.
    """

    def __init__(self, tinit):
        if not isinstance(tinit, int) or tinit < 0:
            raise ValueError("tINIT must be a non-negative integer, not {!r}".format(tinit))

        self.engine_idle = Signal()
        self.engine_ack = Signal()
        self.init_req = Signal()
        self.done = Signal()
        self.count = Signal(range(max(tinit + 1, 2)), reset=tinit)

        logger.debug("init sequencer: power-up wait of %d cycles", tinit)

    def elaborate(self, platform):
        m = Module()

        with m.If(~self.done):
            with m.If(self.count != 0):
                m.d.sync += self.count.eq(self.count - 1)
            with m.Elif(self.init_req):
                with m.If(self.engine_ack):
                    m.d.sync += [
                        self.init_req.eq(0),
                        self.done.eq(1),
                    ]
            with m.Elif(self.engine_idle):
                m.d.sync += self.init_req.eq(1)

        return m
