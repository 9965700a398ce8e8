# This file is Copyright (c) 2015 Sebastien Bourdeauducq <sb@m-labs.hk>
# This file is Copyright (c) 2016-2019 Florent Kermarrec <florent@enjoy-digital.fr>
# This file is Copyright (c) 2020 LambdaConcept <contact@lambdaconcept.com>
# License: BSD

"""Refresh scheduling."""

import logging

from amaranth import *

__ALL__ = ["RefreshTimer"]

logger = logging.getLogger(__name__)

# RefreshTimer -------------------------------------------------------------------------------------


class RefreshTimer(Elaboratable):
    """Refresh Timer

    Generate a refresh request once per tREFI period.

    The count starts at zero, so the first request is due right after reset. A due request
    is held off, with the count stalled at zero, until the controller reports it can take
    it; the request then pulses for one cycle and the count restarts from tREFI-1.

    Attributes
    ----------
    ready : Signal(), in
        Controller is idle and not already refreshing
    refresh_req : Signal(), out
        One cycle refresh request, combinational from ``count`` and ``ready``
    count : Signal(range(trefi)), out
        Cycles left before the next request is due
    """

    def __init__(self, trefi):
        if not isinstance(trefi, int) or trefi < 1:
            raise ValueError("tREFI must be a positive integer, not {!r}".format(trefi))

        self.ready = Signal()
        self.refresh_req = Signal()
        self.count = Signal(range(max(trefi, 2)))
        self._trefi = trefi

        logger.debug("refresh timer: one request every %d cycles", trefi)

    def elaborate(self, platform):
        m = Module()

        with m.If(self.count != 0):
            m.d.sync += self.count.eq(self.count - 1)
        with m.Elif(self.ready):
            m.d.comb += self.refresh_req.eq(1)
            m.d.sync += self.count.eq(self._trefi - 1)

        return m
