# This file is Copyright (c) 2020 LambdaConcept <contact@lambdaconcept.com>
# License: BSD

"""Data bus direction and read data staging."""

from amaranth import *

__ALL__ = ["DataPathArbiter"]


class DataPathArbiter(Elaboratable):
    """Data Path Arbiter

    Owns the tristate data bus. Write data is driven out while the engine is in its write
    cycle. Read data is staged every cycle the engine is reading; the engine's valid strobe
    is passed through untouched, and in that cycle ``read_data`` shows the bus directly so
    data and strobe line up. When both strobes are asserted the sampled value is the one
    being driven.

    Attributes
    ----------
    write_active, write_data_valid, read_active, read_data_valid_i : Signal(), in
        Strobes from the command engine
    write_data : Signal(databits), in
    dq_o, dq_oe : out
    dq_i : in
    read_data : Signal(databits), out
    read_data_valid : Signal(), out
    """

    def __init__(self, databits):
        self.write_active = Signal()
        self.write_data = Signal(databits)
        self.write_data_valid = Signal()
        self.read_active = Signal()
        self.read_data_valid_i = Signal()

        self.dq_o = Signal(databits)
        self.dq_oe = Signal()
        self.dq_i = Signal(databits)

        self.read_data = Signal(databits)
        self.read_data_valid = Signal()

    def elaborate(self, platform):
        m = Module()

        with m.If(self.write_active & self.write_data_valid):
            m.d.comb += [
                self.dq_o.eq(self.write_data),
                self.dq_oe.eq(1),
            ]

        sampled = Mux(self.dq_oe, self.dq_o, self.dq_i)
        staged = Signal.like(self.read_data, name="staged")
        with m.If(self.read_active):
            m.d.sync += staged.eq(sampled)

        m.d.comb += [
            self.read_data.eq(Mux(self.read_data_valid_i, sampled, staged)),
            self.read_data_valid.eq(self.read_data_valid_i),
        ]

        return m
