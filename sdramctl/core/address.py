# This file is Copyright (c) 2015 Sebastien Bourdeauducq <sb@m-labs.hk>
# This file is Copyright (c) 2020 LambdaConcept <contact@lambdaconcept.com>
# License: BSD

"""Request address to bank/row/column mapping."""

import logging
from collections import namedtuple

from amaranth import *

from sdramctl.common import exact_log2

__ALL__ = ["MappedAddress", "AddressMapper"]

logger = logging.getLogger(__name__)

MappedAddress = namedtuple("MappedAddress", "bank row col")


class AddressMapper(Elaboratable):
    """Splits a request address into SDRAM coordinates

    From the least significant bit up, an address holds the byte offset inside one data
    word, then the column, the row and the bank. Byte offset bits and bits above the bank
    field never take part in the mapping.

    Parameters
    ----------
    address_width : int
        Request address width
    data_width : int
        Data bus width, a power of 2 multiple of 8
    bankbits, rowbits, colbits : int
        Field widths

    Attributes
    ----------
    address : Signal(address_width), in
    bank : Signal(bankbits), out
    row : Signal(rowbits), out
    col : Signal(colbits), out
    """

    def __init__(self, address_width, data_width, bankbits, rowbits, colbits):
        if data_width < 8 or data_width % 8:
            raise ValueError("Data width must be a multiple of 8, not {!r}".format(data_width))
        self.offsetbits = exact_log2(data_width//8)
        self.bankbits = bankbits
        self.rowbits = rowbits
        self.colbits = colbits

        if address_width < self.bank_lsb + bankbits:
            raise ValueError("Address width must be at least {}, not {!r}"
                             .format(self.bank_lsb + bankbits, address_width))

        self.address = Signal(address_width)
        self.bank = Signal(bankbits)
        self.row = Signal(rowbits)
        self.col = Signal(colbits)

        logger.debug("address map: col [%d:%d] row [%d:%d] bank [%d:%d]",
                     self.col_lsb, self.row_lsb, self.row_lsb, self.bank_lsb,
                     self.bank_lsb, self.bank_lsb + bankbits)

    @property
    def col_lsb(self):
        return self.offsetbits

    @property
    def row_lsb(self):
        return self.col_lsb + self.colbits

    @property
    def bank_lsb(self):
        return self.row_lsb + self.rowbits

    def decompose(self, address):
        return MappedAddress(
            bank=(address >> self.bank_lsb) & (2**self.bankbits - 1),
            row=(address >> self.row_lsb) & (2**self.rowbits - 1),
            col=(address >> self.col_lsb) & (2**self.colbits - 1),
        )

    def compose(self, bank, row, col):
        """Lowest request address that maps onto ``bank``, ``row``, ``col``"""
        for name, value, bits in (("bank", bank, self.bankbits),
                                  ("row", row, self.rowbits),
                                  ("col", col, self.colbits)):
            if not 0 <= value < 2**bits:
                raise ValueError("{} must fit in {} bits, not {!r}".format(name, bits, value))
        return (bank << self.bank_lsb) | (row << self.row_lsb) | (col << self.col_lsb)

    def elaborate(self, platform):
        m = Module()

        m.d.comb += [
            self.col.eq(self.address[self.col_lsb:self.row_lsb]),
            self.row.eq(self.address[self.row_lsb:self.bank_lsb]),
            self.bank.eq(self.address[self.bank_lsb:self.bank_lsb + self.bankbits]),
        ]

        return m
