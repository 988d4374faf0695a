from amaranth import *
from amaranth.utils import ceil_log2

from .common import check_data_width, check_slip_width

class BitAligner(Elaboratable):
    """
    Barrel shifter undoing the bit-slip introduced by serialization.

    `data_i`     word received this cycle.
    `slip_cnt_i` how many bits the frame has slipped, [0, `data_width`).
    `data_o`     realigned word, registered.

    The previous word is kept in a register. On every clock edge, the
    output becomes a window `slip_cnt_i` bits into the concatenation of
    the previous and current words:

    * With `transmit_low_to_high`, the low `slip` bits of the current
      word become the high bits of the output, and the high bits of the
      previous word fill the low bits.
    * Otherwise, the roles of the current and previous words swap.

    A shift of zero forwards the previous word unchanged, so the
    realigned word lags the input by one frame.
    """
    # Clock edges from `data_i` to `data_o` with no slip.
    LATENCY = 2

    def __init__(self, data_width: int, transmit_low_to_high: bool = True, slip_width: int = None):
        check_data_width(data_width)
        if slip_width is None:
            slip_width = ceil_log2(data_width)
        check_slip_width(data_width, slip_width)

        self.data_width = data_width
        self.transmit_low_to_high = transmit_low_to_high

        self.data_i     = Signal(data_width)
        self.slip_cnt_i = Signal(slip_width)
        self.data_o     = Signal(data_width)

    def elaborate(self, platform) -> Module:
        m = Module()

        width = self.data_width
        data, prev = self.data_i, Signal(width)

        m.d.sync += prev.eq(data)

        # Shift amounts past `width - 1` (only possible with a wide
        # `slip_cnt_i`) hold the output.
        with m.Switch(self.slip_cnt_i):
            with m.Case(0):
                m.d.sync += self.data_o.eq(prev)
            for slip in range(1, width):
                with m.Case(slip):
                    # `Cat()` is LSB first.
                    if self.transmit_low_to_high:
                        m.d.sync += self.data_o.eq(Cat(prev[slip:], data[:slip]))
                    else:
                        m.d.sync += self.data_o.eq(Cat(data[slip:], prev[:slip]))

        return m
