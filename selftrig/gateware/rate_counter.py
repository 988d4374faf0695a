from amaranth import *

from .common import ConfigurationError

class ReportWindowCounter(Elaboratable):
    """
    Produce a one-cycle `window_o` strobe every `clk_frequency` cycles,
    marking the end of a report window. With the default system clock
    frequency this is once a second.
    """
    def __init__(self, clk_frequency: int):
        if not isinstance(clk_frequency, int) or clk_frequency <= 0:
            raise ConfigurationError(f"clock frequency must be a positive integer, not {clk_frequency!r}")

        self.clk_frequency = clk_frequency

        self.window_o = Signal()

    def elaborate(self, platform) -> Module:
        m = Module()

        count_last = self.clk_frequency - 1
        count = Signal(range(max(self.clk_frequency, 2)))

        with m.If(count == count_last):
            m.d.sync += [
                count.eq(0),
                self.window_o.eq(1),
            ]
        with m.Else():
            m.d.sync += [
                count.eq(count + 1),
                self.window_o.eq(0),
            ]

        return m
