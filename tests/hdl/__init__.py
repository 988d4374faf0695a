from contextlib import contextmanager
import unittest

from amaranth import *
from amaranth.sim import Simulator

class TestCase(unittest.TestCase):
    CLOCKS = {
        "sync": 40e6,
    }

    @contextmanager
    def assertSimulation(self, module: Module, run_until=None, filename=None):
        sim = Simulator(module)

        for domain, frequency in self.CLOCKS.items():
            sim.add_clock(1.0 / frequency, domain=domain)

        self.traces = []

        yield sim

        if filename:
            with sim.write_vcd(f"{filename}.vcd", traces=self.traces):
                self._run(sim, run_until)
        else:
            self._run(sim, run_until)

    @staticmethod
    def _run(sim, run_until):
        if run_until:
            sim.run_until(run_until)
        else:
            sim.run()

    def setUp_domain(self):
        """
        Module with an explicit `sync` domain, so tests can drive its reset.
        """
        m = self.m = Module()
        cd_sync = self.cd_sync = m.domains.sync = ClockDomain("sync")
        return m

async def reset(ctx, cd_sync: ClockDomain, cycles: int = 2):
    """ Synchronous, active-high reset, released after `cycles` edges. """
    ctx.set(cd_sync.rst, 1)
    for _ in range(cycles):
        await ctx.tick()
    ctx.set(cd_sync.rst, 0)

async def ticks(ctx, count: int):
    for _ in range(count):
        await ctx.tick()

def pack_slips(slips, slip_width: int) -> int:
    return sum(slip << (n * slip_width) for n, slip in enumerate(slips))

def flash_pattern(uplink_width: int, width: int, offset: int = 0) -> int:
    """ One flashing bit at `offset` within every `width`-bit word of the uplink. """
    pattern = 0
    for n in range(uplink_width // width):
        pattern |= 1 << (n * width + offset)
    return pattern
