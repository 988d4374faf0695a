import random

from amaranth import *

from selftrig.gateware.bitslip import BitAligner
from selftrig.gateware.common import ConfigurationError
from selftrig.model import BitAlignerModel, align_word

from tests.hdl import TestCase, reset

class BitAlignerTest(TestCase):
    def setUp_dut(self, data_width=8, transmit_low_to_high=True):
        m = self.setUp_domain()
        self.dut = m.submodules.dut = BitAligner(data_width, transmit_low_to_high)

    def test_scenario(self):
        self.setUp_dut()
        dut = self.dut

        with self.assertSimulation(self.m) as sim:
            async def testbench(ctx):
                ctx.set(dut.data_i, 0x55)
                ctx.set(dut.slip_cnt_i, 0)
                await ctx.tick()

                ctx.set(dut.data_i, 0xAA)
                ctx.set(dut.slip_cnt_i, 3)
                await ctx.tick()
                self.assertEqual(ctx.get(dut.data_o), 0x4A)

            sim.add_testbench(testbench)

    def test_no_slip_forwards_previous_word(self):
        self.setUp_dut()
        dut = self.dut

        with self.assertSimulation(self.m) as sim:
            async def testbench(ctx):
                ctx.set(dut.slip_cnt_i, 0)
                for value in (0x12, 0x34, 0x56, 0x78):
                    previous = ctx.get(dut.data_i)
                    ctx.set(dut.data_i, value)
                    await ctx.tick()
                    self.assertEqual(ctx.get(dut.data_o), previous)

            sim.add_testbench(testbench)

    def check_edge_slips(self, transmit_low_to_high, expected):
        self.setUp_dut(8, transmit_low_to_high)
        dut = self.dut

        with self.assertSimulation(self.m) as sim:
            async def testbench(ctx):
                for slip, result in expected.items():
                    ctx.set(dut.slip_cnt_i, 0)
                    ctx.set(dut.data_i, 0b1000_0001)
                    await ctx.tick()

                    ctx.set(dut.slip_cnt_i, slip)
                    ctx.set(dut.data_i, 0b0000_0001)
                    await ctx.tick()
                    self.assertEqual(ctx.get(dut.data_o), result, f"slip {slip}")

            sim.add_testbench(testbench)

    def test_edge_slips_low_to_high(self):
        self.check_edge_slips(True, {1: 0xC0, 7: 0x03})

    def test_edge_slips_high_to_low(self):
        self.check_edge_slips(False, {1: 0x80, 7: 0x02})

    def test_reset_clears_previous_word(self):
        self.setUp_dut()
        dut = self.dut

        with self.assertSimulation(self.m) as sim:
            async def testbench(ctx):
                ctx.set(dut.data_i, 0xFF)
                await ctx.tick()
                await reset(ctx, self.cd_sync)
                self.assertEqual(ctx.get(dut.data_o), 0)

                ctx.set(dut.data_i, 0x00)
                await ctx.tick()
                self.assertEqual(ctx.get(dut.data_o), 0)

            sim.add_testbench(testbench)

    def check_random(self, data_width, transmit_low_to_high):
        self.setUp_dut(data_width, transmit_low_to_high)
        dut = self.dut
        model = BitAlignerModel(data_width, transmit_low_to_high)
        rng = random.Random(data_width * 2 + transmit_low_to_high)

        with self.assertSimulation(self.m) as sim:
            async def testbench(ctx):
                # Every slip at least once, then random ones.
                slips = list(range(data_width)) + [rng.randrange(data_width) for _ in range(64)]
                for slip in slips:
                    prev = model.prev
                    data = rng.getrandbits(data_width)
                    ctx.set(dut.data_i, data)
                    ctx.set(dut.slip_cnt_i, slip)
                    model.step(data, slip)
                    await ctx.tick()

                    expected = align_word(data, prev, slip, data_width, transmit_low_to_high)
                    self.assertEqual(model.data_o, expected)
                    self.assertEqual(ctx.get(dut.data_o), expected, f"slip {slip}")

            sim.add_testbench(testbench)

    def test_random_8_low_to_high(self):
        self.check_random(8, True)

    def test_random_16_high_to_low(self):
        self.check_random(16, False)

    def test_random_32_low_to_high(self):
        self.check_random(32, True)

    def test_bad_configuration(self):
        with self.assertRaises(ConfigurationError):
            BitAligner(12)
        with self.assertRaises(ConfigurationError):
            BitAligner(0)
        with self.assertRaises(ConfigurationError):
            BitAligner(16, slip_width=3)
