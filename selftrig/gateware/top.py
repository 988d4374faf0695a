#!/usr/bin/env python3

#
# This file is part of selftrig.
#
# SPDX-License-Identifier: BSD-3-Clause

import argparse
import logging
import sys

from amaranth import *
from amaranth.back import rtlil

from .common import (
    CLK_FREQUENCY, FLASH_PERIOD, NUM_ETROCS, RATES, THRESHOLD, UPLINK_WIDTH,
    ConfigurationError,
)
from .rate_counter import ReportWindowCounter
from .trigger_rx import UplinkTrigger

class SelfTrigger(Elaboratable):
    """
    Self-trigger for one uplink: the trigger aggregator, with its hit
    counters snapshotted and cleared at the end of every report window.

    `rates_o` holds the hit counts of the last complete report window,
    `cnts_o` the counts accumulated so far in the current one.
    """
    def __init__(self, uplink_width: int = UPLINK_WIDTH, flash_period: int = FLASH_PERIOD,
            threshold: int = THRESHOLD, num_etrocs: int = NUM_ETROCS,
            clk_frequency: int = CLK_FREQUENCY, **kwargs):
        self._trigger = UplinkTrigger(uplink_width, flash_period, threshold, num_etrocs, **kwargs)
        self._window = ReportWindowCounter(clk_frequency)

        trigger = self._trigger

        self.uplink_data_i = Signal.like(trigger.uplink_data_i)
        self.rate_i        = Signal.like(trigger.rate_i)
        self.enable_i      = Signal.like(trigger.enable_i)
        self.slip_i        = Signal.like(trigger.slip_i)

        self.trigger_o = Signal()
        self.cnts_o    = Signal.like(trigger.cnts_o)
        self.rates_o   = Signal.like(trigger.rates_o)
        self.active_o  = Signal.like(trigger.active_o)
        self.window_o  = Signal()

    @property
    def latency(self) -> int:
        return self._trigger.LATENCY

    def ports(self):
        return [
            self.uplink_data_i, self.rate_i, self.enable_i, self.slip_i,
            self.trigger_o, self.cnts_o, self.rates_o, self.active_o, self.window_o,
        ]

    def elaborate(self, platform) -> Module:
        m = Module()

        trigger = m.submodules.trigger = self._trigger
        window = m.submodules.window = self._window

        m.d.comb += [
            trigger.uplink_data_i.eq(self.uplink_data_i),
            trigger.rate_i.eq(self.rate_i),
            trigger.enable_i.eq(self.enable_i),
            trigger.slip_i.eq(self.slip_i),
            trigger.window_i.eq(window.window_o),

            self.trigger_o.eq(trigger.trigger_o),
            self.cnts_o.eq(trigger.cnts_o),
            self.rates_o.eq(trigger.rates_o),
            self.active_o.eq(trigger.active_o),
            self.window_o.eq(window.window_o),
        ]

        return m

# Log formatting strings.
LOG_FORMAT_COLOR = "\u001b[37;1m%(levelname)-8s| \u001b[0m\u001b[1m%(module)-12s|\u001b[0m %(message)s"
LOG_FORMAT_PLAIN = "%(levelname)-8s:%(module)-12s>%(message)s"

def main(argv=None):
    parser = argparse.ArgumentParser(description="Emit RTLIL for the uplink self-trigger.")
    parser.add_argument("output", help="RTLIL file to write, '-' for stdout")
    parser.add_argument("--uplink-width",  type=int, default=UPLINK_WIDTH)
    parser.add_argument("--flash-period",  type=int, default=FLASH_PERIOD)
    parser.add_argument("--threshold",     type=int, default=THRESHOLD)
    parser.add_argument("--num-etrocs",    type=int, default=NUM_ETROCS)
    parser.add_argument("--clk-frequency", type=int, default=CLK_FREQUENCY)
    parser.add_argument("--rates", type=int, nargs="+", default=list(RATES))
    parser.add_argument("--word-flash", action="store_true",
        help="flashing pattern is the whole ETROC word rather than one bit")
    parser.add_argument("--transmit-high-to-low", action="store_true")
    parser.add_argument("--no-hold", action="store_true",
        help="count flashing pattern candidates as hits until they are confirmed")
    args = parser.parse_args(argv)

    if sys.stderr.isatty():
        log_format = LOG_FORMAT_COLOR
    else:
        log_format = LOG_FORMAT_PLAIN
    logging.basicConfig(level=logging.INFO, format=log_format)

    try:
        top = SelfTrigger(
            uplink_width=args.uplink_width,
            flash_period=args.flash_period,
            threshold=args.threshold,
            num_etrocs=args.num_etrocs,
            clk_frequency=args.clk_frequency,
            rates=args.rates,
            word_flash=args.word_flash,
            transmit_low_to_high=not args.transmit_high_to_low,
            hold_candidates=not args.no_hold,
        )
    except ConfigurationError as e:
        parser.error(str(e))

    logging.info(f"Elaborating {args.uplink_width}-bit uplink, rates {args.rates}, {args.num_etrocs} ETROCs.")
    text = rtlil.convert(top, name="self_trig", ports=top.ports())

    if args.output == "-":
        sys.stdout.write(text)
    else:
        with open(args.output, "w") as f:
            f.write(text)
        logging.info(f"Wrote {len(text)} bytes to {args.output}.")

if __name__ == "__main__":
    main()
