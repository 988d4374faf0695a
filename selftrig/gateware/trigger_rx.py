from amaranth import *
from amaranth.utils import ceil_log2

from .bitslip import BitAligner
from .common import (
    COUNTER_MAX, COUNTER_WIDTH, RATES,
    check_flash_params, check_num_etrocs, check_uplink_width,
    etroc_width, num_links,
)
from .flash import FlashDetector, FlashDetectorWord

class TriggerLane:
    """
    One ETROC word position on the uplink, at one rate: the bit aligner
    and flashing detector it runs through, and the uplink slice it owns.
    """
    def __init__(self, rate: int, index: int, aligner: BitAligner, detector):
        self.rate = rate
        self.index = index
        self.aligner = aligner
        self.detector = detector

        self.width = etroc_width(rate)
        self.offset = index * self.width

class UplinkTrigger(Elaboratable):
    """
    Self-trigger aggregator for one uplink.

    `uplink_data_i` is split into ETROC words according to `rate_i`
    (`8 * 2**rate` bits each). Every word is realigned, filtered for
    flashing bits, then gated by its `enable_i` bits. Any remaining bit
    asserts `trigger_o` for one cycle, and bumps the hit counter of its
    ETROC in `cnts_o`.

    * `slip_i` carries one `slip_width`-bit shift amount per link index,
      of which the low `log2(word width)` bits are used at each rate.
    * `window_i` ends a report window: the live counters are copied to
      `rates_o` and cleared.
    * `active_o` reports, per link of the selected rate, whether its
      flashing detector is locked.

    With `hold_candidates`, bits the detectors flag as a possible start or
    continuation of a flashing pattern (`hold_o`) are kept out of
    `trigger_o` and the counters. Those are ones on a period start of
    their bit while a confirmation is in progress, and ones on the first
    word after reset, whose period the detectors take as the flashing
    period. Every other bit of a SEARCHING detector still counts as a hit.

    Every rate is elaborated and runs continuously; `rate_i` only selects
    which set of links drives the outputs. A word presented on
    `uplink_data_i` shows up on `trigger_o` and `cnts_o` `LATENCY` clocks
    later with no slip.
    """
    LATENCY = 4

    def __init__(self, uplink_width: int, flash_period: int, threshold: int, num_etrocs: int,
            rates=RATES, word_flash: bool = False, transmit_low_to_high: bool = True,
            hold_candidates: bool = True):
        rates = tuple(sorted(set(rates)))
        check_uplink_width(uplink_width, rates)
        check_flash_params(flash_period, threshold)
        check_num_etrocs(num_etrocs)

        self.uplink_width = uplink_width
        self.flash_period = flash_period
        self.threshold = threshold
        self.num_etrocs = num_etrocs
        self.rates = rates
        self.word_flash = word_flash
        self.transmit_low_to_high = transmit_low_to_high
        self.hold_candidates = hold_candidates

        self.max_links = num_links(uplink_width, rates[0])
        self.slip_width = ceil_log2(etroc_width(rates[-1]))

        self.uplink_data_i = Signal(uplink_width)
        self.rate_i        = Signal(range(len(RATES)))
        self.enable_i      = Signal(uplink_width, init=(1 << uplink_width) - 1)
        self.slip_i        = Signal(self.max_links * self.slip_width)
        self.window_i      = Signal()

        self.trigger_o = Signal()
        self.cnts_o    = Signal(num_etrocs * COUNTER_WIDTH)
        self.rates_o   = Signal(num_etrocs * COUNTER_WIDTH)
        self.active_o  = Signal(self.max_links)

    def lane_slip(self, index: int, rate: int) -> Value:
        start = index * self.slip_width
        return self.slip_i[start:start + ceil_log2(etroc_width(rate))]

    def elaborate(self, platform) -> Module:
        m = Module()

        detector_class = FlashDetectorWord if self.word_flash else FlashDetector

        rate_hits = {}
        rate_active = {}

        for rate in self.rates:
            width = etroc_width(rate)
            links = num_links(self.uplink_width, rate)

            rate_hits[rate] = Signal(links, name=f"hits_rate{rate}")
            rate_active[rate] = Signal(links, name=f"active_rate{rate}")

            for index in range(links):
                lane = TriggerLane(
                    rate, index,
                    aligner=BitAligner(width, self.transmit_low_to_high),
                    detector=detector_class(width, self.flash_period, self.threshold, BitAligner.LATENCY),
                )
                m.submodules[f"align_r{rate}_{index}"] = lane.aligner
                m.submodules[f"flash_r{rate}_{index}"] = lane.detector

                word = self.uplink_data_i[lane.offset:lane.offset + width]
                enable = self.enable_i[lane.offset:lane.offset + width]

                m.d.comb += [
                    lane.aligner.data_i.eq(word),
                    lane.aligner.slip_cnt_i.eq(self.lane_slip(index, rate)),
                    lane.detector.data_i.eq(lane.aligner.data_o),
                    rate_active[rate][index].eq(lane.detector.active_o),
                ]

                filtered = lane.detector.data_o & enable
                if self.hold_candidates:
                    filtered = filtered & ~lane.detector.hold_o

                m.d.comb += rate_hits[rate][index].eq(filtered.any())

        # An unconfigured `rate_i` selects no links at all.
        hits = Signal(self.max_links)

        with m.Switch(self.rate_i):
            for rate in self.rates:
                with m.Case(rate):
                    m.d.comb += [
                        hits.eq(rate_hits[rate]),
                        self.active_o.eq(rate_active[rate]),
                    ]

        m.d.sync += self.trigger_o.eq(hits.any())

        counts = []
        snapshots = []
        for n in range(self.num_etrocs):
            count = Signal(COUNTER_WIDTH, name=f"cnt{n}")
            snapshot = Signal(COUNTER_WIDTH, name=f"rate{n}")
            hit = hits[n] if n < self.max_links else C(0, 1)

            with m.If(self.window_i):
                m.d.sync += [
                    snapshot.eq(count),
                    count.eq(hit),
                ]
            with m.Elif(hit & (count != COUNTER_MAX)):
                m.d.sync += count.eq(count + 1)

            counts.append(count)
            snapshots.append(snapshot)

        m.d.comb += [
            self.cnts_o.eq(Cat(*counts)),
            self.rates_o.eq(Cat(*snapshots)),
        ]

        return m
