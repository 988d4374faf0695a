"""
Cycle-level reference model of the self-trigger gateware.

Every class holds the registers of its gateware counterpart. `step()`
samples the inputs presented for one clock cycle, performs the clock
edge, and returns the registered outputs visible after that edge. A
simulation is advanced by calling `step()` once per clock on every
model; `UplinkTriggerModel` does this for its lanes, downstream stages
first so that each stage consumes what its upstream stage held before
the edge.
"""

import logging

from selftrig.gateware.common import (
    COUNTER_MAX, COUNTER_WIDTH, RATES,
    ConfigurationError,
    check_data_width, check_flash_params, check_num_etrocs, check_uplink_width,
    etroc_width, num_links,
)

log = logging.getLogger(__name__)

SEARCHING = "SEARCHING"
ACTIVE = "ACTIVE"

def mask(width: int) -> int:
    return (1 << width) - 1

def align_word(cur: int, prev: int, slip: int, width: int, transmit_low_to_high: bool = True) -> int:
    """ Closed-form bit-slip realignment of `cur` against `prev`. """
    if not 0 <= slip < width:
        raise ValueError(f"slip {slip} out of range for {width}-bit words")
    if slip == 0:
        return prev & mask(width)
    if transmit_low_to_high:
        high, low = cur, prev
    else:
        high, low = prev, cur
    return (((high & mask(slip)) << (width - slip)) | (low >> slip)) & mask(width)

class BitAlignerModel:
    LATENCY = 2

    def __init__(self, data_width: int, transmit_low_to_high: bool = True):
        check_data_width(data_width)
        self.data_width = data_width
        self.transmit_low_to_high = transmit_low_to_high
        self.reset()

    def reset(self):
        self.prev = 0
        self.data_o = 0

    def step(self, data_i: int, slip: int = 0) -> int:
        data_i &= mask(self.data_width)
        self.data_o = align_word(data_i, self.prev, slip, self.data_width, self.transmit_low_to_high)
        self.prev = data_i
        return self.data_o

class FlashTrackerModel:
    """
    Period-locked cadence tracker for one bit position, or one whole word.
    See `selftrig.gateware.flash.FlashTracker` for the rules.

    After `step()`, `hold` tells whether the presented "one" may start or
    continue a flashing pattern.
    """
    def __init__(self, flash_period: int, threshold: int, name: str = "tracker", delay: int = 0):
        check_flash_params(flash_period, threshold)
        self.flash_period = flash_period
        self.threshold = threshold
        self.name = name
        self.delay = delay
        self.reset()

    def reset(self):
        self.phase = SEARCHING
        self.toggle_count = 0
        self.last_seen_level = 0
        self.period_cursor = -self.delay % self.flash_period
        self.cycles = 0
        self.hold = False

    @property
    def active(self) -> bool:
        return self.phase == ACTIVE

    def step(self, one: bool, zero: bool) -> bool:
        """ Advance one cycle, return whether the presented value is suppressed. """
        boundary = self.period_cursor == 0
        if boundary and not self.last_seen_level:
            on_schedule = one
        else:
            on_schedule = zero
        resync = not on_schedule and one
        first = self.cycles == self.delay
        self.hold = bool(one and boundary and (self.toggle_count != 0 or first))

        if on_schedule:
            count = self.toggle_count
            if boundary and count != self.threshold:
                count += 1
        elif resync:
            count = 1
        else:
            count = 0

        active = bool(on_schedule and (self.active or count == self.threshold))

        if self.active and not active:
            log.debug(f"{self.name}: lost flashing cadence, back to searching")
        elif active and not self.active:
            log.debug(f"{self.name}: flashing pattern confirmed")

        if resync:
            self.period_cursor = 1 % self.flash_period
            self.last_seen_level = 1
        else:
            self.period_cursor = (self.period_cursor + 1) % self.flash_period
            if boundary and on_schedule:
                self.last_seen_level = int(one)

        self.toggle_count = count
        self.phase = ACTIVE if active else SEARCHING
        if self.cycles <= self.delay:
            self.cycles += 1

        return active

class FlashDetectorModel:
    """ Per-bit flashing detector. """
    def __init__(self, data_width: int, flash_period: int, threshold: int, delay: int = 0):
        check_data_width(data_width)
        self.data_width = data_width
        self.trackers = [
            FlashTrackerModel(flash_period, threshold, name=f"bit{n}", delay=delay)
            for n in range(data_width)
        ]
        self.data_o = 0
        self.hold_o = 0

    def reset(self):
        for tracker in self.trackers:
            tracker.reset()
        self.data_o = 0
        self.hold_o = 0

    @property
    def active_bits(self) -> int:
        return sum(tracker.active << n for n, tracker in enumerate(self.trackers))

    @property
    def active_o(self) -> bool:
        return self.active_bits != 0

    def step(self, data_i: int) -> int:
        data_i &= mask(self.data_width)
        suppress = hold = 0
        for n, tracker in enumerate(self.trackers):
            bit = (data_i >> n) & 1
            if tracker.step(one=bit == 1, zero=bit == 0):
                suppress |= 1 << n
            if tracker.hold:
                hold |= 1 << n
        self.data_o = data_i & ~suppress
        self.hold_o = hold
        return self.data_o

class FlashDetectorWordModel:
    """ Whole-word flashing detector. """
    def __init__(self, data_width: int, flash_period: int, threshold: int, delay: int = 0):
        check_data_width(data_width)
        self.data_width = data_width
        self.tracker = FlashTrackerModel(flash_period, threshold, name="word", delay=delay)
        self.data_o = 0
        self.hold_o = 0

    def reset(self):
        self.tracker.reset()
        self.data_o = 0
        self.hold_o = 0

    @property
    def active_o(self) -> bool:
        return self.tracker.active

    def step(self, data_i: int) -> int:
        data_i &= mask(self.data_width)
        suppress = self.tracker.step(one=data_i == mask(self.data_width), zero=data_i == 0)
        self.data_o = 0 if suppress else data_i
        self.hold_o = mask(self.data_width) if self.tracker.hold else 0
        return self.data_o

class _LaneModel:
    def __init__(self, width, offset, aligner, detector):
        self.width = width
        self.offset = offset
        self.aligner = aligner
        self.detector = detector

    def reset(self):
        self.aligner.reset()
        self.detector.reset()

class UplinkTriggerModel:
    """ Reference model of `selftrig.gateware.trigger_rx.UplinkTrigger`. """
    LATENCY = 4

    def __init__(self, uplink_width: int, flash_period: int, threshold: int, num_etrocs: int,
            rates=RATES, word_flash: bool = False, transmit_low_to_high: bool = True,
            hold_candidates: bool = True):
        rates = tuple(sorted(set(rates)))
        check_uplink_width(uplink_width, rates)
        check_flash_params(flash_period, threshold)
        check_num_etrocs(num_etrocs)

        self.uplink_width = uplink_width
        self.num_etrocs = num_etrocs
        self.rates = rates
        self.hold_candidates = hold_candidates
        self.max_links = num_links(uplink_width, rates[0])

        detector_class = FlashDetectorWordModel if word_flash else FlashDetectorModel

        self.lanes = {}
        for rate in rates:
            width = etroc_width(rate)
            self.lanes[rate] = [
                _LaneModel(
                    width, index * width,
                    BitAlignerModel(width, transmit_low_to_high),
                    detector_class(width, flash_period, threshold, BitAlignerModel.LATENCY),
                )
                for index in range(num_links(uplink_width, rate))
            ]

        self.reset()

    def reset(self):
        for lanes in self.lanes.values():
            for lane in lanes:
                lane.reset()
        self.trigger_o = False
        self.counts = [0] * self.num_etrocs
        self.rates_snapshot = [0] * self.num_etrocs
        self.active = [False] * self.max_links

    @property
    def cnts_o(self) -> int:
        return pack_counts(self.counts)

    @property
    def rates_o(self) -> int:
        return pack_counts(self.rates_snapshot)

    @property
    def active_o(self) -> int:
        return sum(bool(active) << n for n, active in enumerate(self.active))

    def step(self, uplink_data: int, rate: int = 0, enable: int = None, slips=None, window: bool = False) -> bool:
        if enable is None:
            enable = mask(self.uplink_width)
        if slips is None:
            slips = [0] * self.max_links
        if rate not in self.rates:
            raise ValueError(f"rate {rate} is not configured, expected one of {self.rates}")
        width = etroc_width(rate)
        for index in range(len(self.lanes[rate])):
            if not 0 <= slips[index] < width:
                raise ValueError(f"slip {slips[index]} of link {index} out of range for {width}-bit words")

        # Aggregator stage, from what the detectors held before this edge.
        hits = [False] * self.max_links
        for lane_rate, lanes in self.lanes.items():
            for index, lane in enumerate(lanes):
                detector = lane.detector
                filtered = detector.data_o & (enable >> lane.offset) & mask(lane.width)
                if self.hold_candidates:
                    filtered &= ~detector.hold_o
                hit = filtered != 0
                if lane_rate == rate:
                    hits[index] = hit

        self.trigger_o = any(hits)

        for n in range(self.num_etrocs):
            hit = n < self.max_links and hits[n]
            if window:
                self.rates_snapshot[n] = self.counts[n]
                self.counts[n] = int(hit)
            elif hit and self.counts[n] != COUNTER_MAX:
                self.counts[n] += 1
                if self.counts[n] == COUNTER_MAX:
                    log.info(f"ETROC {n} hit counter saturated")

        # Detector stage, from what the aligners held before this edge,
        # then the aligners themselves. Lanes of the other rates use the
        # low bits of their slip slot, as the gateware does.
        for lane_rate, lanes in self.lanes.items():
            slip_bits = etroc_width(lane_rate).bit_length() - 1
            for index, lane in enumerate(lanes):
                lane.detector.step(lane.aligner.data_o)
                word = (uplink_data >> lane.offset) & mask(lane.width)
                lane.aligner.step(word, slips[index] & mask(slip_bits))

        # `active_o` follows the detector registers combinationally.
        self.active = [False] * self.max_links
        for index, lane in enumerate(self.lanes[rate]):
            self.active[index] = lane.detector.active_o

        return self.trigger_o

class ReportWindowModel:
    def __init__(self, clk_frequency: int):
        if clk_frequency <= 0:
            raise ConfigurationError(f"clock frequency must be a positive integer, not {clk_frequency!r}")
        self.clk_frequency = clk_frequency
        self.reset()

    def reset(self):
        self.count = 0
        self.window_o = False

    def step(self) -> bool:
        self.window_o = self.count == self.clk_frequency - 1
        self.count = 0 if self.window_o else self.count + 1
        return self.window_o

def pack_counts(counts) -> int:
    """ Concatenate 8-bit counters, channel 0 in the least significant slot. """
    return sum((count & COUNTER_MAX) << (n * COUNTER_WIDTH) for n, count in enumerate(counts))

def unpack_counts(value: int, num_etrocs: int):
    return [(value >> (n * COUNTER_WIDTH)) & COUNTER_MAX for n in range(num_etrocs)]
