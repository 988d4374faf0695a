from amaranth import *

from .common import check_data_width, check_flash_params

class FlashTracker(Elaboratable):
    """
    Cadence state machine shared by the per-bit and whole-word detectors.

    The flashing pattern presents a new level on the first cycle of every
    `flash_period`-cycle period, alternating between "one" and "zero", and
    presents zero on the remaining cycles of the period.

    * `one`  input, the tracked position carries the flashing pattern.
    * `zero` input, the tracked position carries nothing.

    The tracker searches (SEARCHING) until the pattern has alternated on
    schedule for `threshold` consecutive periods, then locks (ACTIVE). Any
    deviation from the schedule returns it to SEARCHING with a zero count.
    A "one" seen out of schedule re-synchronizes the period to that cycle
    and counts as the first period of a new confirmation. Only a period
    start can lock the tracker.

    `delay` is the number of cycles between the first input after reset and
    the tracker seeing it. The first period starts on that cycle.

    `active_next`, `suppress` and `hold` are combinational and describe the
    cycle being presented. `active` is the registered phase. `hold` flags a
    "one" on a period start that may begin or continue a flashing pattern:
    the first input after reset, or any period start while a confirmation
    is in progress.
    """
    def __init__(self, flash_period: int, threshold: int, delay: int = 0):
        check_flash_params(flash_period, threshold)

        self.flash_period = flash_period
        self.threshold = threshold
        self.delay = delay

        self.one  = Signal()
        self.zero = Signal()

        self.active      = Signal()
        self.active_next = Signal()
        self.suppress    = Signal()
        self.hold        = Signal()

    def elaborate(self, platform) -> Module:
        m = Module()

        period_last = self.flash_period - 1
        threshold = self.threshold

        count  = Signal(range(threshold + 1))
        level  = Signal()
        cursor = Signal(range(max(self.flash_period, 2)), init=-self.delay % self.flash_period)

        # Saturates one past the first valid input cycle.
        startup = Signal(range(self.delay + 2))
        with m.If(startup != self.delay + 1):
            m.d.sync += startup.eq(startup + 1)

        boundary = Signal()
        on_schedule = Signal()
        resync = Signal()
        count_next = Signal.like(count)

        m.d.comb += [
            boundary.eq(cursor == 0),
            # Only the first cycle of a period flips the level, everything
            # else in the period must be quiet.
            on_schedule.eq(Mux(boundary & ~level, self.one, self.zero)),
            resync.eq(~on_schedule & self.one),
            self.hold.eq(self.one & boundary & ((count != 0) | (startup == self.delay))),
        ]

        with m.If(on_schedule):
            with m.If(boundary & (count != threshold)):
                m.d.comb += count_next.eq(count + 1)
            with m.Else():
                m.d.comb += count_next.eq(count)
        with m.Elif(resync):
            m.d.comb += count_next.eq(1)
        with m.Else():
            m.d.comb += count_next.eq(0)

        m.d.comb += [
            self.active_next.eq(on_schedule & (self.active | (count_next == threshold))),
            self.suppress.eq(self.active_next),
        ]

        with m.If(resync):
            m.d.sync += [
                cursor.eq(1 % self.flash_period),
                level.eq(1),
            ]
        with m.Else():
            m.d.sync += cursor.eq(Mux(cursor == period_last, 0, cursor + 1))
            with m.If(boundary & on_schedule):
                m.d.sync += level.eq(self.one)

        m.d.sync += [
            count.eq(count_next),
            self.active.eq(self.active_next),
        ]

        return m

class FlashDetector(Elaboratable):
    """
    Per-bit flashing bit detector and suppressor.

    Every bit position of `data_i` is tracked independently. While a bit
    position is SEARCHING its value passes through to `data_o` (it may be
    a genuine hit). Once locked, the flashing bit is forced to zero as
    long as it keeps its cadence. A bit breaking the cadence is passed
    through and the position goes back to SEARCHING.

    `hold_o` marks the bits of `data_o` that look like the start or the
    continuation of a flashing pattern not yet confirmed.

    `data_o`, `hold_o`, `active_bits_o` and `active_o` are registered.
    `active_o` is asserted while any bit position is locked.
    """
    def __init__(self, data_width: int, flash_period: int, threshold: int, delay: int = 0):
        check_data_width(data_width)
        check_flash_params(flash_period, threshold)

        self.data_width = data_width
        self.flash_period = flash_period
        self.threshold = threshold
        self.delay = delay

        self.data_i        = Signal(data_width)
        self.data_o        = Signal(data_width)
        self.hold_o        = Signal(data_width)
        self.active_bits_o = Signal(data_width)
        self.active_o      = Signal()

    def elaborate(self, platform) -> Module:
        m = Module()

        suppress = Signal(self.data_width)
        hold = Signal(self.data_width)

        for n in range(self.data_width):
            tracker = m.submodules[f"bit{n}"] = FlashTracker(self.flash_period, self.threshold, self.delay)
            m.d.comb += [
                tracker.one.eq(self.data_i[n]),
                tracker.zero.eq(~self.data_i[n]),
                suppress[n].eq(tracker.suppress),
                hold[n].eq(tracker.hold),
                self.active_bits_o[n].eq(tracker.active),
            ]

        m.d.comb += self.active_o.eq(self.active_bits_o.any())
        m.d.sync += [
            self.data_o.eq(self.data_i & ~suppress),
            self.hold_o.eq(hold),
        ]

        return m

class FlashDetectorWord(Elaboratable):
    """
    Whole-word flashing detector: the flashing pattern is the entire word,
    alternating between all ones and all zeros. A partial pattern is a
    deviation and passes through unmodified.

    Once locked, the output word is forced to zero while the pattern
    keeps its cadence.
    """
    def __init__(self, data_width: int, flash_period: int, threshold: int, delay: int = 0):
        check_data_width(data_width)
        check_flash_params(flash_period, threshold)

        self.data_width = data_width
        self.flash_period = flash_period
        self.threshold = threshold
        self.delay = delay

        self.data_i   = Signal(data_width)
        self.data_o   = Signal(data_width)
        self.hold_o   = Signal(data_width)
        self.active_o = Signal()

    def elaborate(self, platform) -> Module:
        m = Module()

        tracker = m.submodules.tracker = FlashTracker(self.flash_period, self.threshold, self.delay)
        m.d.comb += [
            tracker.one.eq(self.data_i.all()),
            tracker.zero.eq(self.data_i == 0),
            self.active_o.eq(tracker.active),
        ]

        m.d.sync += [
            self.data_o.eq(Mux(tracker.suppress, 0, self.data_i)),
            self.hold_o.eq(tracker.hold.replicate(self.data_width)),
        ]

        return m
