#!/usr/bin/env python3

#
# This file is part of selftrig.
#
# SPDX-License-Identifier: BSD-3-Clause

from amaranth.utils import ceil_log2

# Each channel counter occupies a fixed slot in `cnts_o`, regardless of rate.
COUNTER_WIDTH = 8
COUNTER_MAX   = (1 << COUNTER_WIDTH) - 1

# ETROC word width at rate 0. Rate `r` carries words of `8 * 2**r` bits.
BASE_WORD_WIDTH = 8
RATES = (0, 1, 2)

UPLINK_WIDTH  = 224
FLASH_PERIOD  = 3564        # Bunch crossings per LHC orbit.
THRESHOLD     = 16
NUM_ETROCS    = UPLINK_WIDTH // BASE_WORD_WIDTH
CLK_FREQUENCY = 40_000_000

class ConfigurationError(ValueError):
    """
    A generic (width, period, threshold...) that can't be built.
    Raised from constructors, before anything is elaborated or simulated.
    """

def etroc_width(rate: int) -> int:
    return BASE_WORD_WIDTH << rate

def num_links(uplink_width: int, rate: int) -> int:
    return uplink_width // etroc_width(rate)

def is_power_of_two(value: int) -> bool:
    return value > 0 and (value & (value - 1)) == 0

def check_data_width(data_width: int):
    if not isinstance(data_width, int) or data_width < 2 or not is_power_of_two(data_width):
        raise ConfigurationError(f"data width must be a power of two >= 2, not {data_width!r}")

def check_slip_width(data_width: int, slip_width: int):
    # The shift amount must be able to address bit `data_width - 1`.
    if slip_width < ceil_log2(data_width):
        raise ConfigurationError(
            f"{slip_width}-bit shift amount can't address {data_width}-bit words"
        )

def check_flash_params(flash_period: int, threshold: int):
    if not isinstance(flash_period, int) or flash_period <= 0:
        raise ConfigurationError(f"flash period must be a positive integer, not {flash_period!r}")
    if not isinstance(threshold, int) or threshold <= 0:
        raise ConfigurationError(f"threshold must be a positive integer, not {threshold!r}")

def check_rates(rates):
    if not rates:
        raise ConfigurationError("at least one rate must be configured")
    for rate in rates:
        if rate not in RATES:
            raise ConfigurationError(f"rate {rate!r} is not one of {RATES}")

def check_uplink_width(uplink_width: int, rates):
    check_rates(rates)
    widest = etroc_width(max(rates))
    if not isinstance(uplink_width, int) or uplink_width <= 0 or uplink_width % widest:
        raise ConfigurationError(
            f"uplink width {uplink_width!r} is not a positive multiple of {widest}-bit words"
        )

def check_num_etrocs(num_etrocs: int):
    if not isinstance(num_etrocs, int) or num_etrocs <= 0:
        raise ConfigurationError(f"number of ETROCs must be a positive integer, not {num_etrocs!r}")
