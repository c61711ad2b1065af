#!/usr/bin/env python3
import logging
import random
import re
from typing import IO, Iterator, List, Optional, Tuple

from simulator import READ, WRITE

Event = Tuple[str, int]

HEX_ADDRESS = re.compile(r"0[xX][0-9a-fA-F]+")
ADDRESS_LIMIT = 1 << 64

def parse_line(line: str) -> Optional[Event]:
    """Parse `<R|W> 0x<hex-address>`. Returns None for anything else."""
    parts = line.split()
    if len(parts) != 2:
        return None
    op, value = parts
    if op not in (READ, WRITE) or not HEX_ADDRESS.fullmatch(value):
        return None
    address = int(value, 16)
    if address >= ADDRESS_LIMIT:
        return None
    return op, address

def read_trace(f: IO[str]) -> Iterator[Event]:
    for lineno, line in enumerate(f, 1):
        event = parse_line(line)
        if event is None:
            if line.strip():
                logging.debug(f"Skipping malformed trace line {lineno}: {line.strip()}")
            continue
        yield event

# ---------------- Workload ----------------
def generate_synthetic_trace(n: int, address_space_kb: int, block_size: int, seq_frac: float, hot_frac: float,
                             write_ratio: float, seed: int = 42) -> List[Event]:
    """
    Seeded mix of sequential bursts, accesses into a hot region (10% of the
    address space) and uniformly random blocks.
    """
    rnd = random.Random(seed)
    space_bytes = address_space_kb * 1024
    hot_space = max(block_size, int(0.1 * space_bytes))

    def op():
        return WRITE if rnd.random() < write_ratio else READ

    hot_base = rnd.randrange(0, max(1, space_bytes - hot_space), block_size)

    trace = []
    while len(trace) < n:
        mode = rnd.random()
        if mode < seq_frac:
            start = rnd.randrange(0, max(block_size, space_bytes - 64*block_size), block_size)
            length = rnd.randint(8, 64)  # burst in blocks
            for j in range(min(length, n - len(trace))):
                trace.append((op(), (start + j * block_size) % space_bytes))
        elif mode < seq_frac + hot_frac:
            trace.append((op(), hot_base + rnd.randrange(0, max(1, hot_space // block_size)) * block_size))
        else:
            trace.append((op(), rnd.randrange(0, max(1, space_bytes // block_size)) * block_size))
    return trace
