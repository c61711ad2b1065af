#!/usr/bin/env python3
import logging
from dataclasses import dataclass, field, asdict
from typing import Iterable, List, Optional, Tuple

from markov import MarkovTable

# ---------------- Policies ----------------
class InsertPolicy:
    MIP = "MIP"   # MRU insertion, LRU eviction
    LIP = "LIP"   # LRU insertion, LRU eviction

class WriteStrategy:
    WBWA = "WBWA"     # write-back, write-allocate
    WTWNA = "WTWNA"   # write-through, write-no-allocate

class Prefetcher:
    NONE = "none"
    PLUS_ONE = "plus1"
    MARKOV = "markov"
    HYBRID = "hybrid"

    ALL = (NONE, PLUS_ONE, MARKOV, HYBRID)
    TABLE_BASED = (MARKOV, HYBRID)

READ = "R"
WRITE = "W"

# ---------------- Timing constants ----------------
DRAM_AT = 64
DRAM_AT_PER_WORD = 2
WORD_SIZE = 8

L1_HIT_TIME_CONST = 2
L1_HIT_TIME_PER_S = 0.2
L2_HIT_TIME_CONST = 8
L2_HIT_TIME_PER_S = 0.8

# L2 touches and MIP inserts count up from here, LIP inserts count down from just below
MRU_BASE = 1 << 32

MIN_BLOCK_BITS = 5
MAX_BLOCK_BITS = 7

# ---------------- Configuration ----------------
class ConfigError(ValueError):
    pass

@dataclass
class CacheConfig:
    disabled: bool = False
    c: int = 10
    b: int = 6
    s: int = 1
    replace_policy: str = InsertPolicy.MIP
    write_strat: str = WriteStrategy.WBWA
    prefetch_algorithm: str = Prefetcher.NONE
    n_markov_rows: int = 0

@dataclass
class SimConfig:
    l1_config: CacheConfig = field(default_factory=CacheConfig)
    l2_config: CacheConfig = field(default_factory=lambda: CacheConfig(
        c=15, b=6, s=3,
        replace_policy=InsertPolicy.LIP,
        write_strat=WriteStrategy.WTWNA,
    ))

def default_config() -> SimConfig:
    return SimConfig()

def parse_insert_policy(name: str) -> str:
    if name in ("mip", "MIP"):
        return InsertPolicy.MIP
    if name in ("lip", "LIP"):
        return InsertPolicy.LIP
    raise ConfigError(f"Unknown cache insertion/replacement policy '{name}'")

def parse_prefetcher(name: str) -> str:
    for algo in Prefetcher.ALL:
        if name in (algo, algo.upper()):
            return algo
    raise ConfigError(f"Unknown cache prefetcher algorithm '{name}'")

def validate_config(config: SimConfig):
    l1, l2 = config.l1_config, config.l2_config
    if not (MIN_BLOCK_BITS <= l1.b <= MAX_BLOCK_BITS):
        raise ConfigError(f"L1 block size exponent must be in [{MIN_BLOCK_BITS},{MAX_BLOCK_BITS}]. Got {l1.b}")
    if not (MIN_BLOCK_BITS <= l2.b <= MAX_BLOCK_BITS):
        raise ConfigError(f"L2 block size exponent must be in [{MIN_BLOCK_BITS},{MAX_BLOCK_BITS}]. Got {l2.b}")
    if not l2.disabled and not l2.c > l1.c:
        raise ConfigError(f"L1 size must be strictly less than L2 size. Got C1={l1.c} C2={l2.c}")
    if not l2.disabled and not l2.s >= l1.s:
        raise ConfigError(f"L1 associativity must be less than or equal to L2 associativity. Got S1={l1.s} S2={l2.s}")
    if l2.prefetch_algorithm in Prefetcher.TABLE_BASED:
        if l2.n_markov_rows <= 0:
            raise ConfigError(f"Markov rows must be > 0 for Markov/Hybrid. Got {l2.n_markov_rows}")
    elif l2.n_markov_rows != 0:
        raise ConfigError("Number of Markov rows should be 0 if not using the Markov or Hybrid prefetching algorithms")
    if l1.write_strat != WriteStrategy.WBWA or l2.write_strat != WriteStrategy.WTWNA:
        raise ConfigError("L1 must be write-back/write-allocate and L2 write-through/write-no-allocate")
    if l2.replace_policy not in (InsertPolicy.MIP, InsertPolicy.LIP):
        raise ConfigError(f"Unknown cache insertion/replacement policy '{l2.replace_policy}'")
    if l2.prefetch_algorithm not in Prefetcher.ALL:
        raise ConfigError(f"Unknown cache prefetcher algorithm '{l2.prefetch_algorithm}'")
    for name, cfg in (("L1", l1), ("L2", l2)):
        if cfg.c - cfg.b - cfg.s < 0 and not (name == "L2" and cfg.disabled):
            raise ConfigError(f"{name} needs C >= B + S. Got (C,B,S)=({cfg.c},{cfg.b},{cfg.s})")

# ---------------- Statistics ----------------
@dataclass
class SimStats:
    # Overall
    reads: int = 0
    writes: int = 0
    # L1
    accesses_l1: int = 0
    hits_l1: int = 0
    misses_l1: int = 0
    hit_ratio_l1: float = 0.0
    miss_ratio_l1: float = 0.0
    avg_access_time_l1: float = 0.0
    write_backs_l1: int = 0
    # L2
    reads_l2: int = 0
    writes_l2: int = 0
    read_hits_l2: int = 0
    read_misses_l2: int = 0
    read_hit_ratio_l2: float = 0.0
    read_miss_ratio_l2: float = 0.0
    avg_access_time_l2: float = 0.0
    # Prefetch
    prefetches_issued_l2: int = 0
    prefetch_hits_l2: int = 0
    prefetch_misses_l2: int = 0

    def as_dict(self):
        return asdict(self)

# ---------------- Geometry ----------------
@dataclass(frozen=True)
class Geometry:
    block_bits: int
    index_bits: int
    assoc_bits: int

    @classmethod
    def from_config(cls, cfg: CacheConfig) -> "Geometry":
        return cls(block_bits=cfg.b, index_bits=cfg.c - cfg.b - cfg.s, assoc_bits=cfg.s)

    @property
    def associativity(self) -> int:
        return 1 << self.assoc_bits

    @property
    def set_count(self) -> int:
        return 1 << self.index_bits

    @property
    def block_size(self) -> int:
        return 1 << self.block_bits

    def decompose(self, address: int) -> Tuple[int, int, int]:
        """Return (tag, set_index, offset) for a byte address."""
        offset = address & (self.block_size - 1)
        index = (address >> self.block_bits) & (self.set_count - 1)
        tag = address >> (self.block_bits + self.index_bits)
        return tag, index, offset

    def address_of(self, tag: int, index: int) -> int:
        return (tag << (self.block_bits + self.index_bits)) | (index << self.block_bits)

# ---------------- Block store ----------------
@dataclass
class CacheLine:
    tag: int = 0
    valid: bool = False
    dirty: bool = False
    prefetched: bool = False
    order_key: int = 0

class RecencyClock:
    """
    Hands out order keys. Smaller key = closer to eviction.
    With lip=False every insert is an MRU insert; with lip=True inserts get
    keys from a separate counter running down below `base`, so an inserted
    but never touched line always loses against a touched one.
    """

    def __init__(self, base: int = 0, lip: bool = False):
        self.base = base
        self.lip = lip
        self.mru_counter = 0
        self.lip_counter = 0

    def touch(self, line: CacheLine):
        self.mru_counter += 1
        line.order_key = self.base + self.mru_counter

    def insert(self, line: CacheLine):
        if not self.lip:
            self.touch(line)
            return
        line.order_key = self.base - 1 - self.lip_counter
        self.lip_counter += 1

class CacheLevel:
    def __init__(self, name: str, geometry: Geometry, clock: RecencyClock):
        self.name = name
        self.geometry = geometry
        self.clock = clock
        self.sets: List[List[CacheLine]] = [
            [CacheLine() for _ in range(geometry.associativity)]
            for _ in range(geometry.set_count)
        ]

    def find(self, address: int) -> Optional[int]:
        """Way holding `address` in its set, or None."""
        tag, idx, _ = self.geometry.decompose(address)
        for way, line in enumerate(self.sets[idx]):
            if line.valid and line.tag == tag:
                return way
        return None

    def contains(self, address: int) -> bool:
        return self.find(address) is not None

    def line_for(self, address: int) -> Optional[CacheLine]:
        way = self.find(address)
        if way is None:
            return None
        _, idx, _ = self.geometry.decompose(address)
        return self.sets[idx][way]

    def pick_victim(self, index: int) -> int:
        """First invalid way, else the smallest order key (lowest way wins ties)."""
        cset = self.sets[index]
        for way, line in enumerate(cset):
            if not line.valid:
                return way
        victim = 0
        for way in range(1, len(cset)):
            if cset[way].order_key < cset[victim].order_key:
                victim = way
        return victim

    def touch(self, line: CacheLine):
        self.clock.touch(line)

    def insert(self, line: CacheLine):
        self.clock.insert(line)

    def valid_lines(self, index: int) -> List[CacheLine]:
        return [line for line in self.sets[index] if line.valid]

# ---------------- Simulator session ----------------
class CacheSimulator:
    def __init__(self, config: SimConfig):
        validate_config(config)
        self.config = config
        l1_cfg, l2_cfg = config.l1_config, config.l2_config

        self.l1 = CacheLevel("L1", Geometry.from_config(l1_cfg), RecencyClock())
        self.l2_disabled = l2_cfg.disabled
        self.l2: Optional[CacheLevel] = None
        if not self.l2_disabled:
            self.l2 = CacheLevel(
                "L2", Geometry.from_config(l2_cfg),
                RecencyClock(base=MRU_BASE, lip=l2_cfg.replace_policy == InsertPolicy.LIP),
            )
        self.l2_block_bits = l2_cfg.b
        self.prefetch_algorithm = l2_cfg.prefetch_algorithm
        self.markov: Optional[MarkovTable] = None
        if self.prefetch_algorithm in Prefetcher.TABLE_BASED:
            self.markov = MarkovTable(l2_cfg.n_markov_rows)

        logging.debug(f"L1 geometry {self.l1.geometry}, L2 "
                      f"{'disabled' if self.l2_disabled else self.l2.geometry}, prefetch {self.prefetch_algorithm}")

    # ----- prefetch engine -----
    def _resident(self, block_addr: int) -> bool:
        address = block_addr << self.l2_block_bits
        return self.l1.contains(address) or self.l2.contains(address)

    def _prefetch_install(self, block_addr: int, stats: SimStats) -> bool:
        """Install `block_addr` into L2 as a prefetched line. True if it was installed."""
        if self._resident(block_addr):
            return False
        tag, idx, _ = self.l2.geometry.decompose(block_addr << self.l2_block_bits)
        victim = self.l2.sets[idx][self.l2.pick_victim(idx)]
        if victim.valid and victim.prefetched:
            stats.prefetch_misses_l2 += 1
        victim.tag = tag
        victim.valid = True
        victim.dirty = False
        victim.prefetched = True
        self.l2.insert(victim)
        stats.prefetches_issued_l2 += 1
        logging.debug(f"Prefetched block {hex(block_addr)} into {self.l2.name} set {idx}")
        return True

    def _markov_prefetch(self, block_addr: int, stats: SimStats):
        predicted = self.markov.predict(block_addr)
        if predicted is not None and predicted != block_addr:
            self._prefetch_install(predicted, stats)

    def _prefetch(self, block_addr: int, stats: SimStats):
        algo = self.prefetch_algorithm
        if algo == Prefetcher.PLUS_ONE:
            self._prefetch_install(block_addr + 1, stats)
        elif algo == Prefetcher.MARKOV:
            self._markov_prefetch(block_addr, stats)
            self.markov.update(block_addr)
        elif algo == Prefetcher.HYBRID:
            if self.markov.has_row(block_addr):
                self._markov_prefetch(block_addr, stats)
            else:
                self._prefetch_install(block_addr + 1, stats)
            self.markov.update(block_addr)

    # ----- L2 -----
    def _read_l2(self, address: int, stats: SimStats) -> bool:
        """Demand read of `address` from L2. Returns hit?"""
        stats.reads_l2 += 1
        if self.l2_disabled:
            stats.read_misses_l2 += 1
            return False

        line = self.l2.line_for(address)
        if line is not None:
            stats.read_hits_l2 += 1
            if line.prefetched:
                stats.prefetch_hits_l2 += 1
                line.prefetched = False
            self.l2.touch(line)
            return True

        stats.read_misses_l2 += 1
        tag, idx, _ = self.l2.geometry.decompose(address)
        victim = self.l2.sets[idx][self.l2.pick_victim(idx)]
        if victim.valid and victim.prefetched:
            stats.prefetch_misses_l2 += 1
        victim.tag = tag
        victim.valid = True
        victim.dirty = False
        victim.prefetched = False
        self.l2.insert(victim)
        return False

    def _write_l2(self, address: int, stats: SimStats):
        """Write-through, no write-allocate: refresh the line if present, never install."""
        stats.writes_l2 += 1
        if self.l2_disabled:
            return
        line = self.l2.line_for(address)
        if line is not None:
            self.l2.touch(line)
        else:
            logging.debug(f"{self.l2.name} write to {hex(address)} not resident, not allocating")

    # ----- session API -----
    def step(self, op: str, address: int, stats: SimStats):
        """Perform one memory reference and update `stats` in place."""
        if op not in (READ, WRITE):
            raise ValueError(f"Unknown operation {op!r}")
        is_write = op == WRITE

        stats.accesses_l1 += 1
        if is_write:
            stats.writes += 1
        else:
            stats.reads += 1

        l1_tag, l1_idx, _ = self.l1.geometry.decompose(address)
        l1_set = self.l1.sets[l1_idx]
        way = self.l1.find(address)
        if way is not None:
            stats.hits_l1 += 1
            line = l1_set[way]
            if is_write:
                line.dirty = True
            self.l1.touch(line)
            return

        # L1 miss: remember what the victim held before it is overwritten
        stats.misses_l1 += 1
        victim = l1_set[self.l1.pick_victim(l1_idx)]
        victim_valid, victim_dirty, victim_tag = victim.valid, victim.dirty, victim.tag

        l2_hit = self._read_l2(address, stats)
        if not self.l2_disabled and not l2_hit:
            self._prefetch(address >> self.l2_block_bits, stats)

        victim.tag = l1_tag
        victim.valid = True
        victim.dirty = is_write
        victim.prefetched = False
        self.l1.insert(victim)

        if victim_valid and victim_dirty:
            stats.write_backs_l1 += 1
            evicted_address = self.l1.geometry.address_of(victim_tag, l1_idx)
            logging.debug(f"{self.l1.name} write-back of {hex(evicted_address)}")
            self._write_l2(evicted_address, stats)

    def finish(self, stats: SimStats):
        """Derive ratios and average access times in place. Call once."""
        if stats.accesses_l1 > 0:
            stats.hit_ratio_l1 = stats.hits_l1 / stats.accesses_l1
            stats.miss_ratio_l1 = stats.misses_l1 / stats.accesses_l1

        l1_ht = hit_time(L1_HIT_TIME_CONST, L1_HIT_TIME_PER_S, self.l1.geometry.assoc_bits)
        dram = dram_time(self.l1.geometry.block_bits)

        if self.l2_disabled:
            stats.avg_access_time_l2 = dram
            stats.read_hit_ratio_l2 = 0.0
            stats.read_miss_ratio_l2 = 1.0
        else:
            if stats.reads_l2 > 0:
                stats.read_hit_ratio_l2 = stats.read_hits_l2 / stats.reads_l2
                stats.read_miss_ratio_l2 = stats.read_misses_l2 / stats.reads_l2
            l2_ht = hit_time(L2_HIT_TIME_CONST, L2_HIT_TIME_PER_S, self.l2.geometry.assoc_bits)
            # every L2 reference pays its hit time, misses add the DRAM time on top
            stats.avg_access_time_l2 = l2_ht + stats.read_miss_ratio_l2 * dram

        stats.avg_access_time_l1 = l1_ht + stats.miss_ratio_l1 * stats.avg_access_time_l2

    def run(self, events: Iterable[Tuple[str, int]], stats: Optional[SimStats] = None) -> SimStats:
        stats = stats if stats is not None else SimStats()
        for op, address in events:
            self.step(op, address, stats)
        self.finish(stats)
        return stats

def setup(config: SimConfig) -> CacheSimulator:
    return CacheSimulator(config)

def hit_time(const: float, per_s: float, s: int) -> float:
    return const + per_s * s

def dram_time(block_bits: int) -> float:
    return DRAM_AT + ((1 << block_bits) / WORD_SIZE) * DRAM_AT_PER_WORD
