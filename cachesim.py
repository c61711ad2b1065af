#!/usr/bin/env python3
import argparse
import json
import logging
import sys

from simulator import (CacheSimulator, ConfigError, SimStats, default_config,
                       parse_insert_policy, parse_prefetcher)
from traces import read_trace

PREFETCH_NAMES = {"none": "None", "plus1": "+1", "markov": "Markov", "hybrid": "Hybrid"}

def parse_args(argv=None):
    p = argparse.ArgumentParser(prog="cachesim", description="Two-level cache simulator with L2 prefetching",
                                epilog="cachesim [OPTIONS] < traces/file.trace")
    l1 = p.add_argument_group("L1 parameters")
    l1.add_argument("-c", dest="c1", type=int, help="Total size for L1 in bytes is 2^C1")
    l1.add_argument("-b", dest="b", type=int, help="Size of each block in bytes is 2^B (both levels)")
    l1.add_argument("-s", dest="s1", type=int, help="Number of blocks per set for L1 is 2^S1")
    l2 = p.add_argument_group("L2 parameters")
    l2.add_argument("-C", dest="c2", type=int, help="Total size in bytes for L2 is 2^C2")
    l2.add_argument("-S", dest="s2", type=int, help="Number of blocks per set for L2 is 2^S2")
    l2.add_argument("-P", dest="policy", help="Insertion policy for L2 (mip, lip)")
    l2.add_argument("-D", dest="disable_l2", action="store_true", help="Disable L2 cache")
    pf = p.add_argument_group("L2 prefetching parameters")
    pf.add_argument("-F", dest="prefetch", help="Prefetching policy to use for L2 (none, plus1, markov, hybrid)")
    pf.add_argument("-r", dest="rows", type=int, help="Number of rows in Markov prefetching table (for markov, hybrid policies)")
    p.add_argument("--json", dest="json_path", help="Also write the statistics as JSON to this path")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    p.add_argument("trace", nargs="?", help="Trace file (default: stdin)")
    return p.parse_args(argv)

def build_config(args):
    config = default_config()
    l1, l2 = config.l1_config, config.l2_config
    if args.c1 is not None:
        l1.c = args.c1
    if args.b is not None:
        l1.b = l2.b = args.b
    if args.s1 is not None:
        l1.s = args.s1
    if args.c2 is not None:
        l2.c = args.c2
    if args.s2 is not None:
        l2.s = args.s2
    if args.policy is not None:
        l2.replace_policy = parse_insert_policy(args.policy)
    if args.prefetch is not None:
        l2.prefetch_algorithm = parse_prefetcher(args.prefetch)
    if args.rows is not None:
        l2.n_markov_rows = args.rows
    if args.disable_l2:
        l2.disabled = True
    return config

def print_cache_config(cfg, name):
    if cfg.disabled:
        print(f"{name} disabled")
        return
    line = f"{name} (C,B,S): ({cfg.c},{cfg.b},{cfg.s}). Replace policy: {cfg.replace_policy}"
    if name == "L2":
        line += (f". Prefetch algo: {PREFETCH_NAMES[cfg.prefetch_algorithm]}."
                 f" Prefetch row count: {cfg.n_markov_rows}")
    print(line)

def print_statistics(stats: SimStats):
    print("Cache Statistics")
    print("----------------")
    print(f"Reads: {stats.reads}")
    print(f"Writes: {stats.writes}")
    print()
    print(f"L1 accesses: {stats.accesses_l1}")
    print(f"L1 hits: {stats.hits_l1}")
    print(f"L1 misses: {stats.misses_l1}")
    print(f"L1 hit ratio: {stats.hit_ratio_l1:.3f}")
    print(f"L1 miss ratio: {stats.miss_ratio_l1:.3f}")
    print(f"L1 average access time (AAT): {stats.avg_access_time_l1:.3f}")
    print(f"Write-backs from L1: {stats.write_backs_l1}")
    print()
    print(f"L2 reads: {stats.reads_l2}")
    print(f"L2 writes: {stats.writes_l2}")
    print(f"L2 read hits: {stats.read_hits_l2}")
    print(f"L2 read misses: {stats.read_misses_l2}")
    print(f"L2 read hit ratio: {stats.read_hit_ratio_l2:.3f}")
    print(f"L2 read miss ratio: {stats.read_miss_ratio_l2:.3f}")
    print(f"L2 average access time (AAT): {stats.avg_access_time_l2:.3f}")
    print()
    print(f"L2 prefetches issued: {stats.prefetches_issued_l2}")
    print(f"L2 prefetch hits: {stats.prefetch_hits_l2}")
    print(f"L2 prefetch misses: {stats.prefetch_misses_l2}")

def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(levelname)s: %(message)s')

    try:
        config = build_config(args)
        print("Cache Settings")
        print("--------------")
        print_cache_config(config.l1_config, "L1")
        print_cache_config(config.l2_config, "L2")
        print()
        sim = CacheSimulator(config)
    except ConfigError as e:
        logging.error(f"Invalid configuration! {e}")
        sys.exit(1)

    if args.trace:
        try:
            with open(args.trace, "r") as f:
                stats = sim.run(read_trace(f))
        except FileNotFoundError:
            logging.error(f"Trace file {args.trace} not found.")
            sys.exit(1)
    else:
        stats = sim.run(read_trace(sys.stdin))

    print_statistics(stats)

    if args.json_path:
        with open(args.json_path, "w") as f:
            json.dump(stats.as_dict(), f, indent=2)

if __name__ == "__main__":
    main()
