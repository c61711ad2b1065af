#!/usr/bin/env python3
"""
Convenience sweeps + KPI summary.
Examples:
  python run_sweeps.py prefetch --trace traces/gcc.trace --rows 64
  python run_sweeps.py policies
  python run_sweeps.py assoc --l1_assoc "0,1,2,3"
  python run_sweeps.py l2size --l2_size "12,14,16"
"""
import argparse
import copy
import csv
import json
import logging
import os
import sys
import time
from dataclasses import asdict

import pandas as pd

from simulator import (CacheSimulator, ConfigError, InsertPolicy, Prefetcher, default_config,
                       parse_insert_policy)
from traces import generate_synthetic_trace, read_trace

def parse_args(argv=None):
    p = argparse.ArgumentParser()
    p.add_argument("mode", choices=["policies", "prefetch", "assoc", "l2size"], help="Sweep dimension")
    p.add_argument("--outdir", default="outputs")
    p.add_argument("--trace", default=None, help="Trace file; a synthetic workload is used when omitted")
    # Base config
    p.add_argument("--l1_size", type=int, default=10)
    p.add_argument("--l2_size", type=str, default="15")
    p.add_argument("--block", type=int, default=6)
    p.add_argument("--l1_assoc", type=str, default="1")
    p.add_argument("--l2_assoc", type=int, default=3)
    p.add_argument("--l2_policy", default="lip")
    p.add_argument("--rows", type=int, default=64, help="Markov table rows for markov/hybrid runs")
    # Synthetic workload
    p.add_argument("--n", type=int, default=10000)
    p.add_argument("--address_space_kb", type=int, default=1024)
    p.add_argument("--seq_frac", type=float, default=0.5)
    p.add_argument("--hot_frac", type=float, default=0.3)
    p.add_argument("--write_ratio", type=float, default=0.1)
    p.add_argument("--seed", type=int, default=42)
    args = p.parse_args(argv)
    if args.address_space_kb < 1:
        p.error(f"--address_space_kb must be at least 1. Got {args.address_space_kb}")
    return args

def to_int_list(s):
    return [int(tok.strip()) for tok in s.split(",") if tok.strip()]

def load_events(args):
    if args.trace:
        with open(args.trace, "r") as f:
            return list(read_trace(f))
    return generate_synthetic_trace(args.n, args.address_space_kb, 1 << args.block, args.seq_frac,
                                    args.hot_frac, args.write_ratio, args.seed)

def base_config(args):
    config = default_config()
    l1, l2 = config.l1_config, config.l2_config
    l1.c, l1.b, l1.s = args.l1_size, args.block, to_int_list(args.l1_assoc)[0]
    l2.c, l2.b, l2.s = to_int_list(args.l2_size)[0], args.block, args.l2_assoc
    l2.replace_policy = parse_insert_policy(args.l2_policy)
    return config

def with_prefetcher(config, algo, rows):
    config.l2_config.prefetch_algorithm = algo
    config.l2_config.n_markov_rows = rows if algo in Prefetcher.TABLE_BASED else 0
    return config

def sweep_configs(args):
    """Yield (run_id, SimConfig) for the selected sweep dimension."""
    base = base_config(args)
    stamp = int(time.time())
    if args.mode == "policies":
        for pol in [InsertPolicy.MIP, InsertPolicy.LIP]:
            config = copy.deepcopy(base)
            config.l2_config.replace_policy = pol
            yield f"pol_{pol}_{stamp}", config
    elif args.mode == "prefetch":
        for algo in Prefetcher.ALL:
            yield f"pf_{algo}_{stamp}", with_prefetcher(copy.deepcopy(base), algo, args.rows)
    elif args.mode == "assoc":
        for s1 in to_int_list(args.l1_assoc):
            config = copy.deepcopy(base)
            config.l1_config.s = s1
            yield f"assoc_{s1}_{stamp}", config
    elif args.mode == "l2size":
        for c2 in to_int_list(args.l2_size):
            config = copy.deepcopy(base)
            config.l2_config.c = c2
            yield f"l2size_{c2}_{stamp}", config

def result_row(run_id, config, stats):
    l1, l2 = config.l1_config, config.l2_config
    row = {
        "run_id": run_id,
        "l1_cbs": f"{l1.c},{l1.b},{l1.s}",
        "l2_cbs": "disabled" if l2.disabled else f"{l2.c},{l2.b},{l2.s}",
        "l2_policy": l2.replace_policy,
        "prefetch": l2.prefetch_algorithm,
        "markov_rows": l2.n_markov_rows,
    }
    row.update(stats.as_dict())
    row["config_json"] = json.dumps(asdict(config))
    return row

def write_summary(results_csv, outdir):
    """KPI deltas vs the first run as baseline."""
    df = pd.read_csv(results_csv)
    if len(df) < 2:
        return None
    base = df.iloc[0]
    df["delta_aat_vs_base"] = df["avg_access_time_l1"].astype(float) - float(base["avg_access_time_l1"])
    df["delta_l2_miss_ratio_vs_base"] = df["read_miss_ratio_l2"].astype(float) - float(base["read_miss_ratio_l2"])
    df.to_csv(results_csv, index=False)
    lines = ["KPI deltas vs baseline: " + str(base["run_id"])]
    for _, r in df.iterrows():
        lines.append(f"- {r['run_id']}: dAAT={r['delta_aat_vs_base']:.3f}, "
                     f"dL2MR={r['delta_l2_miss_ratio_vs_base']:.3f}, prefetches={r['prefetches_issued_l2']}")
    path = os.path.join(outdir, "summary.txt")
    with open(path, "w") as f:
        f.write("\n".join(lines))
    return path

def run_sweep(args):
    os.makedirs(args.outdir, exist_ok=True)
    results_csv = os.path.join(args.outdir, "results.csv")
    events = load_events(args)
    with open(results_csv, "w", newline="") as rf:
        writer = None
        for run_id, config in sweep_configs(args):
            stats = CacheSimulator(config).run(events)
            row = result_row(run_id, config, stats)
            if writer is None:
                writer = csv.DictWriter(rf, fieldnames=list(row.keys()))
                writer.writeheader()
            writer.writerow(row)
            logging.info(f"{run_id}: AAT={stats.avg_access_time_l1:.3f}")
    return write_summary(results_csv, args.outdir)

def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
    try:
        run_sweep(args)
    except ConfigError as e:
        logging.error(f"Invalid configuration! {e}")
        sys.exit(1)
    except FileNotFoundError as e:
        logging.error(f"Trace file {e.filename} not found.")
        sys.exit(1)

if __name__ == "__main__":
    main()
