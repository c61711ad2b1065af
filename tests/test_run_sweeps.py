import os
import tempfile
import unittest

import pandas as pd

import run_sweeps


class TestSweeps(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmpdir.cleanup()

    def sweep(self, *argv):
        args = run_sweeps.parse_args(list(argv) + ["--outdir", self.tmpdir.name, "--n", "2000"])
        summary = run_sweeps.run_sweep(args)
        df = pd.read_csv(os.path.join(self.tmpdir.name, "results.csv"))
        return df, summary

    def test_prefetch_sweep(self):
        df, summary = self.sweep("prefetch", "--rows", "32")
        self.assertEqual(list(df["prefetch"]), ["none", "plus1", "markov", "hybrid"])
        self.assertEqual(list(df["markov_rows"]), [0, 0, 32, 32])
        self.assertEqual(df["prefetches_issued_l2"].iloc[0], 0)
        self.assertTrue((df["accesses_l1"] == 2000).all())
        self.assertEqual(df["delta_aat_vs_base"].iloc[0], 0.0)
        with open(summary) as f:
            self.assertIn("KPI deltas vs baseline", f.read())

    def test_assoc_sweep(self):
        df, _ = self.sweep("assoc", "--l1_assoc", "0,1,2")
        self.assertEqual(list(df["l1_cbs"]), ["10,6,0", "10,6,1", "10,6,2"])

    def test_policy_sweep_on_trace_file(self):
        trace_path = os.path.join(self.tmpdir.name, "t.trace")
        with open(trace_path, "w") as f:
            for i in range(300):
                f.write(f"R 0x{(i * 64) % 65536:x}\n")
        df, _ = self.sweep("policies", "--trace", trace_path)
        self.assertEqual(list(df["l2_policy"]), ["MIP", "LIP"])
        self.assertTrue((df["accesses_l1"] == 300).all())

    def test_empty_address_space_rejected(self):
        for kb in ("0", "-4"):
            with self.assertRaises(SystemExit) as cm:
                run_sweeps.parse_args(["prefetch", "--address_space_kb", kb])
            self.assertEqual(cm.exception.code, 2)

    def test_single_run_has_no_summary(self):
        df, summary = self.sweep("l2size", "--l2_size", "14")
        self.assertEqual(len(df), 1)
        self.assertIsNone(summary)


if __name__ == "__main__":
    unittest.main()
