import io
import unittest

from traces import generate_synthetic_trace, parse_line, read_trace


class TestTraceParsing(unittest.TestCase):

    def test_parse_valid_lines(self):
        self.assertEqual(parse_line("R 0x7fff5a8487c0\n"), ("R", 0x7fff5a8487c0))
        self.assertEqual(parse_line("W 0x10"), ("W", 0x10))
        self.assertEqual(parse_line("  R   0XAbC  "), ("R", 0xABC))
        self.assertEqual(parse_line("W 0x" + "f" * 16), ("W", (1 << 64) - 1))

    def test_parse_malformed_lines(self):
        for line in ("", "\n", "R", "R 0x", "X 0x10", "R 10", "R 0xzz", "R 0x10 extra", "r 0x10",
                     "R 0x1_0", "W 0x_10", "R 0x" + "f" * 17, "R 0x" + "f" * 40):
            self.assertIsNone(parse_line(line), line)

    def test_read_trace_skips_malformed(self):
        f = io.StringIO("R 0x0\ngarbage\n\nW 0x40\nR 0xnothex\n")
        self.assertEqual(list(read_trace(f)), [("R", 0), ("W", 0x40)])


class TestSyntheticTrace(unittest.TestCase):

    def test_length_and_determinism(self):
        a = generate_synthetic_trace(500, 64, 64, 0.5, 0.3, 0.2, seed=3)
        b = generate_synthetic_trace(500, 64, 64, 0.5, 0.3, 0.2, seed=3)
        self.assertEqual(len(a), 500)
        self.assertEqual(a, b)

    def test_events_are_block_aligned_and_in_range(self):
        trace = generate_synthetic_trace(1000, 32, 64, 0.4, 0.4, 0.5, seed=1)
        for op, addr in trace:
            self.assertIn(op, ("R", "W"))
            self.assertEqual(addr % 64, 0)
            self.assertLess(addr, 32 * 1024)

    def test_write_ratio_extremes(self):
        reads = generate_synthetic_trace(200, 64, 64, 0.5, 0.3, 0.0)
        writes = generate_synthetic_trace(200, 64, 64, 0.5, 0.3, 1.0)
        self.assertTrue(all(op == "R" for op, _ in reads))
        self.assertTrue(all(op == "W" for op, _ in writes))


if __name__ == "__main__":
    unittest.main()
