import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional

ENTRIES_PER_ROW = 4

# ---------------- Markov table ----------------
@dataclass
class MarkovEntry:
    next_block: int
    count: int = 1


class MarkovTable:
    """
    Bounded table of observed block transitions: block -> up to 4 successors.
    Rows are kept in an OrderedDict whose order is the row recency
    (first = least recently touched, last = most recently touched).
    """

    def __init__(self, n_rows: int, entries_per_row: int = ENTRIES_PER_ROW):
        self.n_rows = n_rows
        self.entries_per_row = entries_per_row
        self.table: "OrderedDict[int, List[MarkovEntry]]" = OrderedDict()
        self.prev_block: Optional[int] = None

    def __len__(self):
        return len(self.table)

    def has_row(self, block: int) -> bool:
        return bool(self.table.get(block))

    def rows(self) -> Dict[int, List[MarkovEntry]]:
        return {blk: list(entries) for blk, entries in self.table.items()}

    def predict(self, block: int) -> Optional[int]:
        """Most frequent successor of `block`; ties go to the higher block address."""
        entries = self.table.get(block)
        if not entries:
            return None
        best = max(entries, key=lambda e: (e.count, e.next_block))
        return best.next_block

    def _touch(self, block: int):
        self.table.move_to_end(block, last=True)

    def update(self, block: int):
        """Record the transition from the previously seen block to `block`."""
        if self.prev_block is None:
            self.prev_block = block
            return

        src = self.prev_block
        entries = self.table.get(src)
        if entries is not None:
            for entry in entries:
                if entry.next_block == block:
                    entry.count += 1
                    break
            else:
                if len(entries) < self.entries_per_row:
                    entries.append(MarkovEntry(block))
                else:
                    # least frequent goes; ties evict the lower block address
                    victim = min(range(len(entries)), key=lambda i: (entries[i].count, entries[i].next_block))
                    entries[victim] = MarkovEntry(block)
            self._touch(src)
        else:
            if len(self.table) >= self.n_rows:
                lru_block, _ = self.table.popitem(last=False)
                logging.debug(f"Markov table full, evicting row for block {hex(lru_block)}")
            self.table[src] = [MarkovEntry(block)]

        self.prev_block = block

        # the current block's own row counts as touched as well
        if block in self.table:
            self._touch(block)
