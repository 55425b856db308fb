"""
Row partitions of distributed matrices and vectors.

A distributed object stores a contiguous block of global rows on every
process. Rank ``r`` owns rows ``[offsets[r], offsets[r] + row_counts[r])``;
blocks may have different sizes.
"""

from typing import List, Tuple
from dataclasses import dataclass

from .comm import all_gather_sizes, get_rank
from .check import ContractViolation, check_positive


@dataclass(frozen=True)
class RowPartition:
    """Layout of the global rows over the process group"""
    rank: int
    row_counts: Tuple[int, ...]   # Local row count of every rank

    @property
    def world_size(self) -> int:
        return len(self.row_counts)

    @property
    def offsets(self) -> Tuple[int, ...]:
        """First global row of every rank"""
        offsets, start = [], 0
        for n in self.row_counts:
            offsets.append(start)
            start += n
        return tuple(offsets)

    @property
    def num_local(self) -> int:
        return self.row_counts[self.rank]

    @property
    def num_global(self) -> int:
        return sum(self.row_counts)

    @property
    def offset(self) -> int:
        return self.offsets[self.rank]

    @property
    def local_slice(self) -> slice:
        """Global rows owned by this rank"""
        return slice(self.offset, self.offset + self.num_local)

    def rows_of(self, rank: int) -> slice:
        start = self.offsets[rank]
        return slice(start, start + self.row_counts[rank])

    @classmethod
    def gather(cls, num_local: int, group=None) -> "RowPartition":
        """
        Build the partition from every rank's local row count (collective).
        """
        counts = [c[0] for c in all_gather_sizes([num_local], group)]
        return cls(rank=get_rank(group), row_counts=tuple(counts))

    @classmethod
    def for_rank(cls, num_rows: int, rank: int, world_size: int) -> "RowPartition":
        """Partition ``num_rows`` with :func:`partition_simple` without communication."""
        return cls(rank=rank, row_counts=tuple(partition_simple(num_rows, world_size)))


def partition_simple(num_rows: int, num_parts: int) -> List[int]:
    """
    Simple 1D block partition of ``num_rows`` rows into ``num_parts`` parts.

    The first ``num_rows % num_parts`` parts get one extra row.

    Returns
    -------
    row_counts : List[int]
        Number of rows of every part
    """
    check_positive("num_parts", num_parts)
    check_positive("num_rows", num_rows)
    if num_rows < num_parts:
        raise ContractViolation(
            f"cannot split {num_rows} rows into {num_parts} non-empty parts")
    base, extra = divmod(num_rows, num_parts)
    return [base + (1 if p < extra else 0) for p in range(num_parts)]
