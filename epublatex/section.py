"""Section numbers of a document."""

from __future__ import annotations


class SecNo(list):
    """A section number: ``SecNo([1, 2])`` is section 1.2, ``SecNo([1])`` chapter 1."""

    def __str__(self) -> str:
        return ".".join(str(k) for k in self)

    def inc(self, level: int) -> None:
        """Increase the number at ``level`` (1 for chapters, 2 for sections, ...)."""
        if level < 1:
            raise ValueError(f"invalid section level {level}")
        if len(self) > level:
            del self[level:]
        else:
            self.extend([0] * (level - len(self)))
        self[level - 1] += 1