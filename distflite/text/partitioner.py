"""Word-balanced input partitioning.

Responsibilities:
- Split input text into at most `n` ordered chunks of whole words.
- Keep chunk sizes balanced by a fixed per-chunk word ceiling.
"""

from __future__ import annotations

import math

from loguru import logger

from ..errors import ValidationError
from ..models.datatypes import Chunk


class WordPartitioner:
    """Split text into contiguous word chunks for distributed subtasks."""

    def partition(self, text: str, n: int) -> list[Chunk]:
        """Split `text` into at most `n` chunks of whole words.

        Args:
            text: Raw input text; any whitespace separates words.
            n: Requested number of partitions.

        Returns:
            Ordered chunks whose words concatenate back to the input word sequence.

        Raises:
            ValidationError: If `n` is below 1 or exceeds the input word count.
        """

        if n < 1:
            raise ValidationError(f"number of partitions must be at least 1, got {n}")

        words = text.split()
        word_count = len(words)
        if word_count < n:
            raise ValidationError(
                f"cannot split input of {word_count} words into {n} subtasks"
            )

        logger.info("Input text has {} words", word_count)
        words_per_chunk = math.ceil(word_count / n)
        logger.info("Each chunk will have max {} words", words_per_chunk)

        chunks: list[Chunk] = []
        buffer: list[str] = []
        for word in words:
            buffer.append(word)
            if len(buffer) == words_per_chunk:
                chunks.append(Chunk(index=len(chunks), text=" ".join(buffer)))
                buffer = []
        if buffer:
            chunks.append(Chunk(index=len(chunks), text=" ".join(buffer)))

        for chunk in chunks:
            logger.info("Chunk {} has {} words", chunk.index, chunk.word_count)
        return chunks


def partition(text: str, n: int) -> list[Chunk]:
    """Split `text` into at most `n` word-balanced chunks."""

    return WordPartitioner().partition(text, n)
