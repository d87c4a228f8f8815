"""
Централизованный RNG для игр Duna Casino.
По умолчанию secrets.SystemRandom (crypto-safe); в тестах подставляется свой источник.
"""

import secrets
from typing import Any, List, MutableSequence, Optional, Sequence


class GameRandom:
    """Обёртка над источником случайности для игровой логики."""

    def __init__(self, source: Optional[Any] = None):
        """
        Args:
            source: объект с методами random() и randint(a, b)
                    (random.Random, SystemRandom или тестовый сценарий)
        """
        self._source = source or secrets.SystemRandom()

    def random(self) -> float:
        """Случайное float в [0.0, 1.0)."""
        return self._source.random()

    def randint(self, a: int, b: int) -> int:
        """Случайное int в [a, b] включительно."""
        return self._source.randint(a, b)

    def choice(self, seq: Sequence):
        """Случайный элемент непустой последовательности."""
        return seq[int(self.random() * len(seq))]

    def shuffle(self, seq: MutableSequence) -> None:
        """
        Перемешать последовательность на месте (Fisher–Yates).
        Равномерно по перестановкам, если random() равномерен на [0, 1).
        """
        for i in range(len(seq) - 1, 0, -1):
            j = int(self.random() * (i + 1))
            seq[i], seq[j] = seq[j], seq[i]

    def shuffled(self, items: Sequence) -> List:
        """Перемешанная копия последовательности."""
        out = list(items)
        self.shuffle(out)
        return out


# Один общий генератор для всех игр
game_random = GameRandom()
