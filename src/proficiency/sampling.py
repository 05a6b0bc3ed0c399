"""
Random variate generation for Thompson Sampling.

Beta draws are built from two Gamma(shape, 1) draws; Gamma draws use the
Marsaglia-Tsang squeeze/rejection method fed by Box-Muller normals.
"""

from __future__ import annotations

import math
import random


class PosteriorSampler:
    """Samples Beta posteriors with a private, seedable generator."""

    def __init__(self, seed: int | None = None, rng: random.Random | None = None):
        self.rng = rng or random.Random(seed)

    def normal(self, mean: float = 0.0, std_dev: float = 1.0) -> float:
        """Box-Muller transform."""
        # 1 - random() lies in (0, 1], keeping log() finite
        u1 = 1.0 - self.rng.random()
        u2 = self.rng.random()
        z = math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)
        return mean + std_dev * z

    def gamma(self, shape: float, rate: float = 1.0) -> float:
        """Marsaglia-Tsang sampler for Gamma(shape, rate)."""
        if shape <= 0 or rate <= 0:
            raise ValueError(f"gamma parameters must be positive (shape={shape}, rate={rate})")

        if shape < 1:
            # Boost: Gamma(a) = Gamma(a + 1) * U^(1/a)
            u = 1.0 - self.rng.random()
            return self.gamma(shape + 1, rate) * math.pow(u, 1.0 / shape)

        d = shape - 1.0 / 3.0
        c = 1.0 / math.sqrt(9.0 * d)

        while True:
            x = self.normal()
            v = 1.0 + c * x
            while v <= 0:
                x = self.normal()
                v = 1.0 + c * x

            v = v * v * v
            u = 1.0 - self.rng.random()

            if u < 1 - 0.0331 * x ** 4:
                return d * v / rate
            if math.log(u) < 0.5 * x * x + d * (1 - v + math.log(v)):
                return d * v / rate

    def beta(self, alpha: float, beta: float) -> float:
        x = self.gamma(alpha, 1.0)
        y = self.gamma(beta, 1.0)
        total = x + y
        if total <= 0:
            return alpha / (alpha + beta)
        return x / total
