from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

from .config import GT, LOCUS, PLOIDY, POP, SAMPLE
from .errors import ConfigurationError
from .genotypes import GenotypeMatrix


@dataclass
class SimulatedPopulations:
    genotypes: np.ndarray    # (n_ind, n_snp), values 0/1/2
    populations: np.ndarray  # (n_ind,)
    sample_ids: np.ndarray   # (n_ind,)
    loci: np.ndarray         # (n_snp,)
    freqs: np.ndarray        # (n_pops, n_snp) population allele frequencies

    def to_matrix(self) -> GenotypeMatrix:
        return GenotypeMatrix(
            sample_ids=self.sample_ids,
            loci=self.loci,
            populations=self.populations,
            values=self.genotypes.astype(np.float64),
        )

    def to_long(self) -> pd.DataFrame:
        """Long table POP, SAMPLE, LOCUS, GT, one row per sample x locus."""
        n_ind, n_snp = self.genotypes.shape
        return pd.DataFrame(
            {
                POP: np.repeat(self.populations, n_snp),
                SAMPLE: np.repeat(self.sample_ids, n_snp),
                LOCUS: np.tile(self.loci, n_ind),
                GT: self.genotypes.ravel().astype(np.int64),
            }
        )


def simulate_populations(
    n_pops: int = 3,
    n_per_pop: int = 10,
    n_snp: int = 50,
    fst: float = 0.1,
    seed: Optional[int] = None,
    maf_min: float = 0.05,
    maf_max: float = 0.5,
) -> SimulatedPopulations:
    """Simulate genotypes for structured populations.

    Ancestral frequencies are uniform on [maf_min, maf_max]; each population
    draws its frequencies from the Balding-Nichols beta distribution with the
    given Fst, and genotypes are Binomial(2, p_pop).
    """
    if not 0.0 < fst < 1.0:
        raise ConfigurationError(f"Argument `fst` must lie in (0, 1), got {fst}.")
    if n_pops < 1 or n_per_pop < 1 or n_snp < 1:
        raise ConfigurationError("n_pops, n_per_pop and n_snp must all be positive.")
    rng = np.random.default_rng(seed)

    p_anc = rng.uniform(maf_min, maf_max, size=n_snp)
    a = p_anc * (1.0 - fst) / fst
    b = (1.0 - p_anc) * (1.0 - fst) / fst
    freqs = rng.beta(a[None, :], b[None, :], size=(n_pops, n_snp))

    pop_idx = np.repeat(np.arange(n_pops), n_per_pop)
    genotypes = rng.binomial(PLOIDY, freqs[pop_idx, :]).astype(np.int8)

    populations = np.array([f"Pop{k+1}" for k in pop_idx], dtype=str)
    sample_ids = np.array(
        [f"Ind{k+1}_{i+1}" for k in range(n_pops) for i in range(n_per_pop)], dtype=str
    )
    loci = np.array([f"SNP{s+1}" for s in range(n_snp)], dtype=str)

    return SimulatedPopulations(
        genotypes=genotypes,
        populations=populations,
        sample_ids=sample_ids,
        loci=loci,
        freqs=freqs,
    )
