"""Simulated families for calibrating relatedness estimates.

Each simulation produces six diploid individuals from population allele
frequencies (unlinked loci):

- UR.1, UR.2: an unrelated pair
- G3.1, G3.2: full siblings
- G3.3: half-sibling of G3.1 and G3.2
- G3.4: cousin of G3.1 and G3.2

Relatedness of these known pairs, estimated with the same GRM method as an
observed dataset, shows what values each relationship produces given the
loci and their frequencies.
"""

from __future__ import annotations

from itertools import combinations
from typing import Optional

import numpy as np
import pandas as pd

from .config import GT, LOCUS, PLOIDY, SAMPLE
from .errors import ConfigurationError

FAMILY_LEVELS = ("Unrelated", "Cousins", "Half-siblings", "Siblings", "Observed")
RELATEDNESS_EXPECTED = {"Unrelated": 0.0, "Cousins": 0.125, "Half-siblings": 0.25, "Siblings": 0.5}
SIM_CODES = ("UR.1", "UR.2", "G3.1", "G3.2", "G3.3", "G3.4")

# (first, second, family) sample codes compared within each simulation.
_SIM_PAIRS = (
    ("UR.1", "UR.2", "Unrelated"),
    ("G3.1", "G3.2", "Siblings"),
    ("G3.1", "G3.3", "Half-siblings"),
    ("G3.1", "G3.4", "Cousins"),
)


def _founders(freqs: np.ndarray, num_sims: int, rng: np.random.Generator) -> np.ndarray:
    return rng.binomial(PLOIDY, freqs[None, :], size=(num_sims, freqs.shape[0]))


def _offspring(parent1: np.ndarray, parent2: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    # One allele from each parent, alt with probability dosage / 2.
    return rng.binomial(1, parent1 / PLOIDY) + rng.binomial(1, parent2 / PLOIDY)


def family_sim_data(
    freq_data: pd.DataFrame,
    locus_col: str = "LOCUS",
    freq_col: str = "FREQ",
    num_sims: int = 100,
    seed: Optional[int] = None,
) -> pd.DataFrame:
    """Simulate ``num_sims`` families from allele frequencies.

    Args:
        freq_data: One row per locus with locus IDs and alt-allele frequencies.
        locus_col: Column with locus IDs.
        freq_col: Column with allele frequencies in [0, 1].
        num_sims: Number of simulated families.
        seed: Random seed.

    Returns:
        Long table with columns SIM, SAMPLE, LOCUS, GT; samples are named
        ``S{sim}_{code}``.
    """
    missing = [c for c in (locus_col, freq_col) if c not in freq_data.columns]
    if missing:
        raise ConfigurationError(
            "Column(s) " + ", ".join(repr(c) for c in missing) + " not found in `freq_data`."
        )
    num_sims = int(num_sims)
    if num_sims < 1:
        raise ConfigurationError(f"Argument `num_sims` must be an integer > 0, got {num_sims}.")

    loci = freq_data[locus_col].astype(str).to_numpy()
    freqs = freq_data[freq_col].to_numpy(dtype=np.float64)
    if np.any(~np.isfinite(freqs)) or np.any((freqs < 0) | (freqs > 1)):
        raise ConfigurationError(f"Column '{freq_col}' must hold allele frequencies in [0, 1].")

    rng = np.random.default_rng(seed)

    g1_1 = _founders(freqs, num_sims, rng)
    g1_2 = _founders(freqs, num_sims, rng)
    g2_1 = _offspring(g1_1, g1_2, rng)
    g2_2 = _offspring(g1_1, g1_2, rng)
    g2_3 = _founders(freqs, num_sims, rng)
    g2_4 = _founders(freqs, num_sims, rng)
    g2_5 = _founders(freqs, num_sims, rng)

    families = {
        "UR.1": _founders(freqs, num_sims, rng),
        "UR.2": _founders(freqs, num_sims, rng),
        "G3.1": _offspring(g2_1, g2_3, rng),
        "G3.2": _offspring(g2_1, g2_3, rng),
        "G3.3": _offspring(g2_1, g2_4, rng),
        "G3.4": _offspring(g2_2, g2_5, rng),
    }

    # (num_sims, n_codes, n_loci), flattened sim-major, then sample, then locus.
    genos = np.stack([families[code] for code in SIM_CODES], axis=1)
    n_loci = loci.shape[0]
    sims = np.arange(1, num_sims + 1)
    samples = np.array([f"S{s}_{code}" for s in sims for code in SIM_CODES])

    return pd.DataFrame(
        {
            "SIM": np.repeat(sims, len(SIM_CODES) * n_loci),
            SAMPLE: np.repeat(samples, n_loci),
            LOCUS: np.tile(loci, num_sims * len(SIM_CODES)),
            GT: genos.ravel().astype(np.int64),
        }
    )


def _check_grm(grm: pd.DataFrame, name: str) -> None:
    if grm.shape[0] != grm.shape[1] or list(map(str, grm.index)) != list(map(str, grm.columns)):
        raise ConfigurationError(
            f"Argument `{name}` must be a square relationship matrix with matching row and column labels."
        )


def family_sim_compare(
    sim_family: pd.DataFrame,
    sim_grm: pd.DataFrame,
    obs_grm: pd.DataFrame,
) -> pd.DataFrame:
    """Combine simulated and observed pairwise relatedness.

    Args:
        sim_family: Output of :func:`family_sim_data`.
        sim_grm: Relationship matrix of the simulated samples.
        obs_grm: Relationship matrix of the observed samples, estimated the
            same way as ``sim_grm``.

    Returns:
        Table with columns SIM, SAMPLE1, SAMPLE2, FAMILY, RELATE. Observed
        pairs cover every unordered pair of ``obs_grm`` with SIM missing.
        FAMILY is an ordered categorical over FAMILY_LEVELS.
    """
    if "SIM" not in sim_family.columns:
        raise ConfigurationError("Argument `sim_family` must have a 'SIM' column; see family_sim_data().")
    _check_grm(sim_grm, "sim_grm")
    _check_grm(obs_grm, "obs_grm")

    sim_grm = sim_grm.rename(index=str, columns=str)
    obs_grm = obs_grm.rename(index=str, columns=str)

    sim_rows = []
    for sim in sorted(pd.unique(sim_family["SIM"])):
        for code1, code2, family in _SIM_PAIRS:
            s1, s2 = f"S{sim}_{code1}", f"S{sim}_{code2}"
            if s1 not in sim_grm.index or s2 not in sim_grm.index:
                raise ConfigurationError(f"Simulated sample '{s1}' or '{s2}' is missing from `sim_grm`.")
            sim_rows.append((sim, s1, s2, family, float(sim_grm.at[s1, s2])))

    obs_rows = [
        (pd.NA, s1, s2, "Observed", float(obs_grm.at[s1, s2]))
        for s1, s2 in combinations(obs_grm.columns, 2)
    ]

    rel = pd.DataFrame(obs_rows + sim_rows, columns=["SIM", "SAMPLE1", "SAMPLE2", "FAMILY", "RELATE"])
    rel["SIM"] = rel["SIM"].astype("Int64")
    rel["FAMILY"] = pd.Categorical(rel["FAMILY"], categories=list(FAMILY_LEVELS), ordered=True)
    return rel
