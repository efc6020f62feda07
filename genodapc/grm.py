from __future__ import annotations

import jax.numpy as jnp
import numpy as np
import pandas as pd

from .config import PLOIDY
from .errors import ModelFitError
from .genotypes import GenotypeMatrix


def yang_grm_values(genos: jnp.ndarray) -> jnp.ndarray:
    """Yang et al. (2011) GRM for a (n_ind, n_snp) matrix of polymorphic loci.

    Off-diagonal:  A_jk = 1/m sum_i (x_ij - 2p_i)(x_ik - 2p_i) / (2p_i(1-p_i))
    Diagonal:      A_jj = 1 + 1/m sum_i (x_ij^2 - (1+2p_i) x_ij + 2p_i^2) / (2p_i(1-p_i))
    """
    n_snp = genos.shape[1]
    p = genos.mean(axis=0) / PLOIDY
    var = 2.0 * p * (1.0 - p)

    Z = (genos - 2.0 * p) / jnp.sqrt(var)
    G = Z @ Z.T / n_snp

    diag = 1.0 + jnp.mean((genos**2 - (1.0 + 2.0 * p) * genos + 2.0 * p**2) / var, axis=1)
    return G - jnp.diag(jnp.diag(G)) + jnp.diag(diag)


def yang_grm(matrix: GenotypeMatrix) -> pd.DataFrame:
    """Genomic relationship matrix labelled by sample, monomorphic loci excluded."""
    values = matrix.values
    p = values.mean(axis=0) / PLOIDY
    keep = (p > 0.0) & (p < 1.0)
    if not keep.any():
        raise ModelFitError("No polymorphic loci; the relationship matrix is undefined.")

    G = yang_grm_values(jnp.asarray(values[:, keep], dtype=jnp.float32))
    return pd.DataFrame(
        np.asarray(G, dtype=np.float64),
        index=pd.Index(matrix.sample_ids, name="SAMPLE"),
        columns=list(matrix.sample_ids),
    )
