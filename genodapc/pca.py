from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

from .config import PLOIDY, POP, SAMPLE, check_scaling
from .errors import ConfigurationError, ModelFitError
from .genotypes import GenotypeMatrix


@dataclass(frozen=True)
class PCAResult:
    """PCA of a genotype matrix.

    sample_ids:  (n,)
    loci:        (m,)
    populations: (n,)
    scores:      (n, q) sample coordinates on the PC axes
    rotation:    (m, q) locus loadings
    sdev:        (q,) standard deviation of each axis
    center/scale: (m,) transformation applied to loci before the SVD
    """

    sample_ids: np.ndarray
    loci: np.ndarray
    populations: np.ndarray
    scores: np.ndarray
    rotation: np.ndarray
    sdev: np.ndarray
    center: np.ndarray
    scale: np.ndarray
    scaling: str

    @property
    def n_axes(self) -> int:
        return int(self.scores.shape[1])

    @property
    def variance(self) -> np.ndarray:
        return self.sdev**2

    def explained_variance(self) -> np.ndarray:
        """Percent of total variance captured by each axis."""
        var = self.variance
        return 100.0 * var / var.sum()

    def project(self, values: np.ndarray) -> np.ndarray:
        """Coordinates of new genotype rows on this PCA's axes.

        Rows are centred and scaled with the statistics of the fitted data
        before being multiplied by the rotation.
        """
        values = np.atleast_2d(np.asarray(values, dtype=np.float64))
        if values.shape[1] != self.rotation.shape[0]:
            raise ConfigurationError(
                f"Expected {self.rotation.shape[0]} loci for projection, got {values.shape[1]}."
            )
        return ((values - self.center) / self.scale) @ self.rotation

    def scores_frame(self, n_axes: Optional[int] = None) -> pd.DataFrame:
        """POP, SAMPLE, PC1..PCn table of sample scores."""
        k = self.n_axes if n_axes is None else n_axes
        data = {POP: self.populations, SAMPLE: self.sample_ids}
        for i in range(k):
            data[f"PC{i+1}"] = self.scores[:, i]
        return pd.DataFrame(data)


def _locus_transform(values: np.ndarray, scaling: str):
    m = values.shape[1]
    if scaling == "none":
        return np.zeros(m), np.ones(m)

    if scaling == "patterson":
        # Patterson et al. (2006): centre by 2p, scale by sqrt(p(1-p)).
        p = values.mean(axis=0) / PLOIDY
        center = PLOIDY * p
        scale = np.sqrt(p * (1.0 - p))
    else:
        center = values.mean(axis=0)
        if scaling == "corr":
            scale = values.std(axis=0, ddof=1)
        else:
            scale = np.ones(m)

    # Monomorphic loci are centred to zero and left unscaled.
    scale = np.where(scale > 0, scale, 1.0)
    return center, scale


def pca_genos(matrix: GenotypeMatrix, scaling: str = "covar") -> PCAResult:
    """PCA of a genotype matrix via SVD.

    Args:
        matrix: Samples x loci genotypes.
        scaling: 'covar' (centre loci), 'corr' (centre and unit variance),
            'patterson' (Patterson et al. 2006 normalisation) or 'none'.
    """
    check_scaling(scaling)
    n = matrix.n_samples
    if n < 2:
        raise ModelFitError(f"PCA needs at least two samples, got {n}.")

    center, scale = _locus_transform(matrix.values, scaling)
    X = (matrix.values - center) / scale

    U, S, Vt = np.linalg.svd(X, full_matrices=False)
    if not np.sum(S**2) > 0:
        raise ModelFitError("Genotype matrix has no variance; PCA is undefined.")

    # Deterministic signs: largest absolute loading on each axis is positive.
    lead = np.argmax(np.abs(Vt), axis=1)
    signs = np.sign(Vt[np.arange(Vt.shape[0]), lead])
    signs[signs == 0] = 1.0
    U = U * signs
    Vt = Vt * signs[:, None]

    return PCAResult(
        sample_ids=matrix.sample_ids,
        loci=matrix.loci,
        populations=matrix.populations,
        scores=U * S,
        rotation=Vt.T,
        sdev=S / np.sqrt(max(n - 1, 1)),
        center=center,
        scale=scale,
        scaling=scaling,
    )
