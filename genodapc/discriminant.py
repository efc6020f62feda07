from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from .errors import ConfigurationError, ModelFitError


@dataclass(frozen=True)
class LDAPrediction:
    """Predictions of a DiscriminantModel for a set of rows."""

    predicted: np.ndarray  # (n,) class labels
    posterior: np.ndarray  # (n, k) posterior probabilities, columns follow model.classes
    scores: np.ndarray     # (n, r) discriminant-axis coordinates


@dataclass(frozen=True)
class DiscriminantModel:
    """Linear discriminant model fitted on numeric predictors.

    classes: (k,) sorted group labels seen in training
    prior:   (k,) group proportions
    counts:  (k,) training samples per group
    means:   (k, p) group means of the predictors
    scaling: (p, r) predictor -> discriminant axis coefficients
    svd:     (r,) between/within singular values of each discriminant axis
    n_axes:  number of predictor axes the model was trained on
    """

    classes: np.ndarray
    prior: np.ndarray
    counts: np.ndarray
    means: np.ndarray
    scaling: np.ndarray
    svd: np.ndarray
    n_axes: int

    @property
    def n_discriminants(self) -> int:
        return int(self.scaling.shape[1])

    def explained_variance(self) -> np.ndarray:
        """Percent of among-group variance captured by each discriminant axis."""
        sv2 = self.svd**2
        return np.round(sv2 / sv2.sum() * 100.0, 2)

    def _center(self) -> np.ndarray:
        return self.prior @ self.means

    def _check(self, x: np.ndarray) -> np.ndarray:
        x = np.atleast_2d(np.asarray(x, dtype=np.float64))
        if x.shape[1] != self.n_axes:
            raise ConfigurationError(
                f"Model was trained on {self.n_axes} predictor axes, got {x.shape[1]}."
            )
        return x

    def transform(self, x: np.ndarray) -> np.ndarray:
        """Discriminant-axis scores of rows of x."""
        x = self._check(x)
        return (x - self._center()) @ self.scaling

    def predict(self, x: np.ndarray) -> LDAPrediction:
        """Class and posterior probabilities (plug-in estimate) for rows of x."""
        x = self._check(x)
        center = self._center()
        xs = (x - center) @ self.scaling
        dm = (self.means - center) @ self.scaling

        # Negative log posterior up to a per-row constant.
        dist = 0.5 * np.sum(dm**2, axis=1) - np.log(self.prior)
        dist = dist[None, :] - xs @ dm.T
        dist = np.exp(-(dist - dist.min(axis=1, keepdims=True)))
        posterior = dist / dist.sum(axis=1, keepdims=True)

        predicted = self.classes[np.argmax(posterior, axis=1)]
        return LDAPrediction(predicted=predicted, posterior=posterior, scores=xs)


def _group_means(x: np.ndarray, idx: np.ndarray, k: int) -> np.ndarray:
    return np.vstack([x[idx == g].mean(axis=0) for g in range(k)])


def fit_lda(
    x: np.ndarray,
    grouping: Sequence[str],
    tol: float = 1e-4,
    prior: Optional[Sequence[float]] = None,
) -> DiscriminantModel:
    """Fit a linear discriminant analysis (moment estimates).

    Steps:
      1. Scale predictors by their pooled within-group standard deviation.
      2. SVD of the scaled within-group residuals; drop directions with
         singular value <= tol and whiten.
      3. SVD of the prior-weighted, centred group means in the whitened
         space; keep directions with singular value > tol * largest.
    """
    x = np.atleast_2d(np.asarray(x, dtype=np.float64))
    grouping = np.asarray(grouping).astype(str)
    n, p = x.shape
    if grouping.shape[0] != n:
        raise ConfigurationError("grouping must have one label per row of x.")

    classes, idx = np.unique(grouping, return_inverse=True)
    k = len(classes)
    if k < 2:
        raise ModelFitError(f"Discriminant analysis requires at least two groups, got {k}.")
    if n <= k:
        raise ModelFitError(f"Too few samples ({n}) for {k} groups: no residual degrees of freedom.")

    counts = np.bincount(idx, minlength=k)
    if prior is None:
        prior_arr = counts / n
    else:
        prior_arr = np.asarray(prior, dtype=np.float64)
        if prior_arr.shape != (k,) or np.any(prior_arr <= 0):
            raise ConfigurationError("prior must hold one positive value per group.")
        prior_arr = prior_arr / prior_arr.sum()

    means = _group_means(x, idx, k)
    resid = x - means[idx]

    f1 = resid.std(axis=0, ddof=1)
    const = np.flatnonzero(f1 < tol)
    if const.size:
        raise ModelFitError(
            "Predictor axis/axes "
            + ", ".join(str(i + 1) for i in const)
            + " appear constant within groups."
        )
    scaling = np.diag(1.0 / f1)

    # Within-group sphering.
    X = np.sqrt(1.0 / (n - k)) * resid @ scaling
    _, d, vt = np.linalg.svd(X, full_matrices=False)
    rank = int(np.sum(d > tol))
    if rank == 0:
        raise ModelFitError("Rank 0: predictors are numerically constant.")
    if rank < p:
        logger.warning(f"Predictors are collinear: within-group rank {rank} < {p} axes.")
    scaling = scaling @ vt[:rank].T @ np.diag(1.0 / d[:rank])

    # Between-group directions.
    xbar = prior_arr @ means
    X = np.sqrt(n * prior_arr / (k - 1))[:, None] * ((means - xbar) @ scaling)
    _, d, vt = np.linalg.svd(X, full_matrices=False)
    rank = int(np.sum(d > tol * d[0])) if d.size else 0
    if rank == 0:
        raise ModelFitError("Group means are numerically identical.")
    scaling = scaling @ vt[:rank].T

    return DiscriminantModel(
        classes=classes,
        prior=prior_arr,
        counts=counts,
        means=means,
        scaling=scaling,
        svd=d[:rank],
        n_axes=p,
    )


def manova_sscp(x: np.ndarray, grouping: Sequence[str]) -> Tuple[np.ndarray, np.ndarray]:
    """Between-group and residual sums of squares and cross-products.

    Returns:
        between:  (p, p) hypothesis SSCP for the grouping factor
        residual: (p, p) within-group SSCP
    """
    x = np.atleast_2d(np.asarray(x, dtype=np.float64))
    classes, idx = np.unique(np.asarray(grouping).astype(str), return_inverse=True)
    k = len(classes)

    means = _group_means(x, idx, k)
    counts = np.bincount(idx, minlength=k)
    diff = means - x.mean(axis=0)
    between = (diff * counts[:, None]).T @ diff
    resid = x - means[idx]
    residual = resid.T @ resid
    return between, residual


def among_population_variance(x: np.ndarray, grouping: Sequence[str]) -> float:
    """Percent of total SSCP explained by groups, rounded to 2 decimals."""
    between, residual = manova_sscp(x, grouping)
    ss_pops = float(np.sum(between))
    ss_resid = float(np.sum(residual))
    total = ss_pops + ss_resid
    if total == 0:
        raise ModelFitError("Predictors have zero total sum of squares.")
    return round(ss_pops / total * 100.0, 2)
