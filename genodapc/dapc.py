"""Discriminant Analysis of Principal Components (DAPC).

A PCA of the genotype matrix is followed by a linear discriminant analysis
that uses the leading ``pc_preds`` PC axes as predictors of population
membership (Jombart et al. 2010). Besides fitting the model to all samples,
model fit can be assessed by leave-one-out cross-validation or by a
per-population training/testing partition.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from .assign import summarize_assignments
from .config import LOCUS, POP, POP_PRED, SAMPLE, SNP_CONTRIB_EPS, ColumnMap, DAPCConfig
from .discriminant import DiscriminantModel, among_population_variance, fit_lda
from .errors import ConfigurationError, ModelFitError
from .genotypes import GenotypeMatrix, prepare_genotypes, to_matrix
from .parallel import run_ordered, single_blas_thread
from .pca import PCAResult, pca_genos

PROB = "PROB"


@dataclass(frozen=True)
class DAPCFit:
    """DAPC fitted to all samples."""

    da_fit: DiscriminantModel
    exp_var: np.ndarray       # percent among-population variance per LD axis
    among_var: float          # percent of PC-predictor variance among populations
    da_tab: pd.DataFrame      # POP, SAMPLE, LD1..
    da_prob: pd.DataFrame     # POP, SAMPLE, POP_PRED, PROB
    pca_fit: PCAResult
    pca_tab: pd.DataFrame     # POP, SAMPLE, PC1..PCp
    snp_contrib: pd.DataFrame # LOCUS, LD1..


@dataclass(frozen=True)
class DAPCValidation:
    """Predictions for held-out samples and their assignment rates."""

    tab: pd.DataFrame         # POP, SAMPLE, POP_PRED
    global_rate: float
    pairs_long: pd.DataFrame  # POP, POP_PRED, ASSIGN
    pairs_wide: pd.DataFrame  # index POP, one column per predicted population


def snp_contributions(rotation: np.ndarray, scaling: np.ndarray, pc_preds: int) -> np.ndarray:
    """Contribution of each locus to each discriminant axis.

    Locus loadings on the PC predictors are projected through the
    discriminant scaling; per axis, squared loadings are divided by their
    sum. Axes whose sum of squares is below 1e-12 get zero contributions.
    """
    load = rotation[:, :pc_preds] @ scaling
    sq = load * load
    ss = sq.sum(axis=0)
    contrib = np.zeros_like(sq)
    ok = ss >= SNP_CONTRIB_EPS
    contrib[:, ok] = sq[:, ok] / ss[ok]
    return contrib


def _check_pc_preds(pc_preds: int, available: int, what: str) -> None:
    if pc_preds > available:
        raise ConfigurationError(
            f"Argument `pc_preds` ({pc_preds}) exceeds the {available} PC axes available {what}."
        )


def _check_populations(matrix: GenotypeMatrix) -> None:
    k = len(np.unique(matrix.populations))
    if k < 2:
        raise ModelFitError(f"DAPC requires at least two populations, got {k}.")


def _fit_models(
    matrix: GenotypeMatrix, pc_preds: int, scaling: str, tol: float
) -> Tuple[PCAResult, DiscriminantModel]:
    pca = pca_genos(matrix, scaling=scaling)
    _check_pc_preds(pc_preds, pca.n_axes, "from the PCA")
    da = fit_lda(pca.scores[:, :pc_preds], matrix.populations, tol=tol)
    return pca, da


def fit_dapc(
    matrix: GenotypeMatrix,
    pc_preds: int,
    scaling: str = "covar",
    tol: float = 1e-30,
) -> DAPCFit:
    """Fit PCA and discriminant analysis to every sample."""
    _check_pc_preds(pc_preds, min(matrix.n_samples, matrix.n_loci), "for this matrix")
    _check_populations(matrix)
    logger.info(
        f"Fitting DAPC: {matrix.n_samples} samples, {matrix.n_loci} loci, "
        f"{pc_preds} PC predictors ({scaling} scaling)"
    )

    pca, da = _fit_models(matrix, pc_preds, scaling, tol)
    X = pca.scores[:, :pc_preds]
    pred = da.predict(X)

    ld_cols = [f"LD{i+1}" for i in range(da.n_discriminants)]
    ids = {POP: matrix.populations, SAMPLE: matrix.sample_ids}

    da_tab = pd.DataFrame({**ids, **dict(zip(ld_cols, pred.scores.T))})

    post = pd.DataFrame(pred.posterior, columns=list(da.classes))
    post.insert(0, SAMPLE, matrix.sample_ids)
    post.insert(0, POP, matrix.populations)
    da_prob = post.melt(id_vars=[POP, SAMPLE], var_name=POP_PRED, value_name=PROB)

    contrib = snp_contributions(pca.rotation, da.scaling, pc_preds)
    snp_contrib = pd.DataFrame({LOCUS: pca.loci, **dict(zip(ld_cols, contrib.T))})

    exp_var = da.explained_variance()
    among_var = among_population_variance(X, matrix.populations)
    logger.info(f"DAPC fitted: among-population variance {among_var}%, LD variance {exp_var.tolist()}")

    return DAPCFit(
        da_fit=da,
        exp_var=exp_var,
        among_var=among_var,
        da_tab=da_tab,
        da_prob=da_prob,
        pca_fit=pca,
        pca_tab=pca.scores_frame(pc_preds),
        snp_contrib=snp_contrib,
    )


def _loo_iteration(
    matrix: GenotypeMatrix, index: int, pc_preds: int, scaling: str, tol: float
) -> str:
    """Refit without sample ``index`` and predict its population."""
    sample = str(matrix.sample_ids[index])
    logger.debug(f"Refitting without sample '{sample}'")
    try:
        pca, da = _fit_models(matrix.drop_sample(index), pc_preds, scaling, tol)
    except ModelFitError as exc:
        raise ModelFitError(exc.reason, sample=sample) from exc
    x_test = pca.project(matrix.values[index])[:, :pc_preds]
    return str(da.predict(x_test).predicted[0])


# Matrix shared by every leave-one-out task in a worker process.
_worker_matrix: Optional[GenotypeMatrix] = None


def _set_worker_matrix(matrix: GenotypeMatrix) -> None:
    global _worker_matrix
    _worker_matrix = matrix


def _loo_worker(index: int, pc_preds: int, scaling: str, tol: float) -> str:
    with single_blas_thread():
        return _loo_iteration(_worker_matrix, index, pc_preds, scaling, tol)


def loo_cv(
    matrix: GenotypeMatrix,
    pc_preds: int,
    scaling: str = "covar",
    num_cores: int = 1,
    tol: float = 1e-30,
) -> pd.DataFrame:
    """Leave-one-out predictions, one row per sample in matrix order.

    A sample that is the only member of its population leaves that
    population out of its own refit, so it can never be predicted
    correctly. Any failing refit aborts the whole run.
    """
    _check_pc_preds(pc_preds, min(matrix.n_samples - 1, matrix.n_loci), "after holding out one sample")
    _check_populations(matrix)
    logger.info(
        f"Leave-one-out cross-validation: {matrix.n_samples} refits on {num_cores} core(s)"
    )

    pops, counts = np.unique(matrix.populations, return_counts=True)
    for pop in pops[counts == 1]:
        sample = matrix.sample_ids[matrix.populations == pop][0]
        logger.warning(
            f"Population '{pop}' has a single sample ('{sample}'); it is absent from that sample's refit."
        )

    if num_cores == 1:
        predicted = [_loo_iteration(matrix, i, pc_preds, scaling, tol) for i in range(matrix.n_samples)]
    else:
        # The matrix reaches each worker once; tasks carry only the held-out index.
        tasks = [(i, pc_preds, scaling, tol) for i in range(matrix.n_samples)]
        predicted = run_ordered(
            _loo_worker,
            tasks,
            num_workers=num_cores,
            initializer=_set_worker_matrix,
            initargs=(matrix,),
        )

    return pd.DataFrame(
        {POP: matrix.populations, SAMPLE: matrix.sample_ids, POP_PRED: np.asarray(predicted, dtype=str)}
    )


def train_test_split(
    matrix: GenotypeMatrix,
    train_prop: float,
    seed: Optional[int] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Per-population random partition into training and testing rows.

    Each population contributes ``round(n_pop * train_prop)`` training
    samples (Python rounding, halves to even), drawn without replacement;
    the rest are testing samples. Populations are visited in sorted order.
    """
    if not 0.0 <= train_prop <= 1.0:
        raise ConfigurationError(f"Argument `train_prop` must be a proportion in [0, 1], got {train_prop!r}.")
    rng = np.random.default_rng(seed)

    train = []
    for pop in np.unique(matrix.populations):
        members = np.flatnonzero(matrix.populations == pop)
        n_train = int(round(len(members) * train_prop))
        train.append(rng.choice(members, size=n_train, replace=False))

    train_idx = np.sort(np.concatenate(train).astype(int))
    test_idx = np.setdiff1d(np.arange(matrix.n_samples), train_idx)
    return train_idx, test_idx


def train_test(
    matrix: GenotypeMatrix,
    pc_preds: int,
    scaling: str = "covar",
    train_prop: float = 0.7,
    seed: Optional[int] = None,
    tol: float = 1e-30,
) -> pd.DataFrame:
    """Fit on a training partition and predict the testing samples."""
    train_idx, test_idx = train_test_split(matrix, train_prop, seed)
    if train_idx.size == 0:
        raise ConfigurationError(
            f"Argument `train_prop` ({train_prop}) leaves no training samples."
        )
    if test_idx.size == 0:
        raise ConfigurationError(
            f"Argument `train_prop` ({train_prop}) leaves no testing samples."
        )
    _check_pc_preds(pc_preds, min(train_idx.size, matrix.n_loci), "for the training set")

    train = matrix.select_samples(train_idx)
    test = matrix.select_samples(test_idx)
    _check_populations(train)
    logger.info(f"Training/testing partition: {train.n_samples} training, {test.n_samples} testing samples")

    pca, da = _fit_models(train, pc_preds, scaling, tol)
    pred = da.predict(pca.project(test.values)[:, :pc_preds])

    return pd.DataFrame({POP: test.populations, SAMPLE: test.sample_ids, POP_PRED: pred.predicted})


def dapc_fit(
    dat: pd.DataFrame,
    pc_preds: int,
    method: str = "fit",
    scaling: str = "covar",
    num_cores: int = 1,
    train_prop: float = 0.7,
    seed: Optional[int] = None,
    columns: ColumnMap = ColumnMap(),
    tol: float = 1e-30,
):
    """DAPC of a long genotype table.

    Args:
        dat: One row per sample x locus with population, sample, locus and
            genotype columns (names given by ``columns``). Genotypes are
            '/' separated allele strings or alt-allele counts.
        pc_preds: Number of leading PC axes used as predictors.
        method: 'fit' fits all samples; 'loo_cv' runs leave-one-out
            cross-validation; 'train_test' fits a per-population training
            partition and predicts the rest.
        scaling: 'covar', 'corr', 'patterson' or 'none'.
        num_cores: Worker processes for 'loo_cv'.
        train_prop: Training proportion for 'train_test'.
        seed: Random seed for 'train_test'.

    Returns:
        DAPCFit for method 'fit', otherwise DAPCValidation.
    """
    config = DAPCConfig(
        pc_preds=pc_preds,
        method=method,
        scaling=scaling,
        num_cores=num_cores,
        train_prop=train_prop,
        seed=seed,
        tol=tol,
        columns=columns,
    )
    matrix = to_matrix(prepare_genotypes(dat, config.columns))

    if config.method == "fit":
        return fit_dapc(matrix, config.pc_preds, scaling=config.scaling, tol=config.tol)

    if config.method == "loo_cv":
        tab = loo_cv(matrix, config.pc_preds, scaling=config.scaling, num_cores=config.num_cores, tol=config.tol)
    else:
        tab = train_test(
            matrix,
            config.pc_preds,
            scaling=config.scaling,
            train_prop=config.train_prop,
            seed=config.seed,
            tol=config.tol,
        )

    summary = summarize_assignments(tab, populations=np.unique(matrix.populations))
    logger.info(f"Global correct assignment rate: {summary.global_rate:.3f}")
    return DAPCValidation(
        tab=tab,
        global_rate=summary.global_rate,
        pairs_long=summary.pairs_long,
        pairs_wide=summary.pairs_wide,
    )
