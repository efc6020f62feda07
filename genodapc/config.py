"""Configuration dataclasses for genodapc.

Column names of the caller's long genotype table are translated to a fixed
internal schema (POP, SAMPLE, LOCUS, GT) through :class:`ColumnMap`, and the
arguments of a DAPC run are validated once in :class:`DAPCConfig` before any
computation starts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from numbers import Integral, Real
from typing import Dict, Optional

from .errors import ConfigurationError

SCALING_POLICIES = ("covar", "corr", "patterson", "none")
METHODS = ("fit", "loo_cv", "train_test")
PLOIDY = 2
SNP_CONTRIB_EPS = 1e-12

POP = "POP"
SAMPLE = "SAMPLE"
LOCUS = "LOCUS"
GT = "GT"
POP_PRED = "POP_PRED"


@dataclass(frozen=True)
class ColumnMap:
    """Names of the population, sample, locus and genotype columns.

    Attributes:
        sample: Column with sample identifiers.
        locus: Column with locus identifiers.
        genotype: Column with genotypes, as alt-allele counts or '/'
            separated allele strings.
        population: Column with population labels.
    """

    sample: str = SAMPLE
    locus: str = LOCUS
    genotype: str = GT
    population: str = POP

    def rename_map(self) -> Dict[str, str]:
        """External column name -> internal column name."""
        return {
            self.population: POP,
            self.sample: SAMPLE,
            self.locus: LOCUS,
            self.genotype: GT,
        }


def check_scaling(scaling: str) -> str:
    if scaling not in SCALING_POLICIES:
        raise ConfigurationError(
            f"Argument `scaling` is invalid: {scaling!r} "
            f"(expected one of {', '.join(SCALING_POLICIES)})."
        )
    return scaling


@dataclass(frozen=True)
class DAPCConfig:
    """Arguments of a DAPC run.

    Attributes:
        pc_preds: Number of leading PC axes used as discriminant predictors.
        method: 'fit', 'loo_cv' or 'train_test'.
        scaling: Locus scaling before PCA: 'covar', 'corr', 'patterson' or 'none'.
        num_cores: Worker processes for leave-one-out cross-validation.
        train_prop: Proportion of each population used for training.
        seed: Seed for the train/test partition.
        tol: Tolerance passed to the discriminant fit.
        columns: Column names of the input table.
    """

    pc_preds: int
    method: str = "fit"
    scaling: str = "covar"
    num_cores: int = 1
    train_prop: float = 0.7
    seed: Optional[int] = None
    tol: float = 1e-30
    columns: ColumnMap = field(default_factory=ColumnMap)

    def __post_init__(self) -> None:
        if isinstance(self.pc_preds, bool) or not isinstance(self.pc_preds, Integral) or self.pc_preds < 1:
            raise ConfigurationError(
                f"Argument `pc_preds` must be a positive integer, got {self.pc_preds!r}."
            )
        if self.method not in METHODS:
            raise ConfigurationError(
                f"Argument `method` must be one of {', '.join(METHODS)}, got {self.method!r}."
            )
        check_scaling(self.scaling)
        if isinstance(self.num_cores, bool) or not isinstance(self.num_cores, Integral) or self.num_cores < 1:
            raise ConfigurationError(
                f"Argument `num_cores` must be an integer >= 1, got {self.num_cores!r}."
            )
        if not isinstance(self.train_prop, Real) or not 0.0 <= self.train_prop <= 1.0:
            raise ConfigurationError(
                f"Argument `train_prop` must be a proportion in [0, 1], got {self.train_prop!r}."
            )
        if not isinstance(self.tol, Real) or not self.tol > 0:
            raise ConfigurationError(f"Argument `tol` must be positive, got {self.tol!r}.")
