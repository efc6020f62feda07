from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
import pandas as pd

from .config import GT, LOCUS, POP, SAMPLE, ColumnMap
from .errors import ConfigurationError


@dataclass(frozen=True)
class GenotypeMatrix:
    """Samples x loci genotype matrix with aligned population labels.

    - sample_ids[i] / populations[i] describe row i
    - loci[s] describes column s
    - values[i, s] is the alt-allele count, float64
    """

    sample_ids: np.ndarray
    loci: np.ndarray
    populations: np.ndarray
    values: np.ndarray

    def __post_init__(self) -> None:
        n, m = self.values.shape
        if self.sample_ids.shape[0] != n or self.populations.shape[0] != n:
            raise ConfigurationError("sample_ids and populations must have one entry per matrix row")
        if self.loci.shape[0] != m:
            raise ConfigurationError("loci must have one entry per matrix column")

    @property
    def n_samples(self) -> int:
        return int(self.values.shape[0])

    @property
    def n_loci(self) -> int:
        return int(self.values.shape[1])

    def select_samples(self, indices: Sequence[int]) -> "GenotypeMatrix":
        """Return a copy restricted to a subset of samples."""
        idx = np.asarray(indices, dtype=int)
        return GenotypeMatrix(
            sample_ids=self.sample_ids[idx],
            loci=self.loci,
            populations=self.populations[idx],
            values=self.values[idx, :].copy(),
        )

    def drop_sample(self, index: int) -> "GenotypeMatrix":
        """Return a copy without row ``index``."""
        keep = np.ones(self.n_samples, dtype=bool)
        keep[index] = False
        return self.select_samples(np.flatnonzero(keep))

    def population_table(self) -> pd.DataFrame:
        return pd.DataFrame({POP: self.populations, SAMPLE: self.sample_ids})


def genoscore_converter(values: Sequence[str]) -> np.ndarray:
    """Convert allele-pair strings ('0/1', '1|1', ...) to alt-allele counts.

    Any allele other than '0' counts as alternate. Calls with a missing
    allele ('.') and blank or NA cells are returned as NaN; bare digits are
    read as counts.
    """
    calls = pd.Series(values, dtype="object").astype(str)
    alleles = calls.str.split(r"[/|]", regex=True)

    def score(parts: List[str]) -> float:
        # Blank cells and pd.NA survive astype(str) under newer pandas.
        if not isinstance(parts, list):
            return np.nan
        if any(a in (".", "", "nan", "None") for a in parts):
            return np.nan
        if len(parts) == 1 and parts[0].isdigit():
            # already a count stored as text
            return float(parts[0])
        return float(sum(a != "0" for a in parts))

    return np.array([score(parts) for parts in alleles], dtype=np.float64)


def prepare_genotypes(dat: pd.DataFrame, columns: ColumnMap = ColumnMap()) -> pd.DataFrame:
    """Validate a long genotype table and rename it to the internal schema.

    Returns a new frame with columns POP, SAMPLE, LOCUS, GT where GT holds
    integer alt-allele counts (float NaN where a call is missing).
    """
    rename = columns.rename_map()
    missing = [c for c in rename if c not in dat.columns]
    if missing:
        raise ConfigurationError(
            "Column(s) "
            + ", ".join(repr(c) for c in missing)
            + " not found in genotype table; check the population, sample, "
            "locus and genotype column names."
        )

    df = dat[list(rename)].rename(columns=rename).copy()
    df[SAMPLE] = df[SAMPLE].astype(str)
    df[LOCUS] = df[LOCUS].astype(str)
    df[POP] = df[POP].astype(str)

    gt = df[GT]
    if pd.api.types.is_bool_dtype(gt):
        raise ConfigurationError("Argument `genotype` column holds booleans; expected counts or allele strings.")
    if pd.api.types.is_object_dtype(gt) or pd.api.types.is_string_dtype(gt):
        df[GT] = genoscore_converter(gt.to_numpy())
    elif pd.api.types.is_integer_dtype(gt):
        df[GT] = gt.astype(np.float64)
    elif pd.api.types.is_float_dtype(gt):
        df[GT] = np.trunc(gt.to_numpy(dtype=np.float64))
    else:
        raise ConfigurationError(
            f"Genotypes must be '/' separated allele strings or alt-allele counts, got dtype {gt.dtype}."
        )

    if (df[GT] < 0).any():
        raise ConfigurationError("Genotype counts must be non-negative.")

    dup = df.duplicated([SAMPLE, LOCUS])
    if dup.any():
        first = df.loc[dup].iloc[0]
        raise ConfigurationError(
            f"Sample '{first[SAMPLE]}' has more than one genotype at locus '{first[LOCUS]}'."
        )

    n_pops = df.groupby(SAMPLE)[POP].nunique()
    if (n_pops > 1).any():
        bad = n_pops[n_pops > 1].index[0]
        raise ConfigurationError(f"Sample '{bad}' is assigned to more than one population.")

    return df


def to_matrix(df: pd.DataFrame) -> GenotypeMatrix:
    """Pivot a prepared long table into a GenotypeMatrix (samples and loci sorted)."""
    wide = df.pivot(index=SAMPLE, columns=LOCUS, values=GT).sort_index(axis=0).sort_index(axis=1)
    incomplete = wide.isna().any(axis=1)
    if incomplete.any():
        raise ConfigurationError(
            f"Sample '{incomplete[incomplete].index[0]}' has missing genotypes; "
            "DAPC requires a complete samples x loci matrix."
        )

    pop_ref = df.drop_duplicates(SAMPLE).set_index(SAMPLE)[POP]
    sample_ids = wide.index.to_numpy(dtype=str)
    return GenotypeMatrix(
        sample_ids=sample_ids,
        loci=wide.columns.to_numpy(dtype=str),
        populations=pop_ref.loc[sample_ids].to_numpy(dtype=str),
        values=wide.to_numpy(dtype=np.float64),
    )
