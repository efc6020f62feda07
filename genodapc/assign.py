from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from .config import POP, POP_PRED
from .errors import ConfigurationError

ASSIGN = "ASSIGN"


@dataclass(frozen=True)
class AssignmentSummary:
    """Assignment rates of a prediction table.

    global_rate: fraction of records with POP == POP_PRED
    pairs_long:  POP, POP_PRED, ASSIGN for every ordered population pair
    pairs_wide:  observed populations as rows (index POP), predicted
                 populations as columns; correct-assignment rates on the diagonal
    """

    global_rate: float
    pairs_long: pd.DataFrame
    pairs_wide: pd.DataFrame


def summarize_assignments(
    pred_tab: pd.DataFrame,
    populations: Optional[Sequence[str]] = None,
) -> AssignmentSummary:
    """Global and pairwise population assignment rates.

    Args:
        pred_tab: Table with columns POP (observed) and POP_PRED (predicted).
        populations: Row/column order of the pairwise tables. Defaults to the
            sorted observed populations. Populations without observed records
            get a NaN row.
    """
    for col in (POP, POP_PRED):
        if col not in pred_tab.columns:
            raise ConfigurationError(f"Prediction table is missing column '{col}'.")
    if len(pred_tab) == 0:
        raise ConfigurationError("Prediction table is empty; nothing to summarise.")

    obs = pred_tab[POP].astype(str).to_numpy()
    pred = pred_tab[POP_PRED].astype(str).to_numpy()

    if populations is None:
        pops = sorted(set(obs))
    else:
        pops = [str(p) for p in populations]
        if len(set(pops)) != len(pops):
            raise ConfigurationError("Argument `populations` contains duplicates.")
    unknown = sorted((set(obs) | set(pred)) - set(pops))
    if unknown:
        raise ConfigurationError(
            "Populations " + ", ".join(repr(u) for u in unknown) + " are not in `populations`."
        )

    global_rate = float(np.mean(obs == pred))

    # counts[i, j]: records observed in pops[i] and predicted as pops[j]
    pos = {p: i for i, p in enumerate(pops)}
    counts = np.zeros((len(pops), len(pops)), dtype=np.float64)
    np.add.at(counts, ([pos[o] for o in obs], [pos[p] for p in pred]), 1.0)
    row_totals = counts.sum(axis=1, keepdims=True)
    with np.errstate(divide="ignore", invalid="ignore"):
        rates = counts / row_totals  # 0/0 -> NaN for unobserved populations

    pairs_long = pd.DataFrame(
        {
            POP: np.repeat(pops, len(pops)),
            POP_PRED: np.tile(pops, len(pops)),
            ASSIGN: rates.ravel(),
        }
    )
    pairs_wide = pd.DataFrame(rates, index=pd.Index(pops, name=POP), columns=list(pops))

    return AssignmentSummary(global_rate=global_rate, pairs_long=pairs_long, pairs_wide=pairs_wide)
