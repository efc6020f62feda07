from __future__ import annotations

import unittest

import numpy as np
import pandas as pd

from hypothesis import given, settings
from hypothesis import strategies as st
from hypothesis.extra import numpy as hnp

from genodapc import assign, dapc, discriminant, genotypes
from genodapc.config import POP, POP_PRED

_POPS = ["A", "B", "C", "D"]


@st.composite
def _prediction_table(draw):
    n = draw(st.integers(min_value=1, max_value=40))
    obs = draw(st.lists(st.sampled_from(_POPS), min_size=n, max_size=n))
    pred = draw(st.lists(st.sampled_from(_POPS), min_size=n, max_size=n))
    return pd.DataFrame({POP: obs, POP_PRED: pred})


@st.composite
def _labelled_matrix(draw):
    sizes = draw(st.lists(st.integers(min_value=1, max_value=9), min_size=1, max_size=4))
    pops = np.repeat([f"P{k}" for k in range(len(sizes))], sizes)
    n = pops.shape[0]
    order = draw(st.permutations(list(range(n))))
    pops = pops[np.asarray(order, dtype=int)]
    return genotypes.GenotypeMatrix(
        sample_ids=np.array([f"s{i:02d}" for i in range(n)]),
        loci=np.array(["l0", "l1"]),
        populations=pops,
        values=np.zeros((n, 2)),
    )


@st.composite
def _shifted_groups(draw):
    k = draw(st.integers(min_value=2, max_value=4))
    p = draw(st.integers(min_value=1, max_value=3))
    per_group = draw(st.integers(min_value=p + 2, max_value=10))
    seed = draw(st.integers(min_value=0, max_value=2**16))
    shift = draw(st.floats(min_value=0.5, max_value=5.0))
    rng = np.random.default_rng(seed)
    centres = rng.normal(scale=shift, size=(k, p))
    x = np.vstack([rng.normal(c, 1.0, size=(per_group, p)) for c in centres])
    groups = np.repeat([f"G{g}" for g in range(k)], per_group)
    return x, groups


class TestAssignmentProperties(unittest.TestCase):
    @settings(max_examples=60, deadline=None)
    @given(_prediction_table())
    def test_rows_are_rates(self, tab: pd.DataFrame) -> None:
        res = assign.summarize_assignments(tab, populations=_POPS)
        wide = res.pairs_wide.to_numpy()
        observed = np.isin(_POPS, tab[POP].unique())
        np.testing.assert_allclose(wide[observed].sum(axis=1), 1.0)
        self.assertTrue(np.isnan(wide[~observed]).all())
        self.assertTrue(0.0 <= res.global_rate <= 1.0)
        n_obs = tab[POP].value_counts().reindex(_POPS, fill_value=0).to_numpy()
        correct = np.nansum(np.diag(wide) * n_obs)
        self.assertAlmostEqual(correct, res.global_rate * len(tab))

    @settings(max_examples=40, deadline=None)
    @given(_prediction_table(), st.randoms(use_true_random=False))
    def test_row_order_irrelevant(self, tab: pd.DataFrame, rnd) -> None:
        order = list(range(len(tab)))
        rnd.shuffle(order)
        a = assign.summarize_assignments(tab)
        b = assign.summarize_assignments(tab.iloc[order].reset_index(drop=True))
        pd.testing.assert_frame_equal(a.pairs_long, b.pairs_long)
        self.assertEqual(a.global_rate, b.global_rate)


class TestSplitProperties(unittest.TestCase):
    @settings(max_examples=60, deadline=None)
    @given(_labelled_matrix(), st.floats(min_value=0.0, max_value=1.0), st.integers(min_value=0, max_value=1000))
    def test_exact_partition(self, matrix, train_prop: float, seed: int) -> None:
        train_idx, test_idx = dapc.train_test_split(matrix, train_prop, seed=seed)
        combined = np.concatenate([train_idx, test_idx])
        np.testing.assert_array_equal(np.sort(combined), np.arange(matrix.n_samples))
        for pop in np.unique(matrix.populations):
            n_pop = int(np.sum(matrix.populations == pop))
            n_train = int(np.sum(matrix.populations[train_idx] == pop))
            self.assertEqual(n_train, round(n_pop * train_prop))


class TestModelProperties(unittest.TestCase):
    @settings(max_examples=30, deadline=None)
    @given(_shifted_groups())
    def test_posteriors_are_distributions(self, data) -> None:
        x, groups = data
        model = discriminant.fit_lda(x, groups)
        pred = model.predict(x)
        self.assertTrue(np.all(pred.posterior >= 0.0))
        np.testing.assert_allclose(pred.posterior.sum(axis=1), 1.0, rtol=1e-9)
        best = model.classes[np.argmax(pred.posterior, axis=1)]
        np.testing.assert_array_equal(best, pred.predicted)
        self.assertLessEqual(model.n_discriminants, min(x.shape[1], len(model.classes) - 1))

    @settings(max_examples=50, deadline=None)
    @given(
        hnp.arrays(np.float64, (6, 4), elements=st.floats(-3, 3, allow_nan=False)),
        hnp.arrays(np.float64, (3, 2), elements=st.floats(-3, 3, allow_nan=False)),
    )
    def test_snp_contributions_bounded(self, rotation: np.ndarray, scaling: np.ndarray) -> None:
        contrib = dapc.snp_contributions(rotation, scaling, pc_preds=3)
        self.assertEqual(contrib.shape, (6, 2))
        self.assertTrue(np.all((contrib >= 0.0) & (contrib <= 1.0 + 1e-12)))
        sums = contrib.sum(axis=0)
        self.assertTrue(np.all(np.isclose(sums, 1.0) | (sums == 0.0)))


class TestGenoscoreProperties(unittest.TestCase):
    @settings(max_examples=80, deadline=None)
    @given(st.lists(st.tuples(st.sampled_from("0123"), st.sampled_from("0123"), st.sampled_from("/|")), min_size=1))
    def test_counts_non_reference_alleles(self, calls) -> None:
        strings = [f"{a}{sep}{b}" for a, b, sep in calls]
        scores = genotypes.genoscore_converter(strings)
        expected = [float((a != "0") + (b != "0")) for a, b, _ in calls]
        np.testing.assert_array_equal(scores, expected)

    @settings(max_examples=30, deadline=None)
    @given(st.integers(min_value=0, max_value=2), st.sampled_from(["./.", ".|0", "1/."]))
    def test_missing_allele_is_nan(self, count: int, missing: str) -> None:
        scores = genotypes.genoscore_converter([str(count), missing])
        self.assertEqual(scores[0], float(count))
        self.assertTrue(np.isnan(scores[1]))


if __name__ == "__main__":
    unittest.main()
