from __future__ import annotations

import unittest

import numpy as np

from genodapc import discriminant, genotypes, pca
from genodapc.errors import ConfigurationError, ModelFitError


def _matrix(values: np.ndarray, pops) -> genotypes.GenotypeMatrix:
    n, m = values.shape
    return genotypes.GenotypeMatrix(
        sample_ids=np.array([f"S{i}" for i in range(n)]),
        loci=np.array([f"L{s}" for s in range(m)]),
        populations=np.asarray(pops, dtype=str),
        values=np.asarray(values, dtype=np.float64),
    )


class TestLDA(unittest.TestCase):
    def setUp(self) -> None:
        # Two groups on one predictor: means 1 and 5, pooled within variance 1.
        self.x = np.array([[0.0], [1.0], [2.0], [4.0], [5.0], [6.0]])
        self.groups = np.array(["A", "A", "A", "B", "B", "B"])

    def test_posterior_matches_gaussian_closed_form(self) -> None:
        model = discriminant.fit_lda(self.x, self.groups)
        pred = model.predict(np.array([[3.0], [1.0]]))

        np.testing.assert_allclose(pred.posterior[0], [0.5, 0.5], atol=1e-12)
        p_a = 1.0 / (1.0 + np.exp(-8.0))
        np.testing.assert_allclose(pred.posterior[1], [p_a, 1.0 - p_a], rtol=1e-10)
        self.assertEqual(pred.predicted[1], "A")

    def test_model_attributes(self) -> None:
        model = discriminant.fit_lda(self.x, self.groups)
        np.testing.assert_array_equal(model.classes, ["A", "B"])
        np.testing.assert_allclose(model.prior, [0.5, 0.5])
        np.testing.assert_allclose(model.means, [[1.0], [5.0]])
        self.assertEqual(model.n_axes, 1)
        self.assertEqual(model.n_discriminants, 1)
        np.testing.assert_allclose(model.explained_variance(), [100.0])

    def test_training_rows_classified(self) -> None:
        model = discriminant.fit_lda(self.x, self.groups)
        pred = model.predict(self.x)
        np.testing.assert_array_equal(pred.predicted, self.groups)
        np.testing.assert_allclose(pred.posterior.sum(axis=1), 1.0)

    def test_scores_centred_on_prior_mean(self) -> None:
        model = discriminant.fit_lda(self.x, self.groups)
        scores = model.transform(self.x)
        self.assertAlmostEqual(float(scores.mean()), 0.0, places=12)
        # Unit pooled within-group variance on the discriminant axis.
        resid = scores[:, 0] - np.repeat([scores[:3, 0].mean(), scores[3:, 0].mean()], 3)
        self.assertAlmostEqual(float(np.sum(resid**2) / (6 - 2)), 1.0, places=10)

    def test_three_groups_give_two_axes(self) -> None:
        rng = np.random.default_rng(3)
        centres = np.array([[0.0, 0.0, 0.0], [4.0, 0.0, 1.0], [0.0, 4.0, -1.0]])
        x = np.vstack([rng.normal(c, 1.0, size=(12, 3)) for c in centres])
        groups = np.repeat(["P1", "P2", "P3"], 12)
        model = discriminant.fit_lda(x, groups)
        self.assertEqual(model.n_discriminants, 2)
        self.assertAlmostEqual(float(model.explained_variance().sum()), 100.0, delta=0.02)

    def test_single_group_fails(self) -> None:
        with self.assertRaises(ModelFitError):
            discriminant.fit_lda(self.x, ["A"] * 6)

    def test_no_residual_df_fails(self) -> None:
        with self.assertRaises(ModelFitError):
            discriminant.fit_lda(np.array([[0.0], [1.0]]), ["A", "B"])

    def test_constant_within_groups_fails(self) -> None:
        x = np.column_stack([self.x[:, 0], np.repeat([1.0, 2.0], 3)])
        with self.assertRaises(ModelFitError):
            discriminant.fit_lda(x, self.groups)

    def test_predict_checks_axis_count(self) -> None:
        model = discriminant.fit_lda(self.x, self.groups)
        with self.assertRaises(ConfigurationError):
            model.predict(np.zeros((1, 2)))


class TestManova(unittest.TestCase):
    def test_sscp_partition(self) -> None:
        rng = np.random.default_rng(11)
        x = rng.normal(size=(15, 3))
        groups = np.repeat(["A", "B", "C"], 5)
        between, residual = discriminant.manova_sscp(x, groups)
        xc = x - x.mean(axis=0)
        np.testing.assert_allclose(between + residual, xc.T @ xc, atol=1e-10)

    def test_among_variance_separated_groups(self) -> None:
        x = np.array([[0.0], [0.1], [10.0], [10.1]])
        groups = ["A", "A", "B", "B"]
        among = discriminant.among_population_variance(x, groups)
        self.assertGreater(among, 99.0)
        self.assertLessEqual(among, 100.0)


class TestPCA(unittest.TestCase):
    def setUp(self) -> None:
        rng = np.random.default_rng(5)
        self.values = rng.integers(0, 3, size=(12, 20)).astype(np.float64)
        self.matrix = _matrix(self.values, ["A"] * 6 + ["B"] * 6)

    def test_covar_scores_and_variance(self) -> None:
        res = pca.pca_genos(self.matrix, scaling="covar")
        xc = self.values - self.values.mean(axis=0)
        np.testing.assert_allclose(res.scores, xc @ res.rotation, atol=1e-10)
        np.testing.assert_allclose(res.variance.sum(), self.values.var(axis=0, ddof=1).sum(), rtol=1e-10)
        self.assertEqual(res.n_axes, 12)
        self.assertAlmostEqual(float(res.explained_variance().sum()), 100.0, places=8)

    def test_project_training_rows_reproduces_scores(self) -> None:
        for scaling in ("covar", "corr", "patterson", "none"):
            res = pca.pca_genos(self.matrix, scaling=scaling)
            np.testing.assert_allclose(res.project(self.values), res.scores, atol=1e-9)

    def test_monomorphic_locus_is_finite(self) -> None:
        values = self.values.copy()
        values[:, 0] = 2.0
        for scaling in ("corr", "patterson"):
            res = pca.pca_genos(_matrix(values, self.matrix.populations), scaling=scaling)
            self.assertTrue(np.all(np.isfinite(res.scores)))
            informative = res.sdev > 1e-8
            np.testing.assert_allclose(res.rotation[0, informative], 0.0, atol=1e-10)

    def test_signs_are_deterministic(self) -> None:
        res = pca.pca_genos(self.matrix)
        lead = res.rotation[np.argmax(np.abs(res.rotation), axis=0), np.arange(res.n_axes)]
        self.assertTrue(np.all(lead > 0))

    def test_invalid_scaling(self) -> None:
        with self.assertRaises(ConfigurationError):
            pca.pca_genos(self.matrix, scaling="zscore")

    def test_constant_matrix_fails(self) -> None:
        with self.assertRaises(ModelFitError):
            pca.pca_genos(_matrix(np.ones((4, 3)), ["A", "A", "B", "B"]))


class TestGenoscore(unittest.TestCase):
    def test_converter(self) -> None:
        scores = genotypes.genoscore_converter(["0/0", "0/1", "1/0", "1/1", "0|1", "./.", "2"])
        np.testing.assert_array_equal(scores[:5], [0.0, 1.0, 1.0, 2.0, 1.0])
        self.assertTrue(np.isnan(scores[5]))
        self.assertEqual(scores[6], 2.0)
