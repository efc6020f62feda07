from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

import pandas as pd
from loguru import logger

from . import __version__, dapc, family, grm, sim
from .config import METHODS, POP, SCALING_POLICIES, ColumnMap
from .errors import GenodapcError
from .genotypes import prepare_genotypes, to_matrix
from .log import setup_logging


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="genodapc",
        description="DAPC fitting and validation, and family relatedness simulation, for genotype tables.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("-v", "--verbose", action="store_true", help="Log debug messages.")
    p.add_argument("--log-file", type=Path, default=None, help="Also write JSON debug logs here.")

    sub = p.add_subparsers(dest="command", required=True)

    # DAPC fit / cross-validation.
    d = sub.add_parser(
        "dapc",
        help="Fit a DAPC, or assess it by leave-one-out or training/testing partitioning.",
    )
    d.add_argument("genos", type=Path, help="Long-format genotype CSV (one row per sample x locus).")
    d.add_argument("--pc-preds", type=int, required=True, help="Number of leading PC axes used as predictors.")
    d.add_argument("--method", choices=list(METHODS), default="fit", help="Analysis to perform (default: fit).")
    d.add_argument(
        "--scaling",
        choices=list(SCALING_POLICIES),
        default="covar",
        help="Locus scaling before PCA (default: covar).",
    )
    d.add_argument("--num-cores", type=int, default=1, help="Worker processes for loo_cv (default: 1).")
    d.add_argument(
        "--train-prop",
        type=float,
        default=0.7,
        help="Training proportion per population for train_test (default: 0.7).",
    )
    d.add_argument("--seed", type=int, default=None, help="Random seed for train_test.")
    d.add_argument("--sample-col", default="SAMPLE", help="Sample column (default: SAMPLE).")
    d.add_argument("--locus-col", default="LOCUS", help="Locus column (default: LOCUS).")
    d.add_argument("--geno-col", default="GT", help="Genotype column (default: GT).")
    d.add_argument("--pop-col", default="POP", help="Population column (default: POP).")
    d.add_argument(
        "--prefix",
        type=str,
        required=True,
        help="Output prefix; tables are written as <prefix>.<table>.csv.",
    )

    # Structured test data.
    s = sub.add_parser("simulate", help="Simulate genotypes for structured populations.")
    s.add_argument("--n-pops", type=int, default=3, help="Number of populations (default: 3).")
    s.add_argument("--n-per-pop", type=int, default=10, help="Samples per population (default: 10).")
    s.add_argument("--n-snp", type=int, default=50, help="Number of loci (default: 50).")
    s.add_argument("--fst", type=float, default=0.1, help="Balding-Nichols Fst (default: 0.1).")
    s.add_argument("--seed", type=int, default=None, help="Random seed.")
    s.add_argument("--out", type=Path, required=True, help="Output long-format genotype CSV.")

    # Family simulation.
    fs = sub.add_parser("family-sim", help="Simulate families from population allele frequencies.")
    fs.add_argument("freqs", type=Path, help="CSV of allele frequencies per locus.")
    fs.add_argument("--locus-col", default="LOCUS", help="Locus column (default: LOCUS).")
    fs.add_argument("--freq-col", default="FREQ", help="Frequency column (default: FREQ).")
    fs.add_argument("--num-sims", type=int, default=100, help="Number of simulated families (default: 100).")
    fs.add_argument("--seed", type=int, default=None, help="Random seed.")
    fs.add_argument("--out", type=Path, required=True, help="Output CSV: SIM,SAMPLE,LOCUS,GT.")

    # Relatedness comparison.
    fc = sub.add_parser(
        "family-compare",
        help="Compare observed relatedness against simulated families (Yang GRM).",
    )
    fc.add_argument("sim_family", type=Path, help="Output CSV of family-sim.")
    fc.add_argument("obs_genos", type=Path, help="Observed long-format genotype CSV (SAMPLE,LOCUS,GT).")
    fc.add_argument("--out", type=Path, required=True, help="Output CSV: SIM,SAMPLE1,SAMPLE2,FAMILY,RELATE.")

    return p


def _write(df: pd.DataFrame, path: Path, index: bool = False) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=index)
    logger.info(f"Wrote {path}")


def cmd_dapc(args: argparse.Namespace) -> None:
    dat = pd.read_csv(args.genos)
    columns = ColumnMap(
        sample=args.sample_col,
        locus=args.locus_col,
        genotype=args.geno_col,
        population=args.pop_col,
    )
    res = dapc.dapc_fit(
        dat,
        pc_preds=args.pc_preds,
        method=args.method,
        scaling=args.scaling,
        num_cores=args.num_cores,
        train_prop=args.train_prop,
        seed=args.seed,
        columns=columns,
    )

    prefix = args.prefix
    if isinstance(res, dapc.DAPCFit):
        _write(res.da_tab, Path(f"{prefix}.da_tab.csv"))
        _write(res.da_prob, Path(f"{prefix}.da_prob.csv"))
        _write(res.pca_tab, Path(f"{prefix}.pca_tab.csv"))
        _write(res.snp_contrib, Path(f"{prefix}.snp_contrib.csv"))
        variance = pd.DataFrame(
            {
                "axis": [f"LD{i+1}" for i in range(len(res.exp_var))] + ["among"],
                "percent": list(res.exp_var) + [res.among_var],
            }
        )
        _write(variance, Path(f"{prefix}.variance.csv"))
    else:
        _write(res.tab, Path(f"{prefix}.pred.csv"))
        _write(res.pairs_long, Path(f"{prefix}.pairs_long.csv"))
        _write(res.pairs_wide, Path(f"{prefix}.pairs_wide.csv"), index=True)
        _write(pd.DataFrame({"global": [res.global_rate]}), Path(f"{prefix}.global.csv"))


def cmd_simulate(args: argparse.Namespace) -> None:
    simdata = sim.simulate_populations(
        n_pops=args.n_pops,
        n_per_pop=args.n_per_pop,
        n_snp=args.n_snp,
        fst=args.fst,
        seed=args.seed,
    )
    _write(simdata.to_long(), args.out)


def cmd_family_sim(args: argparse.Namespace) -> None:
    freqs = pd.read_csv(args.freqs)
    sim_family = family.family_sim_data(
        freqs,
        locus_col=args.locus_col,
        freq_col=args.freq_col,
        num_sims=args.num_sims,
        seed=args.seed,
    )
    _write(sim_family, args.out)


def _grm_from_long(df: pd.DataFrame) -> pd.DataFrame:
    if POP not in df.columns:
        df = df.assign(**{POP: "all"})
    return grm.yang_grm(to_matrix(prepare_genotypes(df)))


def cmd_family_compare(args: argparse.Namespace) -> None:
    sim_family = pd.read_csv(args.sim_family)
    obs = pd.read_csv(args.obs_genos)
    rel = family.family_sim_compare(
        sim_family=sim_family,
        sim_grm=_grm_from_long(sim_family),
        obs_grm=_grm_from_long(obs),
    )
    _write(rel, args.out)


def main(argv: Sequence[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)
    setup_logging(verbose=args.verbose, log_file=args.log_file)

    try:
        if args.command == "dapc":
            cmd_dapc(args)
        elif args.command == "simulate":
            cmd_simulate(args)
        elif args.command == "family-sim":
            cmd_family_sim(args)
        elif args.command == "family-compare":
            cmd_family_compare(args)
        else:
            parser.error(f"Unknown command {args.command}")
    except GenodapcError as exc:
        raise SystemExit(f"genodapc: error: {exc}")


if __name__ == "__main__":
    main()
