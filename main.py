from pathlib import Path
from typing import List, Optional

import typer

from poptrend.config import (
    DEFAULT_CREDIBLE_INTERVAL,
    DEFAULT_DECLINE_THRESHOLDS,
    DEFAULT_MAX_DROPPED_FRACTION,
    DEFAULT_OUTPUT_ROOT,
    DEFAULT_QUANTILES,
    DEFAULT_TRAJECTORY_INTERVAL,
    DEFAULT_TRAJECTORY_YEARS,
    MIN_OBSERVATIONS_PER_SITE,
    TrendConfig,
)
from poptrend.datahub import (
    PER_DRAW_FILENAME,
    REGISTRY_FILENAME,
    SUMMARY_FILENAME,
    drop_sparse_sites,
    load_draws,
    load_observations,
    read_registry,
    write_json,
    write_registry,
    write_table,
)
from poptrend.fitting import PriorConfig, TrendModelFitter
from poptrend.pipelines import run_trend_pipeline
from poptrend.posterior import PosteriorDraws, draws_from_inference_data, load_inference_data, long_from_draws
from poptrend.prediction import predict_trajectories, summarize_trajectories

app = typer.Typer()


def _load_posterior(trace: Optional[Path], fixed: Optional[Path], random: Optional[Path]) -> PosteriorDraws:
    if trace is not None:
        if fixed is not None or random is not None:
            raise typer.BadParameter("Pass either --trace or --fixed/--random, not both.")
        return draws_from_inference_data(load_inference_data(trace))
    if fixed is None or random is None:
        raise typer.BadParameter("Pass --trace, or both --fixed and --random.")
    return load_draws(fixed, random)


@app.command()
def fit(
    observations: Path = typer.Option(..., "--observations", help="Cleaned observation CSV."),
    output_dir: Path = typer.Option(
        DEFAULT_OUTPUT_ROOT / "fit",
        "--output-dir",
        file_okay=False,
        dir_okay=True,
        writable=True,
        help="Directory for the trace, registry and draw tables.",
    ),
    min_observations: int = typer.Option(
        MIN_OBSERVATIONS_PER_SITE,
        "--min-observations",
        help="Drop sites with fewer observations before fitting.",
    ),
    draws: int = typer.Option(1000, "--draws", help="Posterior draws per chain."),
    tune: int = typer.Option(1000, "--tune", help="Tuning steps per chain."),
    chains: int = typer.Option(4, "--chains"),
    cores: Optional[int] = typer.Option(None, "--cores"),
    seed: Optional[int] = typer.Option(None, "--seed"),
    overdispersion: bool = typer.Option(True, help="Include an observation-level over-dispersion term."),
) -> None:
    """
    Fit the Poisson trend model and store its posterior draws.
    """
    if min_observations < MIN_OBSERVATIONS_PER_SITE:
        raise typer.BadParameter(f"--min-observations must be at least {MIN_OBSERVATIONS_PER_SITE}.")
    cleaned = drop_sparse_sites(load_observations(observations), min_observations)
    fitter = TrendModelFitter(
        priors=PriorConfig(),
        draws=draws,
        tune=tune,
        chains=chains,
        cores=cores,
        random_seed=seed,
        overdispersion=overdispersion,
    )
    idata = fitter.fit(cleaned)

    output_dir.mkdir(parents=True, exist_ok=True)
    idata.to_netcdf(str(output_dir / "trace.nc"))
    write_registry(fitter.registry, output_dir / REGISTRY_FILENAME)
    fixed, random = long_from_draws(fitter.posterior_draws())
    write_table(fixed, output_dir / "fixed_effects.csv")
    write_table(random, output_dir / "random_effects.csv")
    print(fitter.diagnostics())
    print(f"[fit] Saved trace, registry and draw tables under {output_dir}")


@app.command()
def change(
    registry_path: Path = typer.Option(..., "--registry", help="Site registry JSON written by `fit`."),
    start: int = typer.Option(..., "--start", help="Reference start year."),
    end: int = typer.Option(..., "--end", help="Reference end year."),
    trace: Optional[Path] = typer.Option(None, "--trace", help="ArviZ NetCDF trace."),
    fixed: Optional[Path] = typer.Option(None, "--fixed", help="Fixed-effects CSV, one row per draw."),
    random: Optional[Path] = typer.Option(None, "--random", help="Long random-effects CSV."),
    marginal: bool = typer.Option(False, "--marginal", help="Drop site random effects (population average)."),
    quantiles: List[float] = typer.Option(list(DEFAULT_QUANTILES), "--quantile", show_default=True),
    thresholds: List[float] = typer.Option(list(DEFAULT_DECLINE_THRESHOLDS), "--threshold", show_default=True),
    credible_interval: float = typer.Option(DEFAULT_CREDIBLE_INTERVAL, "--credible-interval"),
    max_dropped_fraction: float = typer.Option(DEFAULT_MAX_DROPPED_FRACTION, "--max-dropped-fraction"),
    ceiling: Optional[float] = typer.Option(None, "--ceiling", help="Largest admissible expected count."),
    exclude_extrapolated: bool = typer.Option(
        False,
        "--exclude-extrapolated",
        help="Leave site-years outside the observed window out of the totals.",
    ),
    workers: int = typer.Option(4, "--workers"),
    output_dir: Path = typer.Option(DEFAULT_OUTPUT_ROOT / "change", "--output-dir", file_okay=False, dir_okay=True),
) -> None:
    """
    Estimate the regional percent change between two years.
    """
    config = TrendConfig(
        year_start=start,
        year_end=end,
        use_random_effects=not marginal,
        quantiles=tuple(quantiles),
        decline_thresholds=tuple(thresholds),
        credible_interval=credible_interval,
        max_dropped_fraction=max_dropped_fraction,
        count_ceiling=ceiling,
        extrapolation="exclude" if exclude_extrapolated else "include",
        max_workers=workers,
    )
    try:
        config.validate()
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    registry = read_registry(registry_path)
    draws = _load_posterior(trace, fixed, random)
    result = run_trend_pipeline(registry, draws, config)

    write_table(result.distribution.to_frame(), output_dir / PER_DRAW_FILENAME)
    write_json(output_dir / SUMMARY_FILENAME, result.summary.to_dict())
    print(f"[trend] Saved per-draw changes and summary under {output_dir}")


@app.command()
def trajectories(
    registry_path: Path = typer.Option(..., "--registry", help="Site registry JSON written by `fit`."),
    trace: Optional[Path] = typer.Option(None, "--trace"),
    fixed: Optional[Path] = typer.Option(None, "--fixed"),
    random: Optional[Path] = typer.Option(None, "--random"),
    first_year: int = typer.Option(DEFAULT_TRAJECTORY_YEARS[0], "--first-year"),
    last_year: int = typer.Option(DEFAULT_TRAJECTORY_YEARS[1], "--last-year"),
    marginal: bool = typer.Option(False, "--marginal"),
    observed_window_only: bool = typer.Option(
        False,
        "--observed-window-only",
        help="Restrict each site to the years between its first and last count.",
    ),
    credible_interval: float = typer.Option(DEFAULT_TRAJECTORY_INTERVAL, "--credible-interval"),
    output: Path = typer.Option(DEFAULT_OUTPUT_ROOT / "trajectories.csv", "--output"),
) -> None:
    """
    Posterior mean and HDI of expected counts per site and year.
    """
    if last_year < first_year:
        raise typer.BadParameter("--last-year must not precede --first-year.")
    registry = read_registry(registry_path)
    draws = _load_posterior(trace, fixed, random)
    print(f"[trajectories] {len(registry)} sites, {first_year}-{last_year}, {len(draws)} draws.")
    long_frame = predict_trajectories(
        registry,
        draws,
        range(first_year, last_year + 1),
        use_random_effects=not marginal,
        observed_window_only=observed_window_only,
    )
    write_table(summarize_trajectories(long_frame, credible_interval), output)
    print(f"[trajectories] Saved {output}")


if __name__ == "__main__":
    app()
