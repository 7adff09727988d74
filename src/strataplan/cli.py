from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich import print

from .config import ConfigurationError, StratifyConfig
from .io.files import read_table, write_table
from .manifest import (
    build_manifest,
    build_recruitment_section,
    build_stratification_section,
    utc_now,
)
from .packaging import build_zip, recruitment_list_filename

app = typer.Typer(
    add_completion=False,
    help="strataplan - stratified recruitment planning for generalizability studies",
    no_args_is_help=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _zip_output_path(output_file: str) -> Path:
    """Replace user's extension with .zip."""
    return Path(output_file).with_suffix(".zip")


def _echo_event(event) -> None:
    if event.kind == "iteration":
        return
    print(f"[dim]{event.message}[/dim]")


def _build_config(id_col, variables, n_strata, categorical, sample, max_iter, seed) -> StratifyConfig:
    return StratifyConfig.build(
        id_col=id_col,
        variables=variables,
        n_strata=n_strata,
        categorical=categorical,
        sample_size=sample,
        max_iter=max_iter,
        random_state=seed,
    )


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", help="Log pipeline details")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("describe")
def describe_cmd(
    input_file: str = typer.Argument(..., help="Population table (csv/tsv/xlsx)"),
    variables: List[str] = typer.Option(..., "--var", "-v", help="Stratifying variable"),
    categorical: Optional[List[str]] = typer.Option(
        None, "--categorical", "-C", help="Treat a numeric-coded variable as categorical"
    ),
):
    """Descriptive statistics of the candidate stratifying variables."""
    from .prepare import describe_variables

    df = read_table(input_file)
    try:
        cont, cats = describe_variables(df, variables, categorical)
    except ConfigurationError as e:
        raise typer.BadParameter(str(e))

    if not cont.empty:
        print("[bold]Continuous variables[/bold]")
        print(cont.to_string(index=False))
    for name, counts in cats.items():
        print(f"\nNumber of observations in levels of [bold blue]{name}[/bold blue]:")
        print(counts.to_string())


@app.command("stratify")
def stratify_cmd(
    input_file: str = typer.Argument(..., help="Population table (csv/tsv/xlsx)"),
    output_file: str = typer.Argument(..., help="Output file (written as .zip)"),
    id_col: str = typer.Option(..., "--id", help="Unit identifier column"),
    variables: List[str] = typer.Option(..., "--var", "-v", help="Stratifying variable"),
    n_strata: int = typer.Option(..., "--strata", "-k", help="Number of strata"),
    sample: Optional[int] = typer.Option(None, "--sample", "-n", help="Desired sample size"),
    categorical: Optional[List[str]] = typer.Option(
        None, "--categorical", "-C", help="Treat a numeric-coded variable as categorical"
    ),
    exact: bool = typer.Option(False, "--exact", help="Make per-stratum targets add up to --sample"),
    seed: int = typer.Option(19, "--seed", help="Random seed for k-means++ seeding"),
    max_iter: int = typer.Option(100, "--max-iter", help="k-means iteration cap"),
    lists_dir: Optional[str] = typer.Option(
        None, "--lists-dir", help="Also write recruitment_list_for_#.csv files here"
    ),
):
    """Group the population into strata and build recruitment lists."""
    from .recruit import recruit
    from .stratify import stratify

    df = read_table(input_file)
    config = _build_config(id_col, variables, n_strata, categorical, sample, max_iter, seed)
    try:
        result = stratify(df, config, on_event=_echo_event)
        plan = recruit(result, sample, exact=exact) if sample is not None else None
    except ConfigurationError as e:
        raise typer.BadParameter(str(e))

    print(
        f"[bold blue]Grouped {result.population_size} units into {result.n_strata} strata.[/bold blue]"
    )
    print(
        f"The strata explain [bold]{100 * round(result.variance_explained, 4):.2f}%[/bold] "
        "of the total variation in the population."
    )
    print(result.profile.formatted.to_string(index=False))

    warnings = list(result.warnings)
    if plan is not None:
        print("")
        print(plan.table.to_string(index=False))
        warnings.extend(plan.warnings)
    for w in warnings:
        print(f"[yellow]![/yellow] {w}")

    ts = utc_now()
    manifest = build_manifest(
        tool="stratify",
        original_filename=Path(input_file).name,
        file_type=Path(input_file).suffix.lstrip("."),
        row_count=len(df),
        timestamp=ts,
        reproducibility={
            "seed": seed,
            "parameters": {"n_strata": n_strata, "max_iter": max_iter, "sample_size": sample},
        },
        stratification=build_stratification_section(result),
        recruitment=build_recruitment_section(plan) if plan is not None else None,
        warnings=warnings,
    )
    zip_bytes, _ = build_zip(
        manifest=manifest,
        result=result,
        plan=plan,
        input_basename=Path(input_file).stem,
    )
    out = _zip_output_path(output_file)
    out.write_bytes(zip_bytes)
    print(f"[green]✓[/green] Saved: {out}")

    if lists_dir:
        target = Path(lists_dir)
        target.mkdir(parents=True, exist_ok=True)
        for stratum, ranked in sorted(result.recruitment_lists.items()):
            write_table(ranked[["rank", result.id_col]], target / recruitment_list_filename(stratum))
        print(f"[green]✓[/green] {result.n_strata} recruitment lists written to {target}")


@app.command("scan")
def scan_cmd(
    input_file: str = typer.Argument(..., help="Population table (csv/tsv/xlsx)"),
    id_col: str = typer.Option(..., "--id", help="Unit identifier column"),
    variables: List[str] = typer.Option(..., "--var", "-v", help="Stratifying variable"),
    strata: List[int] = typer.Option(..., "--strata", "-k", help="Stratum count to try (repeatable)"),
    categorical: Optional[List[str]] = typer.Option(
        None, "--categorical", "-C", help="Treat a numeric-coded variable as categorical"
    ),
    seed: int = typer.Option(19, "--seed", help="Random seed for k-means++ seeding"),
    max_iter: int = typer.Option(100, "--max-iter", help="k-means iteration cap"),
):
    """Compare the variance explained for several stratum counts."""
    from .stratify import restratify, stratify

    df = read_table(input_file)
    counts = sorted(set(strata))
    config = _build_config(id_col, variables, counts[0], categorical, None, max_iter, seed)
    try:
        result = stratify(df, config)
        print(f"k={result.n_strata}: {100 * round(result.variance_explained, 4):.2f}% explained")
        for k in counts[1:]:
            result = restratify(result, k)
            print(f"k={result.n_strata}: {100 * round(result.variance_explained, 4):.2f}% explained")
    except ConfigurationError as e:
        raise typer.BadParameter(str(e))


if __name__ == "__main__":
    app()
