"""
End-to-end CTG analysis pipeline.

Runs the stages in dependency order on explicit, separately named inputs:
the raw dataset snapshot, the binary and three-class outcome codings, and
the principal-component score table. Each stage is isolated: a failure is
logged and recorded in the summary, stages depending on it are skipped,
and independent stages still run.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional, Sequence

import numpy as np

from ctgstats.analysis.classification.naive_bayes import run_naive_bayes
from ctgstats.analysis.classification.plsda import run_plsda
from ctgstats.analysis.diagnostics.normality import run_normality_diagnostics
from ctgstats.analysis.models.gam import run_gam_check
from ctgstats.analysis.models.logistic import (
    fit_single_predictor,
    logit_fit_predict,
    predict_proba,
)
from ctgstats.analysis.models.selection import rank_models, select_model
from ctgstats.analysis.multivariate.group_comparison import run_group_comparison
from ctgstats.analysis.reduction.pca import run_pca, top_loading_features
from ctgstats.analysis.validation.cross_validation import cross_validate_mspe
from ctgstats.analysis.validation.roc import (
    best_threshold,
    operating_point_metrics,
    roc_analysis,
    threshold_for_sensitivity,
)
from ctgstats.analysis.visualization import plot_roc_curves
from ctgstats.config import get_config_value
from ctgstats.data.loader import CTGDataset, class_balance, load_ctg

logger = logging.getLogger(__name__)

STAGES = (
    "normality",
    "pca",
    "gam",
    "selection",
    "single_predictor",
    "cross_validation",
    "roc",
    "group_comparison",
    "plsda",
    "naive_bayes",
)

BINARY_LABELS = ["normal", "of concern"]


def _run_stage(
    name: str,
    func: Callable[[], tuple[Any, dict]],
    summary: Dict[str, Any],
    requires: Sequence[str] = (),
    skip: Iterable[str] = (),
) -> Any:
    """Run one stage, recording completed/failed/skipped in ``summary``."""
    if name in skip:
        logger.info("[%s] Skipped by request", name)
        summary[name] = {"status": "skipped", "reason": "skipped by request"}
        return None

    missing = [r for r in requires if summary.get(r, {}).get("status") != "completed"]
    if missing:
        logger.warning("[%s] Skipped: depends on %s", name, ", ".join(missing))
        summary[name] = {"status": "skipped", "reason": f"requires {', '.join(missing)}"}
        return None

    logger.info("[%s] Running...", name)
    try:
        result, stage_summary = func()
    except (ValueError, np.linalg.LinAlgError) as exc:
        logger.warning("[%s] Failed: %s", name, exc)
        summary[name] = {"status": "failed", "reason": str(exc)}
        return None

    summary[name] = {"status": "completed", **stage_summary}
    return result


def run_pipeline(
    config: Dict[str, Any],
    dataset: Optional[CTGDataset] = None,
    output_dir: Optional[Path] = None,
    skip: Iterable[str] = (),
) -> Dict[str, Any]:
    """Run the full analysis.

    Parameters
    ----------
    config : dict
        Loaded configuration (see ``ctgstats/configs/default.yaml``).
    dataset : CTGDataset, optional
        Pre-loaded data; otherwise read from ``data.path``.
    output_dir : Path, optional
        Output root; defaults to ``output.dir``.
    skip : iterable of str
        Stage names not to run.

    Returns
    -------
    dict with keys:
        summary : dict — JSON-serialisable per-stage status and statistics
        results : dict — in-memory stage outputs (fitted models, curves)
    """
    def cfg(key: str, default: Any = None) -> Any:
        return get_config_value(config, key, default)

    skip = set(skip)
    unknown = skip - set(STAGES)
    if unknown:
        raise ValueError(f"Unknown stage(s) to skip: {sorted(unknown)}")

    output_dir = Path(output_dir or cfg("output.dir", "./outputs_ctg"))
    output_dir.mkdir(parents=True, exist_ok=True)
    plots = bool(cfg("plots.enabled", True))
    seed = int(cfg("random.seed", 42))

    def stage_dir(name: str) -> Path:
        d = output_dir / name
        d.mkdir(parents=True, exist_ok=True)
        return d

    def plot_dir(name: str) -> Optional[Path]:
        return stage_dir(name) if plots else None

    # Stages 1-2: load and recode (fatal on failure)
    if dataset is None:
        dataset = load_ctg(cfg("data.path"))
    features = dataset.features
    feature_names = dataset.feature_names
    label_names = dataset.label_names
    y_binary = dataset.binary_outcome()
    y_labels = dataset.labels()

    balance = class_balance(dataset.outcome)
    summary: Dict[str, Any] = {
        "started": datetime.now().isoformat(timespec="seconds"),
        "source": dataset.source,
        "n_samples": dataset.n_samples,
        "n_features": len(feature_names),
        "class_balance": {
            name: {"count": int(row["count"]), "proportion": float(row["proportion"])}
            for name, row in balance.iterrows()
        },
        "binary_positive_rate": float(y_binary.mean()),
    }
    results: Dict[str, Any] = {}

    # Stage 3: normality diagnostics
    def normality():
        out = run_normality_diagnostics(
            features, alpha=float(cfg("normality.alpha", 0.05)),
            output_dir=plot_dir("normality"),
        )
        return out, {"mardia": out["mardia"]}

    results["normality"] = _run_stage("normality", normality, summary, skip=skip)

    # Stage 4: PCA
    n_components = int(cfg("pca.n_components", 5))

    def pca():
        out = run_pca(
            features, n_components=n_components,
            y=y_labels, label_names=label_names,
            output_dir=plot_dir("pca"),
        )
        return out, {
            "n_components": out["n_components"],
            "explained_variance_ratio": out["explained_variance_ratio"][:n_components].tolist(),
            "cumulative_variance_retained": float(out["cumulative_variance"][n_components - 1]),
            "n_components_95pct": out["n_components_95pct"],
            "dropped_features": out["dropped_features"],
            "top_features_pc1": top_loading_features(out["loadings"], "PC1", n=5),
        }

    pca_out = results["pca"] = _run_stage("pca", pca, summary, skip=skip)
    scores = pca_out["scores"] if pca_out is not None else None

    # Stage 5: GAM nonlinearity check
    def gam():
        out = run_gam_check(
            scores, y_binary,
            spline_df=int(cfg("gam.spline_df", 6)),
            degree=int(cfg("gam.degree", 3)),
            alpha=float(cfg("gam.alpha", 0.05)),
        )
        return out, out

    results["gam"] = _run_stage("gam", gam, summary, requires=["pca"], skip=skip)

    # Stage 6: AICc subset selection on PCs
    def selection():
        table, candidates = rank_models(
            scores, y_binary,
            main_effects=list(scores.columns),
            interactions=cfg("selection.interactions", []) or [],
        )
        chosen = select_model(
            candidates,
            rank_index=cfg("selection.rank_index"),
            alpha=float(cfg("selection.alpha", 0.05)),
            prefer_significant_interactions=bool(
                cfg("selection.prefer_significant_interactions", True)
            ),
        )
        d = stage_dir("selection")
        table.to_csv(d / "aicc_ranking.csv", index=False)
        chosen["coefficients"].to_csv(d / "selected_coefficients.csv")
        out = {"table": table, "candidates": candidates, **chosen}
        return out, {
            "n_candidates": len(candidates),
            "top_models": table.head(5).to_dict(orient="records"),
            "selected": chosen["model"].to_dict(),
            "reason": chosen["reason"],
            "coefficients": chosen["coefficients"].to_dict(orient="index"),
        }

    selected = results["selection"] = _run_stage(
        "selection", selection, summary, requires=["pca"], skip=skip,
    )

    # Stage 7: single-predictor logistic model
    def single_predictor():
        predictor = cfg("single_predictor.feature")
        if predictor is None:
            if pca_out is None:
                raise ValueError("No predictor configured and PCA loadings unavailable")
            predictor = top_loading_features(pca_out["loadings"], "PC1", n=1)[0][0]
        out = fit_single_predictor(features, y_binary, predictor)
        return out, {
            "predictor": predictor,
            "aicc": out["aicc"],
            "coefficients": out["coefficients"].to_dict(orient="index"),
        }

    single = results["single_predictor"] = _run_stage(
        "single_predictor", single_predictor, summary, skip=skip,
    )

    # Stage 8: cross-validated MSPE for both models
    cv_kwargs = dict(
        n_splits=int(cfg("cross_validation.n_splits", 10)),
        n_repeats=int(cfg("cross_validation.n_repeats", 1)),
        stratified=bool(cfg("cross_validation.stratified", True)),
        seed=seed,
    )

    def cross_validation():
        out = {}
        if selected is not None:
            terms = selected["model"].terms
            out["pca_model"] = cross_validate_mspe(
                logit_fit_predict(terms), scores, y_binary, **cv_kwargs,
            )
        if single is not None:
            predictor = single["predictor"]
            out["single_predictor"] = cross_validate_mspe(
                logit_fit_predict([predictor]), features[[predictor]], y_binary,
                **cv_kwargs,
            )
        if not out:
            raise ValueError("No fitted model available for cross-validation")
        return out, {name: r.to_dict() for name, r in out.items()}

    results["cross_validation"] = _run_stage(
        "cross_validation", cross_validation, summary, skip=skip,
    )

    # Stage 9: ROC curves and operating points
    targets = [float(t) for t in cfg("roc.sensitivity_targets", [0.95]) or []]

    def roc():
        probabilities = {}
        if selected is not None:
            probabilities["pca_model"] = predict_proba(
                selected["model"].result, scores, selected["model"].terms,
            )
        if single is not None:
            probabilities["single_predictor"] = single["probabilities"]
        if not probabilities:
            raise ValueError("No fitted model available for ROC analysis")

        curves, points, stage_summary = {}, {}, {}
        for name, prob in probabilities.items():
            curve = roc_analysis(prob, y_binary, label=name)
            best = best_threshold(curve)
            chosen_points = [best]
            per_target = {}
            for target in targets:
                point = threshold_for_sensitivity(curve, target)
                chosen_points.append(point)
                per_target[str(target)] = operating_point_metrics(
                    prob, y_binary, point.threshold,
                )
            curves[name] = curve
            points[name] = chosen_points
            stage_summary[name] = {
                **curve.to_dict(),
                "youden": best.to_dict(),
                "sensitivity_targets": per_target,
            }
            logger.info(
                "ROC %s: AUC=%.4f, Youden t=%.4f (sens=%.3f, spec=%.3f)",
                name, curve.auc, best.threshold, best.sensitivity, best.specificity,
            )
        if plots:
            plot_roc_curves(
                curves, points, title="ROC: PCA model vs single predictor",
                out_path=stage_dir("roc") / "roc_curves.png",
            )
        return {"curves": curves, "operating_points": points}, stage_summary

    results["roc"] = _run_stage("roc", roc, summary, skip=skip)

    # Stage 10: multivariate group comparison on the three outcome groups
    def group_comparison():
        out = run_group_comparison(
            features.values, y_labels, label_names,
            n_perm=int(cfg("group_comparison.n_permutations", 999)),
            alpha=float(cfg("group_comparison.alpha", 0.05)),
            seed=seed,
            output_dir=plot_dir("group_comparison"),
        )
        return out, out

    results["group_comparison"] = _run_stage(
        "group_comparison", group_comparison, summary, skip=skip,
    )

    # Stage 11: PLS-DA for the three-class and binary codings
    def plsda():
        kwargs = dict(
            component_counts=cfg("plsda.component_counts", [2, 5, 10]),
            preferred_components=cfg("plsda.preferred_components"),
            tolerance=float(cfg("plsda.tolerance", 0.01)),
            n_splits=int(cfg("plsda.n_splits", 10)),
            n_repeats=int(cfg("plsda.n_repeats", 5)),
            prediction=cfg("plsda.prediction", "max"),
            seed=seed,
            output_dir=plot_dir("plsda"),
        )
        out = {
            "three_class": run_plsda(
                features.values, y_labels, label_names, feature_names,
                tag="3class", **kwargs,
            ),
            "two_class": run_plsda(
                features.values, y_binary, BINARY_LABELS, feature_names,
                tag="2class", **kwargs,
            ),
        }
        stage_summary = {
            coding: {
                "error_rates": {str(k): v for k, v in r["error_rates"].items()},
                "suggested_components": r["suggested_components"],
                "n_components": r["n_components"],
                "accuracy": r["accuracy"],
                "top_features": r["top_features"][:5],
            }
            for coding, r in out.items()
        }
        return out, stage_summary

    results["plsda"] = _run_stage("plsda", plsda, summary, skip=skip)

    # Stage 12: naive Bayes on the raw three-class outcome
    def naive_bayes():
        out = run_naive_bayes(
            features.values, y_labels, label_names,
            test_size=float(cfg("naive_bayes.test_size", 0.2)),
            seed=seed,
            output_dir=plot_dir("naive_bayes"),
        )
        return out, {
            "accuracy": out["accuracy"],
            "confusion_matrix": out["confusion_matrix"].tolist(),
            "per_class": out["per_class"],
            "n_train": out["n_train"],
            "n_test": out["n_test"],
            "train_proportions": out["train_proportions"],
            "test_proportions": out["test_proportions"],
        }

    results["naive_bayes"] = _run_stage("naive_bayes", naive_bayes, summary, skip=skip)

    summary["finished"] = datetime.now().isoformat(timespec="seconds")
    summary_path = output_dir / "summary.json"
    with open(summary_path, "w") as f:
        json.dump(summary, f, indent=2, default=_json_default)
    logger.info("Saved summary: %s", summary_path)

    return {"summary": summary, "results": results}


def _json_default(value):
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    return str(value)
