"""Display helpers for competition metrics and scores."""

from reelrank.database.models import CompetitionMetric

METRIC_LABELS = {
    CompetitionMetric.POINTS: "Total Points",
    CompetitionMetric.CATCHES: "Most Catches",
    CompetitionMetric.WEIGHT: "Biggest Fish (Weight)",
    CompetitionMetric.LENGTH: "Biggest Fish (Length)",
}

_SCORE_FORMATTERS = {
    CompetitionMetric.POINTS: lambda score: f"{round(score)} pts",
    CompetitionMetric.CATCHES: lambda score: f"{round(score)} catches",
    CompetitionMetric.WEIGHT: lambda score: f"{score:.2f} lbs",
    CompetitionMetric.LENGTH: lambda score: f"{score:.1f} in",
}


def get_metric_label(metric: str) -> str:
    """Human-readable label for a competition metric."""
    return METRIC_LABELS[CompetitionMetric(metric)]


def format_score(score: float, metric: str) -> str:
    """
    Format a participant score with the unit for its metric.

    Examples:
        >>> format_score(55, "points")
        '55 pts'
        >>> format_score(8.254, "weight")
        '8.25 lbs'
    """
    return _SCORE_FORMATTERS[CompetitionMetric(metric)](score)
