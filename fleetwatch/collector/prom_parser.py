import re
from typing import Dict, Iterator, Tuple

METRIC_LINE = re.compile(
    r'^([a-zA-Z_:][a-zA-Z0-9_:]*)'
    r'(\{.*?\})?\s+([-+]?[0-9]*\.?[0-9eE+-]+|[-+]?Inf|NaN)(?:\s+-?\d+)?$'
)
LABEL_PAIR = re.compile(r'([a-zA-Z_][a-zA-Z0-9_]*)="((?:[^"\\]|\\.)*)"')


def parse_labels(raw: str) -> Dict[str, str]:
    """'{segment="headers",stage="Finish"}' -> {"segment": "headers", "stage": "Finish"}"""
    if not raw:
        return {}
    return dict(LABEL_PAIR.findall(raw))


def iter_samples(text: str) -> Iterator[Tuple[str, Dict[str, str], float]]:
    """
    Yield (metric_name, labels, value) for every sample line.

    Comments, blank lines and lines whose value does not parse are skipped.
    """
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        match = METRIC_LINE.match(line)
        if not match:
            continue

        name, labels, value = match.groups()
        try:
            parsed = float(value)
        except ValueError:
            continue

        yield name, parse_labels(labels or ""), parsed


def parse_prometheus_text(text: str) -> dict:
    """
    Parse Prometheus exposition format into {metric_name: value}

    Labelled series of the same name collapse to the last value seen.
    """
    metrics = {}
    for name, _labels, value in iter_samples(text):
        metrics[name] = value
    return metrics
