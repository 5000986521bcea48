from __future__ import annotations

import json


def parse_alert_features(data: bytes) -> list[dict]:
    """Features of a CAP alert FeatureCollection that carry a properties object."""
    doc = json.loads(data)
    if not isinstance(doc, dict):
        raise ValueError("alert document is not an object")
    if doc.get("type") != "FeatureCollection":
        return []
    features = doc.get("features") or []
    if not isinstance(features, list):
        raise ValueError("alert features is not a list")
    return [f for f in features if isinstance(f, dict) and isinstance(f.get("properties"), dict)]
