#!/usr/bin/env python3
"""Query a MecaLink server for nearby garages and print a JSON report.

Goes through the resilient client, so an unreachable server still yields a
report (flagged as degraded) instead of a stack trace.
"""
import argparse
import json
import os
import sys
from typing import Any, Dict, List, Optional

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pydantic import ValidationError  # noqa: E402

from mecalink.client.api_client import DEFAULT_API_URL, DEFAULT_RADIUS_KM, MecaLinkClient  # noqa: E402
from mecalink.client.resilience import QueryResult, ResilientMecaLinkClient  # noqa: E402
from mecalink.models import Position  # noqa: E402


def build_report(result: QueryResult, position: Position, radius_km: float) -> Dict[str, Any]:
    providers = result.data or []
    report: Dict[str, Any] = {
        "origin": position.model_dump(),
        "radius_km": radius_km,
        "degraded": result.degraded,
        "count": len(providers),
        "providers": [
            {
                "id": provider.id,
                "name": provider.name,
                "distance_km": round(provider.distance_km, 3) if provider.distance_km is not None else None,
                "synthetic": provider.synthetic,
            }
            for provider in providers
        ],
    }
    if result.degraded:
        report["source"] = result.source
        report["warning"] = result.warning
    return report


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Rank garages near a position.")
    parser.add_argument("latitude", type=float)
    parser.add_argument("longitude", type=float)
    parser.add_argument("--radius", type=float, default=DEFAULT_RADIUS_KM, help="search radius in km")
    parser.add_argument("--api-url", default=DEFAULT_API_URL)
    parser.add_argument("--timeout", type=float, default=5.0)
    args = parser.parse_args(argv)

    try:
        position = Position(latitude=args.latitude, longitude=args.longitude)
    except ValidationError as exc:
        error = exc.errors()[0]
        parser.error(f"{error['loc'][0]}: {error['msg']}")
    client = ResilientMecaLinkClient(MecaLinkClient(base_url=args.api_url, timeout=args.timeout))
    result = client.nearby_providers(position, radius_km=args.radius)
    print(json.dumps(build_report(result, position, args.radius), indent=2, ensure_ascii=False))
    return 1 if result.degraded else 0


if __name__ == "__main__":
    raise SystemExit(main())
