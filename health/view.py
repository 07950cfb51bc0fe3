"""Service health view.

Combines two already-fetched maps (online status and baseline lookups) into
one ServiceHealthSnapshot per service. Pure: no I/O, no state.

It fails closed. A service absent from the online map is offline, and a
baseline lookup that is missing, None, or not understood means "no baseline".
A temporarily unreachable baseline endpoint therefore shows as a service
without a baseline rather than an error.
"""

from typing import Iterable, Mapping

from schemas.health import BaselineInfo, ServiceHealthSnapshot

_NO_BASELINE = BaselineInfo(has_baseline=False)


def summarize(
    service_names: Iterable[str],
    online_map: Mapping[str, bool],
    baseline_lookup: Mapping[str, BaselineInfo | dict | None],
) -> dict[str, ServiceHealthSnapshot]:
    """Build the per-service health map.

    Args:
        service_names: Services to summarize, in display order.
        online_map: Service name → reachable, from the status call.
        baseline_lookup: Service name → baseline result. Values may be
            BaselineInfo, the raw backend dict, or None for a failed lookup.

    Returns:
        Service name → ServiceHealthSnapshot, in service_names order.
    """
    return {
        name: _snapshot(bool(online_map.get(name, False)), _baseline(baseline_lookup.get(name)))
        for name in service_names
    }


def _baseline(raw: BaselineInfo | dict | None) -> BaselineInfo:
    if isinstance(raw, BaselineInfo):
        return raw
    if isinstance(raw, dict):
        try:
            return BaselineInfo.model_validate(raw)
        except ValueError:
            return _NO_BASELINE
    return _NO_BASELINE


def _snapshot(online: bool, baseline: BaselineInfo) -> ServiceHealthSnapshot:
    if not baseline.has_baseline:
        return ServiceHealthSnapshot(online=online, has_baseline=False)
    return ServiceHealthSnapshot(
        online=online,
        has_baseline=True,
        baseline_set_at=baseline.baseline_set_at,
        baseline_version=baseline.version,
    )
