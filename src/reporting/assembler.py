from typing import Any, Dict, List, Optional
from fastapi.encoders import jsonable_encoder
from .problems import Severity
from .recommendations import Recommendations

class Assemble:
    """
    Combines outputs from multiple checkers into one consistent response.

    Design intent:
      - Each checker focuses on detection (HTTP-01 fetch, CAA, DNS lookups)
      - The assembler is responsible for shaping results into a single response format:
          - JSON-safe output
          - unified problem list
          - recommendations
          - summary
    """

    def build(
        self,
        target: str,
        checks: Dict[str, Any],
        problems: Optional[List[Dict[str, Any]]] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Build a unified response.

        Args:
            target: The domain being checked (already validated/normalized upstream).
            checks: Dict of check_name -> checker output. An output is either a list of
                    Problems or an object/dict carrying them under "problems".
            problems: Optional pre-built problem list. If not provided, problems will be
                      collected from each check output.
            meta: Optional metadata (version, timings, etc.).

        Returns:
            A dict containing only JSON-safe values (dict/list/str/int/etc.).
        """
        checks_json: Dict[str, Any] = {name: self._to_json(value) for name, value in checks.items()}

        unified = problems if problems is not None else self._collect_problems(checks_json)

        self._attach_recommendations(unified)

        # most severe first
        unified.sort(key=lambda p: -self._rank(p.get("severity")))

        response: Dict[str, Any] = {
            "target": target,
            "problems": unified,
            "summary": self._summarize(unified),
            "meta": meta or {},
            "checks": checks_json,
        }

        return jsonable_encoder(response)

    def _to_json(self, obj: Any) -> Any:
        if isinstance(obj, list):
            return {"problems": [self._to_json(p) for p in obj]}
        if hasattr(obj, "to_dict"):
            return jsonable_encoder(obj.to_dict())
        return jsonable_encoder(obj)

    def _collect_problems(self, checks_json: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Pull problems out of each check output and merge them into a single list.

        Adds "check": check_name to each problem so the UI can group/filter by source.
        """
        out: List[Dict[str, Any]] = []

        for check_name, result in checks_json.items():
            problems = (result or {}).get("problems", []) if isinstance(result, dict) else []

            for p in problems if isinstance(problems, list) else []:
                if isinstance(p, dict):
                    p = dict(p)
                    p.setdefault("check", check_name)
                    out.append(p)

        return out

    def _attach_recommendations(self, problems: List[Dict[str, Any]]) -> None:
        for p in problems:
            name = (p.get("name") or "").strip()
            p["recommendation"] = Recommendations.recommend(name) if name else ""

    @staticmethod
    def _rank(label: Any) -> int:
        try:
            return Severity(label).rank
        except ValueError:
            return -1

    def _summarize(self, problems: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Counts by severity plus an overall verdict:
          broken  - at least one Fatal or Error problem
          warning - only Warning problems
          ok      - nothing actionable (Debug problems are tooling failures, not domain issues)
        """
        counts = {s.value: 0 for s in Severity}
        counts["unknown"] = 0

        for p in problems:
            sev = p.get("severity")
            key = sev if sev in counts else "unknown"
            counts[key] += 1

        if counts[Severity.FATAL.value] or counts[Severity.ERROR.value]:
            overall = "broken"
        elif counts[Severity.WARNING.value]:
            overall = "warning"
        else:
            overall = "ok"

        return {"problems": len(problems), **counts, "overall": overall}
