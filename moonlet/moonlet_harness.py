"""
Runs named scripts and checks what they print.

A suite is a YAML list of mappings:

    - name: Arithmetic and Grouping Test
      lines:
        - a = 3 + 4 * 2
        - print('a =', a)
      expected:
        - a = 11

`lines` may also be a single block string. `expected` is optional; a case
without it passes as long as no line raised an error. By default every case
runs against the same ScriptRunner, so later cases see earlier definitions.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from moonlet.moonlet_runtime import ScriptRunner, LineError

DEMO_SUITE = Path(__file__).parent / "demo_suite.yaml"


@dataclass
class CaseResult:
    name: str
    passed: bool
    output: List[str] = field(default_factory=list)
    expected: Optional[List[str]] = None
    errors: List[LineError] = field(default_factory=list)

    def summary(self) -> str:
        if self.passed:
            return f"{self.name}: PASS"
        if self.errors:
            return f"{self.name}: FAIL - {self.errors[0].message.splitlines()[0]}"
        return f"{self.name}: FAIL - expected {self.expected!r}, got {self.output!r}"


def _normalize_case(raw: Any, index: int) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise ValueError(f"Suite entry #{index} must be a mapping, not {type(raw).__name__}")
    name = raw.get("name") or f"case {index}"
    lines = raw.get("lines")
    if isinstance(lines, str):
        lines = lines.splitlines()
    if not isinstance(lines, list):
        raise ValueError(f"Suite entry {name!r} needs a 'lines' list or block string")
    expected = raw.get("expected")
    if expected is not None:
        if isinstance(expected, str):
            expected = expected.splitlines()
        expected = [str(e) for e in expected]
    return {"name": str(name), "lines": [str(l) for l in lines], "expected": expected}


def load_suite(source) -> List[Dict[str, Any]]:
    """Loads a suite from a path or from YAML text."""
    if isinstance(source, Path) or (isinstance(source, str) and "\n" not in source and Path(source).exists()):
        text = Path(source).read_text(encoding="utf-8")
    else:
        text = source
    data = yaml.safe_load(text) or []
    if not isinstance(data, list):
        raise ValueError("A suite must be a YAML list of cases")
    return [_normalize_case(raw, i) for i, raw in enumerate(data, start=1)]


async def run_case(runner: ScriptRunner, case: Dict[str, Any]) -> CaseResult:
    res = await runner.run_lines(case["lines"])
    expected = case.get("expected")
    passed = not res.errors and (expected is None or res.output == expected)
    return CaseResult(case["name"], passed, res.output, expected, list(res.errors))


async def run_suite(cases: List[Dict[str, Any]], runner: Optional[ScriptRunner] = None,
                    shared: bool = True) -> List[CaseResult]:
    results = []
    for case in cases:
        if runner is None or not shared:
            runner = ScriptRunner()
        results.append(await run_case(runner, case))
    return results


def format_report(results: List[CaseResult]) -> str:
    passed = sum(1 for r in results if r.passed)
    out = ["------------ moonlet suite summary ------------"]
    out.extend(r.summary() for r in results)
    out.append(f"{passed}/{len(results)} passed")
    return "\n".join(out)
