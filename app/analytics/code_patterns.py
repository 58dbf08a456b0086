# app/analytics/code_patterns.py
from __future__ import annotations
import re
from typing import Callable, Dict, List, Mapping, Optional, Pattern, Sequence

from core.hooks.events import wall_ms
from core.storage.day_stats import CodePattern, PatternLocation

FUNCTION_RE: Dict[str, Pattern[str]] = {
    "javascript": re.compile(
        r"^\s*(?:export\s+)?(?:async\s+)?function\s+\w+"
        r"|^\s*(?:export\s+)?(?:const|let|var)\s+\w+\s*=\s*(?:async\s+)?\([^)]*\)\s*=>"
        r"|^\s*(?:export\s+)?(?:const|let|var)\s+\w+\s*=\s*(?:async\s+)?function"
    ),
    "typescript": re.compile(
        r"^\s*(?:export\s+)?(?:public|private|protected)?\s*(?:async\s+)?(?:function\s+\w+|(\w+)\s*\([^)]*\)\s*[:{])"
    ),
    "python": re.compile(r"^\s*(?:async\s+)?def\s+\w+\s*\("),
    "java": re.compile(r"^\s*(?:public|private|protected)?\s*(?:static)?\s*\w+\s+\w+\s*\([^)]*\)\s*{"),
    "cpp": re.compile(r"^\s*(?:inline|static)?\s*\w+\s+\w+\s*\([^)]*\)\s*{"),
    "csharp": re.compile(r"^\s*(?:public|private|protected|internal)?\s*(?:static)?\s*\w+\s+\w+\s*\([^)]*\)"),
}

CLASS_RE: Dict[str, Pattern[str]] = {
    "javascript": re.compile(r"^\s*(?:export\s+)?class\s+\w+"),
    "typescript": re.compile(r"^\s*(?:export\s+)?(?:abstract\s+)?class\s+\w+"),
    "python": re.compile(r"^\s*class\s+\w+"),
    "java": re.compile(r"^\s*(?:public|private|protected)?\s*(?:abstract|final)?\s*class\s+\w+"),
    "cpp": re.compile(r"^\s*class\s+\w+"),
    "csharp": re.compile(r"^\s*(?:public|private|protected|internal)?\s*(?:abstract|sealed)?\s*class\s+\w+"),
}

LOOP_KEYWORDS = ("for", "while", "do", "foreach")
CONDITIONAL_KEYWORDS = ("if", "else if", "switch", "case", "elif")
DECISION_TOKENS = ("if", "else", "switch", "case", "for", "while", "catch", "&&", "||", "?")

# stored locations per pattern type
MAX_LOCATIONS = 200

BUG_PATTERNS: Sequence[tuple] = (
    (re.compile(r"console\.log\(|\bprint\("), "debug print"),
    (re.compile(r"debugger\s*;|\bbreakpoint\(\)"), "debugger"),
    (re.compile(r"TODO|FIXME|HACK|XXX", re.IGNORECASE), "todo/fixme"),
    (re.compile(r"==\s*null|!=\s*null"), "loose null check"),
    (re.compile(r"catch\s*\(\s*\)\s*{|except\s*:\s*pass"), "empty catch"),
    (re.compile(r"\beval\s*\("), "eval usage"),
)


def _keyword_hit(lower_line: str, keywords: Sequence[str]) -> int:
    """Column of the first keyword followed by '(' or ' ', or -1."""
    for kw in keywords:
        for suffix in ("(", " ", ":"):
            col = lower_line.find(kw + suffix)
            if col >= 0 and (col == 0 or not (lower_line[col - 1].isalnum() or lower_line[col - 1] == "_")):
                return col
    return -1


class CodePatternAnalyzer:
    """
    Line-oriented heuristics over a document's text: functions, loops,
    conditionals, classes and common bug patterns, each with locations.
    Regexes are per language with JavaScript as the fallback.
    """
    def __init__(self):
        self._by_file: Dict[str, List[CodePattern]] = {}

    def analyze(self, text: str, language_id: Optional[str], file_key: str) -> List[CodePattern]:
        lang = (language_id or "javascript").lower()
        lines = text.split("\n")
        patterns: List[CodePattern] = []

        fn_locs = self._regex_locations(lines, FUNCTION_RE.get(lang, FUNCTION_RE["javascript"]), file_key)
        if fn_locs:
            patterns.append(CodePattern("function", len(fn_locs), complexity=self.complexity(lines), locations=fn_locs))

        for kind, keywords in (("loop", LOOP_KEYWORDS), ("conditional", CONDITIONAL_KEYWORDS)):
            locs = []
            for i, line in enumerate(lines):
                col = _keyword_hit(line.lower(), keywords)
                if col >= 0:
                    locs.append(PatternLocation(file_key, i + 1, col))
            if locs:
                patterns.append(CodePattern(kind, len(locs), locations=locs))

        cls_locs = self._regex_locations(lines, CLASS_RE.get(lang, CLASS_RE["javascript"]), file_key)
        if cls_locs:
            patterns.append(CodePattern("class", len(cls_locs), locations=cls_locs))

        bug_locs = []
        for i, line in enumerate(lines):
            for rx, _name in BUG_PATTERNS:
                m = rx.search(line)
                if m:
                    bug_locs.append(PatternLocation(file_key, i + 1, m.start()))
        if bug_locs:
            patterns.append(CodePattern("bug_pattern", len(bug_locs), locations=bug_locs))

        self._by_file[file_key] = patterns
        return patterns

    @staticmethod
    def _regex_locations(lines: List[str], rx: Pattern[str], file_key: str) -> List[PatternLocation]:
        out = []
        for i, line in enumerate(lines):
            m = rx.search(line)
            if m:
                out.append(PatternLocation(file_key, i + 1, len(line) - len(line.lstrip())))
        return out

    @staticmethod
    def complexity(lines: List[str]) -> int:
        """Simplified cyclomatic complexity: 1 + lines holding each decision token."""
        total = 1
        for line in lines:
            lower = line.lower()
            total += sum(1 for tok in DECISION_TOKENS if tok in lower)
        return total

    def patterns_for(self, file_key: str) -> List[CodePattern]:
        return list(self._by_file.get(file_key, []))

    def forget(self, file_key: str) -> None:
        self._by_file.pop(file_key, None)


def merge_patterns(existing: List[CodePattern], new: List[CodePattern]) -> List[CodePattern]:
    """Merge by type: counts add up, locations concatenate (newest MAX_LOCATIONS kept)."""
    merged = list(existing)
    for p in new:
        for i, cur in enumerate(merged):
            if cur.type == p.type:
                merged[i] = CodePattern(
                    type=cur.type,
                    count=cur.count + p.count,
                    complexity=cur.complexity if p.complexity is None else p.complexity,
                    locations=(cur.locations + p.locations)[-MAX_LOCATIONS:],
                )
                break
        else:
            merged.append(CodePattern(p.type, p.count, p.complexity, p.locations[-MAX_LOCATIONS:]))
    return merged


class AnalysisScheduler:
    """Per-key rate limit: allow() is True at most once per min_interval_s for each key."""
    def __init__(self, min_interval_s: float, clock: Callable[[], int] = wall_ms):
        self.min_interval_ms = int(min_interval_s * 1000)
        self.clock = clock
        self._last_run: Dict[str, int] = {}

    def allow(self, key: str) -> bool:
        now = self.clock()
        last = self._last_run.get(key)
        if last is not None and now - last < self.min_interval_ms:
            return False
        self._last_run[key] = now
        return True


def summarize_files(per_file: Mapping[str, List[CodePattern]]) -> List[CodePattern]:
    """Day-level view: the latest analysis of each file, merged by type."""
    merged: List[CodePattern] = []
    for key in sorted(per_file):
        merged = merge_patterns(merged, per_file[key])
    return merged
