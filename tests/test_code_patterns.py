# tests/test_code_patterns.py
# How to run:
#   pytest -q
#
# What this covers:
#   - Per-language detection of functions, loops, conditionals, classes, bug patterns
#   - JavaScript fallback for unknown languages
#   - Pattern merging and the per-file analysis rate limit

from app.analytics.code_patterns import (
    CodePatternAnalyzer, AnalysisScheduler, merge_patterns, summarize_files, MAX_LOCATIONS,
)
from core.storage.day_stats import CodePattern, PatternLocation

PY_SRC = "\n".join([
    "class Greeter:",
    "    def greet(self, names):",
    "        for n in names:",
    "            if n:",
    "                print(n)",
])

def _by_type(patterns):
    return {p.type: p for p in patterns}

def test_python_patterns_with_locations():
    an = CodePatternAnalyzer()
    found = _by_type(an.analyze(PY_SRC, "python", "greet.py"))
    assert set(found) == {"function", "loop", "conditional", "class", "bug_pattern"}
    assert found["class"].locations == [PatternLocation("greet.py", 1, 0)]
    assert found["function"].locations == [PatternLocation("greet.py", 2, 4)]
    assert found["loop"].locations == [PatternLocation("greet.py", 3, 8)]
    assert found["conditional"].locations == [PatternLocation("greet.py", 4, 12)]
    assert found["bug_pattern"].count == 1
    assert found["function"].complexity is not None and found["function"].complexity >= 3
    assert {p.type for p in an.patterns_for("greet.py")} == set(found)

def test_unknown_language_falls_back_to_javascript():
    an = CodePatternAnalyzer()
    found = _by_type(an.analyze("function load() {\n  return 1;\n}", "ruby", "x.rb"))
    assert found["function"].count == 1

def test_clean_text_has_no_patterns():
    an = CodePatternAnalyzer()
    assert an.analyze("x = 1\ny = 2", "python", "c.py") == []
    an.forget("c.py")
    assert an.patterns_for("c.py") == []

def test_complexity_counts_decision_tokens():
    assert CodePatternAnalyzer.complexity(["x = 1"]) == 1
    assert CodePatternAnalyzer.complexity(["if a and b:"]) == 2

def test_merge_patterns_adds_counts_by_type():
    loc = PatternLocation("a.py", 1, 0)
    merged = merge_patterns(
        [CodePattern("loop", 2, locations=[loc])],
        [CodePattern("loop", 1, locations=[loc]), CodePattern("class", 1)],
    )
    by = _by_type(merged)
    assert by["loop"].count == 3 and len(by["loop"].locations) == 2
    assert by["class"].count == 1

def test_scheduler_rate_limits_per_key():
    now = [0]
    sched = AnalysisScheduler(30, clock=lambda: now[0])
    assert sched.allow("a.py")
    assert not sched.allow("a.py")
    assert sched.allow("b.py")
    now[0] = 29_999
    assert not sched.allow("a.py")
    now[0] = 30_000
    assert sched.allow("a.py")

def test_merged_locations_are_capped():
    loc = PatternLocation("a.py", 1, 0)
    big = [CodePattern("loop", MAX_LOCATIONS, locations=[loc] * MAX_LOCATIONS)]
    merged = merge_patterns(big, [CodePattern("loop", 1, locations=[PatternLocation("a.py", 99, 0)])])
    assert merged[0].count == MAX_LOCATIONS + 1
    assert len(merged[0].locations) == MAX_LOCATIONS
    assert merged[0].locations[-1].line == 99

def test_summarize_files_uses_latest_analysis_per_file():
    an = CodePatternAnalyzer()
    per_file = {
        "a.py": an.analyze("for x in y:\n    pass", "python", "a.py"),
        "b.py": an.analyze("while True:\n    pass", "python", "b.py"),
    }
    by = _by_type(summarize_files(per_file))
    assert by["loop"].count == 2
    per_file["a.py"] = an.analyze("for x in y:\n    pass", "python", "a.py")
    assert _by_type(summarize_files(per_file))["loop"].count == 2
