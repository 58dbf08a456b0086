# tests/test_subscriptions.py
# How to run:
#   pytest -q
#
# What this covers:
#   - Teardown runs exactly once per subscription
#   - dispose_all runs in reverse registration order and survives a failing teardown

from core.utils.subscriptions import Subscription, SubscriptionList

def test_dispose_runs_once():
    calls = []
    sub = Subscription("timer", lambda: calls.append("timer"))
    assert not sub.disposed
    assert sub.dispose() is True
    assert sub.dispose() is False
    assert sub.disposed
    assert calls == ["timer"]

def test_dispose_all_reverse_order_and_errors():
    calls = []
    subs = SubscriptionList()

    def boom():
        calls.append("b")
        raise RuntimeError("teardown failed")

    subs.add("a", lambda: calls.append("a"))
    subs.add("b", boom)
    subs.add("c", lambda: calls.append("c"))
    assert len(subs) == 3

    assert subs.dispose_all() == 2
    assert calls == ["c", "b", "a"]
    assert len(subs) == 0
    assert subs.dispose_all() == 0
