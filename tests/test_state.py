"""Tests for LifecycleState and fold."""

import dataclasses

import pytest

from requeststate import Failure, Loading, NotStarted, Success, fold


def _explode(value):
    raise AssertionError("transform must not run")


class TestTransform:
    def test_success_is_transformed(self):
        assert Success(42).transform(str) == Success("42")

    def test_other_states_pass_through(self):
        error = Exception("Error")
        assert NotStarted().transform(_explode) == NotStarted()
        assert Loading().transform(_explode) == Loading()
        assert Failure(error).transform(_explode) == Failure(error)

    def test_calls_fn_once(self):
        calls = []

        def fn(v):
            calls.append(v)
            return v + 1

        assert Success(1).transform(fn) == Success(2)
        assert calls == [1]

    def test_fn_errors_propagate(self):
        with pytest.raises(ZeroDivisionError):
            Success(0).transform(lambda v: 1 / v)

    def test_returns_new_instance(self):
        original = Loading()
        assert original.transform(str) is not original


class TestUnwrap:
    def test_unwrap_or_success(self):
        assert Success(42).unwrap_or(99) == 42

    def test_unwrap_or_default(self):
        assert NotStarted().unwrap_or(99) == 99
        assert Loading().unwrap_or(99) == 99
        assert Failure(Exception("Error")).unwrap_or(99) == 99

    def test_unwrap_or_none_success(self):
        assert Success(42).unwrap_or_none() == 42

    def test_unwrap_or_none(self):
        assert NotStarted().unwrap_or_none() is None
        assert Loading().unwrap_or_none() is None
        assert Failure(Exception("Error")).unwrap_or_none() is None

    def test_unwrap_or_none_with_default(self):
        assert Loading().unwrap_or_none("fallback") == "fallback"

    def test_success_holding_none(self):
        assert Success(None).unwrap_or(5) is None


class TestEquality:
    def test_structural(self):
        assert Success([1, 2]) == Success([1, 2])
        assert Success(1) != Success(2)
        assert NotStarted() == NotStarted()
        assert Loading() == Loading()

    def test_variants_differ(self):
        assert NotStarted() != Loading()
        assert Success(None) != NotStarted()

    def test_failure_compares_errors(self):
        error = ValueError("x")
        assert Failure(error) == Failure(error)
        assert Failure(error) != Failure(ValueError("x"))

    def test_frozen(self):
        state = Success(1)
        with pytest.raises(dataclasses.FrozenInstanceError):
            state.value = 2

    def test_predicates(self):
        assert NotStarted().is_not_started
        assert Loading().is_loading
        assert Success(1).is_success
        assert Failure(Exception()).is_failure
        assert not Success(1).is_loading


class TestFold:
    def _fold(self, state):
        return fold(
            state,
            not_started=lambda: "idle",
            loading=lambda: "loading",
            success=lambda v: f"ok {v}",
            failure=lambda e: f"error {e}",
        )

    def test_dispatches_each_variant(self):
        assert self._fold(NotStarted()) == "idle"
        assert self._fold(Loading()) == "loading"
        assert self._fold(Success(3)) == "ok 3"
        assert self._fold(Failure(RuntimeError("nope"))) == "error nope"

    def test_calls_one_handler(self):
        log = []
        fold(
            Success(1),
            not_started=lambda: log.append("not_started"),
            loading=lambda: log.append("loading"),
            success=lambda v: log.append("success"),
            failure=lambda e: log.append("failure"),
        )
        assert log == ["success"]

    def test_unknown_state_rejected(self):
        with pytest.raises(AssertionError):
            self._fold("not a state")
