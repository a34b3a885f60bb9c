"""
Fixed-Rate Scheduler Tests
==========================

Invariantes testeadas:
1. initial_delay 0 → primer tick inmediato, luego periódico
2. cancel() → no hay más ticks
3. cancel(interrupt=True) → el tick en curso ve interrupted() == True
4. Fixed-rate: un tick lento hace que el siguiente dispare inmediatamente
5. Nunca hay dos ticks corriendo a la vez (un solo worker)
6. Una excepción en el tick cancela esa tarea, el worker sigue
7. shutdown() interrumpe y espera el tick en curso

Usa timers reales con períodos cortos.
"""
import threading
import time

import pytest

from tempsensor.scheduling import FixedRateScheduler, interrupted


@pytest.fixture
def scheduler():
    s = FixedRateScheduler(name="test-scheduler")
    yield s
    s.shutdown(wait=True, timeout=2.0)


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.mark.unit
class TestScheduleValidation:

    def test_period_must_be_positive(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.schedule_at_fixed_rate(lambda: None, initial_delay=0, period=0)

    def test_initial_delay_must_not_be_negative(self, scheduler):
        with pytest.raises(ValueError):
            scheduler.schedule_at_fixed_rate(lambda: None, initial_delay=-1, period=1)

    def test_schedule_after_shutdown_raises(self, scheduler):
        scheduler.shutdown()

        assert scheduler.is_shutdown
        with pytest.raises(RuntimeError):
            scheduler.schedule_at_fixed_rate(lambda: None, initial_delay=0, period=1)

    def test_interrupted_outside_worker_is_false(self):
        assert interrupted() is False


@pytest.mark.unit
@pytest.mark.slow
class TestFixedRateExecution:

    def test_runs_immediately_and_repeats(self, scheduler):
        """
        Invariante: delay 0 → primer tick inmediato; después cada period.
        """
        runs = []
        start = time.monotonic()
        task = scheduler.schedule_at_fixed_rate(lambda: runs.append(time.monotonic()), initial_delay=0, period=0.05)

        assert wait_until(lambda: len(runs) >= 3)
        assert runs[0] - start < 0.2
        assert task.run_count >= 3

    def test_cancel_stops_further_runs(self, scheduler):
        """
        Invariante: después de cancel() no hay más ticks.
        """
        runs = []
        task = scheduler.schedule_at_fixed_rate(lambda: runs.append(1), initial_delay=0, period=0.05)
        assert wait_until(lambda: len(runs) >= 1)

        assert task.cancel() is True
        time.sleep(0.1)
        count = len(runs)
        time.sleep(0.2)

        assert len(runs) == count
        assert task.cancelled
        assert task.cancel() is False

    def test_cancel_with_interrupt_flags_running_tick(self, scheduler):
        """
        Invariante: el tick en curso observa interrupted() tras cancel(interrupt=True).
        """
        started = threading.Event()
        release = threading.Event()
        observed = []

        def tick():
            started.set()
            release.wait(timeout=2.0)
            observed.append(interrupted())

        task = scheduler.schedule_at_fixed_rate(tick, initial_delay=0, period=10)
        assert started.wait(timeout=1.0)

        task.cancel(interrupt=True)
        release.set()

        assert wait_until(lambda: observed)
        assert observed == [True]

    def test_cancel_without_interrupt_lets_tick_finish_clean(self, scheduler):
        started = threading.Event()
        release = threading.Event()
        observed = []

        def tick():
            started.set()
            release.wait(timeout=2.0)
            observed.append(interrupted())

        task = scheduler.schedule_at_fixed_rate(tick, initial_delay=0, period=10)
        assert started.wait(timeout=1.0)

        task.cancel(interrupt=False)
        release.set()

        assert wait_until(lambda: observed)
        assert observed == [False]

    def test_slow_tick_catches_up_immediately(self, scheduler):
        """
        Invariante fixed-rate: tick lento → el siguiente arranca apenas termina
        (fixed-delay esperaría un period completo).
        """
        starts, ends = [], []

        def tick():
            starts.append(time.monotonic())
            if len(starts) == 1:
                time.sleep(0.5)
            ends.append(time.monotonic())

        scheduler.schedule_at_fixed_rate(tick, initial_delay=0, period=0.3)

        assert wait_until(lambda: len(starts) >= 2)
        assert starts[1] - ends[0] < 0.1

    def test_ticks_never_overlap(self, scheduler):
        """
        Invariante: un solo worker → como máximo un tick corriendo.
        """
        lock = threading.Lock()
        state = {"running": 0, "max": 0, "runs": 0}

        def tick():
            with lock:
                state["running"] += 1
                state["max"] = max(state["max"], state["running"])
            time.sleep(0.03)
            with lock:
                state["running"] -= 1
                state["runs"] += 1

        scheduler.schedule_at_fixed_rate(tick, initial_delay=0, period=0.01)
        scheduler.schedule_at_fixed_rate(tick, initial_delay=0, period=0.01)

        assert wait_until(lambda: state["runs"] >= 6)
        assert state["max"] == 1

    def test_failing_task_not_rescheduled_worker_survives(self, scheduler):
        """
        Invariante: excepción en el tick → esa tarea termina, las demás siguen.
        """
        ok_runs = []

        def boom():
            raise RuntimeError("boom")

        failing = scheduler.schedule_at_fixed_rate(boom, initial_delay=0, period=0.02)
        scheduler.schedule_at_fixed_rate(lambda: ok_runs.append(1), initial_delay=0, period=0.02)

        assert wait_until(lambda: len(ok_runs) >= 3)
        assert failing.run_count == 1
        assert isinstance(failing.error, RuntimeError)
        assert failing.done

    def test_shutdown_interrupts_and_waits(self):
        """
        Invariante: shutdown(wait=True) retorna después del tick en curso, interrumpido.
        """
        scheduler = FixedRateScheduler(name="shutdown-test")
        started = threading.Event()
        observed = []

        def tick():
            started.set()
            time.sleep(0.2)
            observed.append(interrupted())

        task = scheduler.schedule_at_fixed_rate(tick, initial_delay=0, period=10)
        assert started.wait(timeout=1.0)

        scheduler.shutdown(wait=True, timeout=2.0)

        assert observed == [True]
        assert task.cancelled
