"""
Fixed-Rate Scheduler
====================

Scheduler de un solo worker thread para tareas periódicas.

Semántica:
- Fixed-rate: los ticks caen en start + initial_delay + k*period. Un tick
  lento hace que el siguiente dispare inmediatamente al terminar (catch-up),
  nunca en paralelo.
- Un solo worker: como máximo un tick corre a la vez.
- cancel(interrupt=True): no hay más ticks; el tick en curso ve
  interrupted() == True (interrupción cooperativa).
- Una excepción que escapa del tick se loggea y cancela esa tarea; el worker
  sigue sirviendo las demás.

Usage:
    scheduler = FixedRateScheduler(name="TemperatureSensor")
    task = scheduler.schedule_at_fixed_rate(do_publish, initial_delay=0, period=60)
    ...
    task.cancel(interrupt=True)
    scheduler.shutdown(wait=True, timeout=10)
"""
import heapq
import itertools
import threading
import time
from typing import Callable, List, Optional, Tuple

from .logging import get_component_logger, log_error_with_context

logger = get_component_logger("scheduler")

_worker_state = threading.local()


def interrupted() -> bool:
    """
    True si el tick que corre en este thread fue cancelado con interrupt.

    Fuera del worker del scheduler siempre retorna False.
    """
    task = getattr(_worker_state, "task", None)
    return task is not None and task.interrupted


class ScheduledTask:
    """Handle de una tarea periódica."""

    def __init__(
        self,
        scheduler: 'FixedRateScheduler',
        fn: Callable[[], None],
        next_run: float,
        period: float,
    ):
        self._scheduler = scheduler
        self.fn = fn
        self.period = period
        self.next_run = next_run
        self.run_count = 0
        self.error: Optional[BaseException] = None
        self._cancelled = threading.Event()
        self._interrupted = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def interrupted(self) -> bool:
        return self._interrupted.is_set()

    @property
    def done(self) -> bool:
        """True si la tarea no volverá a correr (cancelada o fallida)."""
        return self.cancelled or self.error is not None

    def cancel(self, interrupt: bool = True) -> bool:
        """
        Cancela la tarea.

        Args:
            interrupt: Si True, el tick en curso (si hay) queda marcado como
                interrumpido

        Returns:
            False si la tarea ya estaba terminada
        """
        if self.done:
            return False
        self._cancelled.set()
        if interrupt:
            self._interrupted.set()
        self._scheduler._wakeup()
        return True

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else ("failed" if self.error else "active")
        return f"ScheduledTask(period={self.period}, runs={self.run_count}, {state})"


class FixedRateScheduler:
    """
    Scheduler fixed-rate con un worker thread dedicado.

    El worker arranca con la primera tarea y vive hasta shutdown().
    """

    def __init__(self, name: str = "FixedRateScheduler", clock: Callable[[], float] = time.monotonic):
        self.name = name
        self._clock = clock
        self._cond = threading.Condition()
        self._queue: List[Tuple[float, int, ScheduledTask]] = []
        self._seq = itertools.count()
        self._thread: Optional[threading.Thread] = None
        self._current: Optional[ScheduledTask] = None
        self._shutdown = False

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def schedule_at_fixed_rate(
        self,
        fn: Callable[[], None],
        initial_delay: float,
        period: float,
    ) -> ScheduledTask:
        """
        Programa `fn` cada `period` segundos, primera ejecución tras `initial_delay`.

        Raises:
            ValueError: Si period <= 0 o initial_delay < 0
            RuntimeError: Si el scheduler ya fue apagado
        """
        if period <= 0:
            raise ValueError(f"period must be > 0, got {period}")
        if initial_delay < 0:
            raise ValueError(f"initial_delay must be >= 0, got {initial_delay}")

        with self._cond:
            if self._shutdown:
                raise RuntimeError(f"Scheduler {self.name} is shut down")

            task = ScheduledTask(self, fn, self._clock() + initial_delay, period)
            heapq.heappush(self._queue, (task.next_run, next(self._seq), task))
            self._ensure_worker()
            self._cond.notify_all()

        logger.debug(
            "⏱️ Tarea programada",
            extra={
                "component": "scheduler",
                "event": "task_scheduled",
                "scheduler": self.name,
                "initial_delay": initial_delay,
                "period": period,
            }
        )
        return task

    def shutdown(self, wait: bool = True, timeout: Optional[float] = None):
        """
        Apaga el scheduler: cancela (con interrupt) todas las tareas y detiene el worker.

        Args:
            wait: Si True, espera a que termine el tick en curso
            timeout: Máximo de segundos a esperar (None = sin límite)
        """
        with self._cond:
            self._shutdown = True
            tasks = [entry[2] for entry in self._queue]
            if self._current is not None:
                tasks.append(self._current)
            self._queue.clear()
            for task in tasks:
                task.cancel(interrupt=True)
            self._cond.notify_all()
            thread = self._thread

        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning(
                    f"⚠️ Worker {self.name} no terminó en {timeout}s",
                    extra={
                        "component": "scheduler",
                        "event": "shutdown_timeout",
                        "scheduler": self.name,
                    }
                )

    def _wakeup(self):
        with self._cond:
            self._cond.notify_all()

    def _ensure_worker(self):
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._run_loop, name=self.name, daemon=True)
            self._thread.start()

    def _next_due(self) -> Optional[ScheduledTask]:
        """Bloquea hasta la próxima tarea vencida (None si shutdown). Requiere _cond."""
        while not self._shutdown:
            while self._queue and self._queue[0][2].done:
                heapq.heappop(self._queue)

            if not self._queue:
                self._cond.wait()
                continue

            next_run, _, task = self._queue[0]
            delay = next_run - self._clock()
            if delay <= 0:
                heapq.heappop(self._queue)
                return task
            self._cond.wait(timeout=delay)
        return None

    def _run_loop(self):
        while True:
            with self._cond:
                task = self._next_due()
                if task is None:
                    return
                self._current = task

            self._execute(task)

            with self._cond:
                self._current = None
                if not task.done and not self._shutdown:
                    # Fixed-rate: siguiente tick relativo al programado, no al fin del actual
                    task.next_run += task.period
                    heapq.heappush(self._queue, (task.next_run, next(self._seq), task))
                self._cond.notify_all()

    def _execute(self, task: ScheduledTask):
        _worker_state.task = task
        try:
            task.fn()
        except Exception as e:
            task.error = e
            log_error_with_context(
                logger,
                message="❌ Tarea periódica falló, no se reprograma",
                exception=e,
                component="scheduler",
                event="task_failed",
                scheduler=self.name,
            )
        finally:
            task.run_count += 1
            _worker_state.task = None

    def __repr__(self) -> str:
        return f"FixedRateScheduler(name={self.name!r}, tasks={len(self._queue)}, shutdown={self._shutdown})"
