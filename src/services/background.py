"""
Ejecución de corrutinas "fire-and-forget".
El que llama no espera el resultado y un fallo nunca se propaga:
queda registrado como warning y la task se marca como consumida para que
asyncio no lo reporte como "Task exception was never retrieved".
"""
import asyncio
import logging
import threading

logger = logging.getLogger(__name__)

# El event loop solo guarda referencias débiles a las tasks
_background_tasks: set = set()


def _on_task_done(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(f"[Background] La tarea '{task.get_name()}' falló: {exc}")


class ThreadTaskHandle:
    """
    Task corriendo en un loop propio dentro de un hilo daemon.
    Expone cancel/done/cancelled como una asyncio.Task y join como un hilo.
    """

    def __init__(self, coro, name: str):
        self.name = name
        self._loop = asyncio.new_event_loop()
        # La task se crea antes de arrancar el loop: cancel() es válido desde ya
        self._task = self._loop.create_task(coro, name=name)
        self.thread = threading.Thread(target=self._run, name=name, daemon=True)
        self.thread.start()

    def _run(self) -> None:
        try:
            self._loop.run_until_complete(self._task)
        except asyncio.CancelledError:
            logger.info(f"[Background] Tarea '{self.name}' cancelada")
        except Exception as e:
            logger.warning(f"[Background] La tarea '{self.name}' falló: {e}")
        finally:
            self._loop.close()

    def cancel(self) -> bool:
        if self._task.done():
            return False
        try:
            self._loop.call_soon_threadsafe(self._task.cancel)
        except RuntimeError:
            # El loop ya se cerró entre el chequeo y la llamada
            return False
        return True

    def done(self) -> bool:
        return self._task.done()

    def cancelled(self) -> bool:
        return self._task.cancelled()

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout)


def spawn_detached(coro, name: str | None = None):
    """
    Lanza `coro` en segundo plano sin bloquear al llamador.

    Con un event loop corriendo devuelve la `asyncio.Task`; sin loop (host
    sincrónico) la corre en un hilo daemon y devuelve un `ThreadTaskHandle`.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return ThreadTaskHandle(coro, name or "background-task")

    task = loop.create_task(coro, name=name)
    _background_tasks.add(task)
    task.add_done_callback(_on_task_done)
    return task


async def drain_background_tasks(timeout: float | None = None) -> None:
    """Espera las tasks pendientes del loop actual (útil al apagar el host)."""
    loop = asyncio.get_running_loop()
    pending = [t for t in _background_tasks if t.get_loop() is loop and not t.done()]
    if not pending:
        return
    done, not_done = await asyncio.wait(pending, timeout=timeout)
    if not_done:
        logger.warning(f"[Background] {len(not_done)} tareas siguen pendientes al drenar")
