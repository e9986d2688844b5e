"""One-shot shutdown coordination for the client tasks."""

import asyncio
import signal
import sys


class ShutdownCoordinator:
    """Waits for an interrupt or for a task to finish, then stops every task."""

    def __init__(self, stream=None):
        self._stream = stream or sys.stdout
        self.event = asyncio.Event()
        self._signalled = False

    def trigger(self):
        """Request shutdown. Only the first call has any effect."""
        if self._signalled:
            return
        self._signalled = True
        print("Shutting down...", file=self._stream)
        self.event.set()

    def install_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.trigger)

    def remove_signal_handlers(self):
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)

    async def run(self, *tasks: asyncio.Task):
        """Block until shutdown or task completion, then cancel what is left.

        Re-raises the first exception a task finished with, so a fatal
        polling error still ends the process with a visible failure.
        """
        waiter = asyncio.create_task(self.event.wait())
        await asyncio.wait({waiter, *tasks}, return_when=asyncio.FIRST_COMPLETED)
        self.event.set()

        for task in (*tasks, waiter):
            task.cancel()
        await asyncio.gather(*tasks, waiter, return_exceptions=True)
        print("Exited.", file=self._stream)

        for task in tasks:
            if not task.cancelled() and task.exception() is not None:
                raise task.exception()
