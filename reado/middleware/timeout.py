"""Per-request deadline enforcement.

The wrapped app runs on a worker thread while the server thread waits for
it. Whichever side finishes first wins the request's ``Deadline``:

    ARMED -> DISARMED   handler finished in time, its response is sent
    ARMED -> FIRED      deadline passed, a 503 timeout response is sent

Both end states are terminal, so exactly one response leaves the process.
A fired deadline does not stop the handler: work it has already started
(database writes, outbound calls) may still complete after the client has
seen the timeout. The late response is discarded.

Worker threads are not pooled. A timed-out request gives its admission
slot back while its worker may still be running, so under sustained
timeouts the number of live worker threads can exceed MAX_CONCURRENT and
is bounded only by how long the stuck handlers take to return.
"""

import logging
import threading

from reado.middleware.pipeline import buffer_wsgi, json_response

logger = logging.getLogger(__name__)

ARMED = 'armed'
DISARMED = 'disarmed'
FIRED = 'fired'


class Deadline:
    def __init__(self):
        self._state = ARMED
        self._lock = threading.Lock()

    @property
    def state(self):
        return self._state

    def _settle(self, target):
        with self._lock:
            if self._state != ARMED:
                return False
            self._state = target
            return True

    def disarm(self) -> bool:
        """Claim the request for the handler. False if the timeout won."""
        return self._settle(DISARMED)

    def fire(self) -> bool:
        """Claim the request for the timeout. False if the handler won."""
        return self._settle(FIRED)


class TimeoutGovernor:
    def __init__(self, timeout_ms=3000):
        """
        Args:
            timeout_ms: Wall-clock budget per request in milliseconds.
                Zero or None runs handlers inline without a deadline.
        """
        self.timeout_ms = timeout_ms
        self.timeouts = 0
        self._lock = threading.Lock()

    def run(self, wsgi_app, exchange) -> None:
        if not self.timeout_ms:
            exchange.use(self._dispatch(wsgi_app, exchange))
            return

        deadline = Deadline()
        done = threading.Event()
        outcome = {}

        def work():
            buffered = self._dispatch(wsgi_app, exchange)
            if deadline.disarm():
                outcome['response'] = buffered
                done.set()
            else:
                logger.warning(
                    '%s %s finished after its %dms deadline, response discarded',
                    exchange.method, exchange.path, self.timeout_ms,
                )

        worker = threading.Thread(
            target=work,
            name=f'request-{exchange.method}-{exchange.path}',
            daemon=True,
        )
        worker.start()

        if not done.wait(self.timeout_ms / 1000.0):
            if deadline.fire():
                with self._lock:
                    self.timeouts += 1
                exchange.timed_out = True
                logger.warning(
                    '%s %s exceeded %dms deadline',
                    exchange.method, exchange.path, self.timeout_ms,
                )
                exchange.use(json_response(503, {'error': 'request timeout'}))
                return
            # The handler disarmed just as the deadline expired.
            done.wait()

        exchange.use(outcome['response'])

    def _dispatch(self, wsgi_app, exchange):
        try:
            return buffer_wsgi(wsgi_app, exchange.environ)
        except Exception:
            logger.exception('Unhandled error in %s %s', exchange.method, exchange.path)
            return json_response(500, {'error': 'internal server error'})
