"""Request pipeline wrapped around the Flask WSGI app.

Every inbound request passes through the guards in a fixed order:

    metrics.enter -> admission.enter -> governor.run (arm, dispatch,
    disarm or fire) -> metrics.exit -> admission.exit

The two exit hooks run in a ``finally`` block and are idempotent, so they
take effect exactly once whether the request completed, raised, was
rejected, or timed out. Responses are buffered per request so that exactly
one of them (handler, rejection, or timeout) is handed to the server.
"""

import json
import logging

logger = logging.getLogger(__name__)

_REASONS = {
    200: 'OK',
    500: 'INTERNAL SERVER ERROR',
    503: 'SERVICE UNAVAILABLE',
}


class Exchange:
    """Per-request state shared by the guards."""

    def __init__(self, environ):
        self.environ = environ
        self.method = environ.get('REQUEST_METHOD', 'GET')
        self.path = environ.get('PATH_INFO', '/')
        self.started = None
        self.admitted = False
        self.recorded = False
        self.timed_out = False
        self.status = None
        self.headers = []
        self.body = []

    @property
    def status_code(self):
        if not self.status:
            return 0
        return int(self.status.split(' ', 1)[0])

    def use(self, buffered):
        self.status, self.headers, self.body = buffered

    def respond_json(self, code, payload):
        self.use(json_response(code, payload))


def json_response(code, payload):
    body = json.dumps(payload).encode('utf-8')
    status = f'{code} {_REASONS.get(code, "")}'.rstrip()
    headers = [
        ('Content-Type', 'application/json'),
        ('Content-Length', str(len(body))),
    ]
    return status, headers, [body]


def buffer_wsgi(wsgi_app, environ):
    """Run a WSGI app to completion and return (status, headers, chunks)."""
    captured = {}
    chunks = []

    def start_response(status, headers, exc_info=None):
        captured['status'] = status
        captured['headers'] = list(headers)
        return chunks.append

    result = wsgi_app(environ, start_response)
    try:
        for chunk in result:
            if chunk:
                chunks.append(chunk)
    finally:
        close = getattr(result, 'close', None)
        if close is not None:
            close()
    return captured['status'], captured['headers'], chunks


class RequestPipeline:
    """WSGI middleware composing metrics, admission and timeout guards."""

    def __init__(self, wsgi_app, metrics, admission, governor):
        self.wsgi_app = wsgi_app
        self.metrics = metrics
        self.admission = admission
        self.governor = governor

    def __call__(self, environ, start_response):
        exchange = Exchange(environ)
        self.metrics.enter(exchange)
        try:
            if self.admission.enter(exchange):
                self.governor.run(self.wsgi_app, exchange)
            else:
                exchange.respond_json(503, {'error': 'server busy'})
        except Exception:
            logger.exception('Request pipeline failed for %s %s', exchange.method, exchange.path)
            exchange.respond_json(500, {'error': 'internal server error'})
        finally:
            self.metrics.exit(exchange)
            self.admission.exit(exchange)

        start_response(exchange.status, exchange.headers)
        return exchange.body
