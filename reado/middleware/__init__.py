from reado.middleware.admission import AdmissionController
from reado.middleware.metrics import RequestMetrics
from reado.middleware.pipeline import RequestPipeline
from reado.middleware.timeout import TimeoutGovernor


def install_request_pipeline(app):
    """Wrap app.wsgi_app with the metrics, admission and timeout guards."""
    metrics = RequestMetrics()
    admission = AdmissionController(app.config['MAX_CONCURRENT'])
    governor = TimeoutGovernor(app.config['REQUEST_TIMEOUT_MS'])

    app.extensions['request_metrics'] = metrics
    app.extensions['admission'] = admission
    app.extensions['timeout_governor'] = governor
    app.wsgi_app = RequestPipeline(app.wsgi_app, metrics, admission, governor)
    return app.wsgi_app
