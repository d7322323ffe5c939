import logging
import runpy
from pathlib import Path

from django.test import SimpleTestCase
from django.utils.module_loading import import_string

GUNICORN_CONF = Path(__file__).resolve().parents[3] / "gunicorn.conf.py"


class LoggingFilterTests(SimpleTestCase):
    def _record(self, msg: str) -> logging.LogRecord:
        return logging.LogRecord(
            name="django.server",
            level=logging.INFO,
            pathname=__file__,
            lineno=1,
            msg=msg,
            args=(),
            exc_info=None,
        )

    def test_polling_endpoint_filter(self) -> None:
        from config.logging_filters import PollingEndpointFilter

        filt = PollingEndpointFilter()

        self.assertFalse(filt.filter(self._record('"POST /elections/tick/ HTTP/1.1" 200 120')))
        self.assertTrue(filt.filter(self._record('"POST /elections/tick/ HTTP/1.1" 503 80')))
        self.assertTrue(filt.filter(self._record('"POST /elections/4/vote/ HTTP/1.1" 200 12')))

    def test_gunicorn_access_log_drops_successful_polls(self) -> None:
        from config.logging_filters import PollingEndpointFilter

        conf = runpy.run_path(str(GUNICORN_CONF))
        logconfig = conf["logconfig_dict"]

        self.assertEqual(conf["wsgi_app"], "config.wsgi:application")
        access_handler = logconfig["loggers"]["gunicorn.access"]["handlers"][0]
        filter_names = logconfig["handlers"][access_handler]["filters"]
        self.assertEqual(filter_names, ["polling_endpoint"])
        filter_class = import_string(logconfig["filters"]["polling_endpoint"]["()"])
        self.assertIs(filter_class, PollingEndpointFilter)
