import pytest
import sys
import os
from datetime import datetime, timezone

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import logger as _logger_mod

_logger_mod.setup_logger("test-run")



SAMPLE_BCV_HTML = """
<html><head><meta charset="utf-8"></head><body>
<div class="view-content">
  <div id="euro" class="col-sm-12 col-xs-12">
    <div class="field-content"><div class="row recuadrotsmc">
      <div class="col-sm-6 col-xs-6"><span> EUR </span></div>
      <div class="col-sm-6 col-xs-6 centrado"><strong> 121,34560000 </strong></div>
    </div></div>
  </div>
  <div id="dolar" class="col-sm-12 col-xs-12">
    <div class="field-content"><div class="row recuadrotsmc">
      <div class="col-sm-6 col-xs-6"><span> USD </span></div>
      <div class="col-sm-6 col-xs-6 centrado"><strong> 105,45270000 </strong></div>
    </div></div>
  </div>
</div>
<div class="pull-right dinpro center">
  Fecha Valor: <span class="date-display-single" property="dc:date"
  content="2025-06-25T00:00:00-04:00">Miércoles, 25 Junio  2025</span>
</div>
</body></html>
"""

SAMPLE_NO_RATE_HTML = """
<html><body>
<div>No rate data here</div>
<span class="date-display-single">Miércoles, 25 Junio 2025</span>
</body></html>
"""

SAMPLE_NO_DATE_HTML = """
<html><body>
<div id="dolar"><strong>105,45270000</strong></div>
</body></html>
"""


def bcv_html(rate_text="105,45270000", date_text="Miércoles, 25 Junio 2025"):
    return (
        "<html><body>"
        f'<div id="dolar"><span>USD</span><strong>{rate_text}</strong></div>'
        f'<span class="date-display-single">{date_text}</span>'
        "</body></html>"
    )


class FakeClock:
    """Mutable clock usable both as a datetime clock and a time.time() clock."""

    def __init__(self, start=None):
        self.now = start or datetime(2025, 6, 25, 21, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def timestamp(self):
        return self.now.timestamp()

    def advance(self, **kwargs):
        from datetime import timedelta
        self.now = self.now + timedelta(**kwargs)


class FakeFetch:
    """Replays a scripted list of HTML strings / exceptions, one per call."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def __call__(self, url):
        self.calls.append(url)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def sample_html():
    return SAMPLE_BCV_HTML


@pytest.fixture
def no_rate_html():
    return SAMPLE_NO_RATE_HTML


@pytest.fixture
def no_date_html():
    return SAMPLE_NO_DATE_HTML


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def store(tmp_path):
    from persistence import RecordStore
    return RecordStore(str(tmp_path / "rates.db"))


@pytest.fixture
def scraper_config():
    return {
        "url":          "https://www.bcv.org.ve/",
        "timeout":      30,
        "delay":        2,
        "max_attempts": 3,
        "user_agent":   "TestAgent/1.0",
        "verify_tls":   False,
    }
