import requests
import urllib3

from errors import TransportError
from logger import get_logger

log = get_logger(__name__)

BCV_URL = "https://www.bcv.org.ve/"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


def make_session(user_agent: str = DEFAULT_USER_AGENT, verify_tls: bool = False) -> requests.Session:

    s = requests.Session()
    s.verify = verify_tls

    if not verify_tls:
        # bcv.org.ve serves a chain most CA bundles do not trust
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
        log.warning("TLS certificate verification is disabled for scraping requests")

    s.headers.update({
        "User-Agent":                user_agent or DEFAULT_USER_AGENT,
        "Accept":                    "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "Accept-Language":           "es-ES,es;q=0.9,en;q=0.8",
        "Accept-Encoding":           "gzip, deflate",
        "DNT":                       "1",
        "Connection":                "keep-alive",
        "Upgrade-Insecure-Requests": "1",
    })
    return s


def fetch_html(session: requests.Session, url: str, timeout: float) -> str:

    try:
        resp = session.get(url, timeout=timeout)
    except requests.Timeout as exc:
        raise TransportError(f"Timed out after {timeout}s fetching {url}") from exc
    except requests.RequestException as exc:
        raise TransportError(f"Could not reach {url}: {exc}") from exc

    log.info("GET %s → HTTP %d", url, resp.status_code)

    if not 200 <= resp.status_code < 300:
        raise TransportError(f"HTTP {resp.status_code} from {url}")

    if not resp.encoding or resp.encoding.lower() == "iso-8859-1":
        # Spanish weekday/month names need the sniffed charset, not the HTTP default
        resp.encoding = resp.apparent_encoding
    return resp.text
