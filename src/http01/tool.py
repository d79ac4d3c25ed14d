from __future__ import annotations

import ipaddress
import logging
import socket
import ssl
import time
from typing import Callable, Dict, Optional, Tuple, Union
from urllib.parse import urljoin, urlsplit

from reporting.problems import Problem, Severity, internal_problem
from .models import (
    BAD_PORT,
    BAD_SCHEME,
    MISSING_TRAILING_SLASH,
    TOO_MANY_REDIRECTS,
    FetchOutcome,
    HTTPCheckResult,
    IPAddress,
    ProtocolMismatchError,
    RedirectViolation,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_MAX_REDIRECTS = 10
DEFAULT_USER_AGENT = "acme-preflight/0.1 (http-01 simulation)"
DEFAULT_TOKEN = "letsdebug-test"

REDIRECT_STATUSES = (301, 302, 303, 307, 308)
ALLOWED_REDIRECT_PORTS = (80, 443)

HTTPS_CLIENT_SIGNATURE = "server gave HTTP response to HTTPS client"
HTTP_CLIENT_SIGNATURE = "server gave HTTPS response to HTTP client"

_MAX_HEADER_BYTES = 64 * 1024
# TLS alert / handshake record headers
_TLS_RECORD_PREFIXES = (b"\x15\x03", b"\x16\x03")

Dialer = Callable[[Tuple[str, int], float], socket.socket]


class TransportError(ConnectionError):
    """A network-level failure while fetching one URL."""

    def __init__(self, url: str, dial_target: str, cause: BaseException) -> None:
        reason = str(cause) or type(cause).__name__
        super().__init__(f'Get "{url}" via {dial_target}: {reason}')
        self.url = url
        self.dial_target = dial_target


class HTTP01Simulator:
    """
    Replays the HTTP-01 fetch a CA validation agent performs against one resolved address.

      - every connection (redirects included) dials the pinned address; Location hosts are never resolved
      - TLS certificates are not verified
      - redirects are checked hop by hop against the agent's policy
      - one deadline bounds the whole fetch, dials included
    """

    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        user_agent: str = DEFAULT_USER_AGENT,
        token: str = DEFAULT_TOKEN,
        dialer: Optional[Dialer] = None,
    ) -> None:
        self.timeout = float(timeout_seconds)
        self.max_redirects = int(max_redirects)
        self.user_agent = user_agent
        self.token = token
        self._dial: Dialer = dialer or socket.create_connection

    # -------------------------
    # Public API
    # -------------------------

    def challenge_url(self, domain: str) -> str:
        return f"http://{domain}/.well-known/acme-challenge/{self.token}"

    def check(
        self, domain: str, address: Union[str, IPAddress]
    ) -> Tuple[HTTPCheckResult, Optional[Problem]]:
        """
        Fetch the challenge URL for domain from address.

        Returns the observed result and a Problem, or None when the fetch succeeded.
        """
        ip = ipaddress.ip_address(address) if isinstance(address, str) else address
        url = self.challenge_url(domain)

        try:
            _validate_request_url(url)
        except ValueError as e:
            return HTTPCheckResult(ip=ip), internal_problem(
                f"Failed to construct validation request: {e}", Severity.ERROR
            )

        outcome = self.fetch(url, ip)
        if outcome.ok:
            logger.debug("%s via %s: %s", domain, ip, outcome.result)
            return outcome.result, None

        problem = translate_http_error(domain, ip, outcome.violation or outcome.error)
        logger.info("%s via %s: %s (%s)", domain, ip, problem.name, problem.detail)
        return outcome.result, problem

    def fetch(self, url: str, ip: IPAddress) -> FetchOutcome:
        """Follow url from the pinned address until a final response, a policy violation or an error."""
        result = HTTPCheckResult(ip=ip)
        deadline = time.monotonic() + self.timeout
        current = url
        hops = 0

        while True:
            try:
                status, headers = self._round_trip(current, ip, deadline)
            except (OSError, ValueError) as e:
                return FetchOutcome(result=result, error=e)

            result.status_code = status
            result.server_header = headers.get("server", "")

            location = headers.get("location")
            if status not in REDIRECT_STATUSES or not location:
                return FetchOutcome(result=result)

            hops += 1
            target = urljoin(current, location)
            violation = self.redirect_policy(target, hops)
            if violation is not None:
                return FetchOutcome(result=result, violation=violation)

            logger.debug("redirect %d: %s -> %s", hops, current, target)
            current = target

    def redirect_policy(self, target: str, hops: int) -> Optional[RedirectViolation]:
        """
        Decide whether the validation agent would follow a redirect to target.

        hops counts redirects including this one. Checks run in order and the first
        violation wins.
        """
        if hops > self.max_redirects:
            return RedirectViolation(
                TOO_MANY_REDIRECTS, target,
                f"Too many ({hops}) redirects, last redirect was to: {target}",
            )

        parsed = urlsplit(target)

        port = _explicit_port(parsed.netloc)
        # numeric comparison: ":080" is port 80
        if port is not None and not (port.isascii() and port.isdigit() and int(port) in ALLOWED_REDIRECT_PORTS):
            return RedirectViolation(
                BAD_PORT, target,
                f"Bad port number provided when fetching {target}: {port}",
            )

        scheme = parsed.scheme.lower()
        if scheme not in ("http", "https"):
            return RedirectViolation(
                BAD_SCHEME, target,
                f"Bad scheme provided when fetching {target}: {scheme}",
            )

        # domain.tld.well-known/acme-challenge
        if (parsed.hostname or "").endswith(".well-known"):
            return RedirectViolation(
                MISSING_TRAILING_SLASH, target,
                "It appears that a redirect was generated by your web server that is missing a trailing "
                f"slash after your domain name: {target}. Check your web server configuration and .htaccess "
                "for Redirect/RedirectMatch/RewriteRule.",
            )

        return None

    # =========================================================
    # HTTP helpers
    # =========================================================

    def _round_trip(self, url: str, ip: IPAddress, deadline: float) -> Tuple[int, Dict[str, str]]:
        parsed = urlsplit(url)
        scheme = parsed.scheme.lower()
        host = parsed.hostname or ""
        port = parsed.port or (443 if scheme == "https" else 80)
        target = dial_target(ip, port)

        path = parsed.path or "/"
        if parsed.query:
            path = f"{path}?{parsed.query}"

        host_idna = _idna(host)
        host_header = f"[{host_idna}]" if ":" in host_idna else host_idna
        if parsed.port is not None:
            host_header = f"{host_header}:{parsed.port}"

        logger.debug("GET %s via %s", url, target)

        try:
            sock = self._dial((str(ip), port), min(self.timeout, self._remaining(deadline)))
        except OSError as e:
            raise TransportError(url, target, e) from e

        try:
            sock.settimeout(self._remaining(deadline))
            stream = sock
            if scheme == "https":
                stream = _TLSStream(
                    sock, _insecure_context(), None if _is_ip(host) else host_idna,
                    remaining=lambda: self._remaining(deadline),
                )
                stream.handshake()

            req = (
                f"GET {path} HTTP/1.1\r\n"
                f"Host: {host_header}\r\n"
                f"User-Agent: {self.user_agent}\r\n"
                f"Accept: */*\r\n"
                f"Connection: close\r\n\r\n"
            )
            stream.sendall(req.encode("latin1"))

            raw = self._read_head(stream, sock, deadline)
            return _parse_head(raw)
        except ProtocolMismatchError as e:
            raise ProtocolMismatchError(f'Get "{url}": {e}') from e
        except (OSError, ValueError) as e:
            raise TransportError(url, target, e) from e
        finally:
            sock.close()

    def _read_head(self, stream, sock: socket.socket, deadline: float) -> bytes:
        buf = b""
        while b"\r\n\r\n" not in buf and b"\n\n" not in buf:
            if len(buf) > _MAX_HEADER_BYTES:
                raise ValueError("response headers too large")
            sock.settimeout(self._remaining(deadline))
            chunk = stream.recv(4096)
            if not chunk:
                if not buf:
                    raise ConnectionError("EOF")
                if not buf.startswith(_TLS_RECORD_PREFIXES):
                    raise ConnectionError("unexpected EOF")
                break
            buf += chunk
            if buf.startswith(_TLS_RECORD_PREFIXES):
                break
        return buf

    def _remaining(self, deadline: float) -> float:
        left = deadline - time.monotonic()
        if left <= 0:
            raise TimeoutError(f"timed out after {self.timeout:g}s (including redirects)")
        return left


class _TLSStream:
    """
    TLS over an already-connected socket, driven through memory BIOs.

    Driving the handshake by hand lets us look at the server's first bytes: a plain
    HTTP reply to our ClientHello means the port speaks HTTP, not HTTPS.

    remaining() returns the seconds left before the fetch deadline (raising
    TimeoutError once it has passed); every raw socket read and write is bounded by it.
    """

    def __init__(
        self,
        sock: socket.socket,
        context: ssl.SSLContext,
        server_hostname: Optional[str],
        remaining: Callable[[], float],
    ) -> None:
        self._sock = sock
        self._remaining = remaining
        self._in = ssl.MemoryBIO()
        self._out = ssl.MemoryBIO()
        self._obj = context.wrap_bio(self._in, self._out, server_hostname=server_hostname)
        self._handshaking = False

    def handshake(self) -> None:
        self._handshaking = True
        try:
            self._pump(self._obj.do_handshake)
        finally:
            self._handshaking = False

    def sendall(self, data: bytes) -> None:
        self._pump(self._obj.write, data)

    def recv(self, n: int) -> bytes:
        try:
            return self._pump(self._obj.read, n)
        except (ssl.SSLZeroReturnError, ssl.SSLEOFError):
            return b""

    def _pump(self, op, *args):
        while True:
            try:
                out = op(*args)
            except ssl.SSLWantReadError:
                self._flush()
                self._sock.settimeout(self._remaining())
                data = self._sock.recv(16384)
                if not data:
                    self._in.write_eof()
                elif self._handshaking and data.startswith(b"HTTP/"):
                    raise ProtocolMismatchError(f"http: {HTTPS_CLIENT_SIGNATURE}")
                else:
                    self._in.write(data)
                continue
            self._flush()
            return out

    def _flush(self) -> None:
        pending = self._out.read()
        if pending:
            self._sock.settimeout(self._remaining())
            self._sock.sendall(pending)


# =========================================================
# Failure classification
# =========================================================

def translate_http_error(
    domain: str, address: IPAddress, error: Union[RedirectViolation, BaseException]
) -> Problem:
    if isinstance(error, RedirectViolation):
        if error.kind == MISSING_TRAILING_SLASH:
            return redirect_missing_trailing_slash(domain, error.message)
        return bad_redirect(domain, error.message)

    text = str(error)
    if isinstance(error, ProtocolMismatchError) or text.endswith((HTTPS_CLIENT_SIGNATURE, HTTP_CLIENT_SIGNATURE)):
        return webserver_misconfiguration(
            domain,
            f"Web server is serving the wrong protocol on the wrong port: {text}. "
            "This may be due to a previous HTTP redirect rather than a webserver misconfiguration.",
        )

    if address.version == 6:
        return aaaa_not_working(domain, str(address), text)
    return a_not_working(domain, str(address), text)


def webserver_misconfiguration(domain: str, detail: str) -> Problem:
    return Problem(
        name="WebserverMisconfiguration",
        explanation=f"{domain}'s webserver may be misconfigured.",
        detail=detail,
        severity=Severity.ERROR,
    )


def aaaa_not_working(domain: str, ipv6_address: str, detail: str) -> Problem:
    return Problem(
        name="AAAANotWorking",
        explanation=(
            f"{domain} has an AAAA (IPv6) record ({ipv6_address}) but a test ACME validation request "
            "over port 80 has revealed problems. The CA will prefer to use AAAA records, if present, "
            "and will not fall back to IPv4 records. You should either ensure that validation requests "
            "succeed over IPv6, or remove its AAAA record."
        ),
        detail=detail,
        severity=Severity.ERROR,
    )


def a_not_working(domain: str, addr: str, detail: str) -> Problem:
    return Problem(
        name="ANotWorking",
        explanation=(
            f"{domain} has an A (IPv4) record ({addr}) but a test ACME validation request "
            "over port 80 has revealed problems."
        ),
        detail=detail,
        severity=Severity.ERROR,
    )


def bad_redirect(domain: str, detail: str) -> Problem:
    return Problem(
        name="BadRedirect",
        explanation=(
            f"Sending an ACME HTTP validation request to {domain} results in an unacceptable redirect. "
            "This is most likely a misconfiguration of your web server or your web application."
        ),
        detail=detail,
        severity=Severity.ERROR,
    )


def redirect_missing_trailing_slash(domain: str, detail: str) -> Problem:
    return Problem(
        name="RedirectMissingTrailingSlash",
        explanation=(
            f"Sending an ACME HTTP validation request to {domain} results in a redirect to a hostname "
            "ending in \".well-known\": the slash between the domain name and the path was dropped."
        ),
        detail=detail,
        severity=Severity.ERROR,
    )


# =========================================================
# Utilities
# =========================================================

def dial_target(ip: IPAddress, port: int) -> str:
    if ip.version == 6:
        return f"[{ip}]:{port}"
    return f"{ip}:{port}"


def _explicit_port(netloc: str) -> Optional[str]:
    hostport = netloc.rpartition("@")[2]
    if hostport.startswith("["):
        rest = hostport.partition("]")[2]
        return rest[1:] if rest.startswith(":") else None
    if ":" in hostport:
        return hostport.rsplit(":", 1)[1]
    return None


def _is_ip(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
        return True
    except ValueError:
        return False


def _idna(host: str) -> str:
    if _is_ip(host):
        return host
    return host.encode("idna").decode("ascii")


def _validate_request_url(url: str) -> None:
    parsed = urlsplit(url)
    if not parsed.hostname or any(c.isspace() for c in url):
        raise ValueError(f"invalid URL {url!r}")
    _idna(parsed.hostname)


def _insecure_context() -> ssl.SSLContext:
    ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def _parse_head(raw: bytes) -> Tuple[int, Dict[str, str]]:
    if raw.startswith(_TLS_RECORD_PREFIXES):
        raise ProtocolMismatchError(f"http: {HTTP_CLIENT_SIGNATURE}")

    head = raw.split(b"\r\n\r\n", 1)[0].split(b"\n\n", 1)[0]
    lines = [ln.rstrip(b"\r") for ln in head.split(b"\n")]

    status_line = lines[0].decode("latin1", errors="replace")
    parts = status_line.split()
    if len(parts) < 2 or not parts[0].startswith("HTTP/") or not parts[1].isdigit():
        raise ValueError(f"malformed HTTP response: {status_line[:64]!r}")

    headers: Dict[str, str] = {}
    for ln in lines[1:]:
        k, sep, v = ln.partition(b":")
        if not sep:
            continue
        headers.setdefault(k.decode("latin1").strip().lower(), v.decode("latin1").strip())

    return int(parts[1]), headers
