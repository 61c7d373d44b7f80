#!/usr/bin/env python3
"""
Loquat device API CLI
Scans for Wi-Fi networks, provisions Wi-Fi credentials and API keys, and queries
status on a Loquat device over its local HTTP API.
"""
import argparse
import json
import logging
import math
import sys
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests

LOG = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30
LONG_TIMEOUT = 120
USER_AGENT = "LoquatClient/1.0"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class LoquatError(Exception):
    """Base class for every error that ends an invocation."""


class ArgumentError(LoquatError):
    """Malformed or missing command-line input."""


class ValidationError(LoquatError):
    """A request payload failed its field checks."""

    def __init__(self, message: str, field: str):
        super().__init__(message)
        self.field = field


class UnknownCommandError(LoquatError):
    def __init__(self, command: str):
        super().__init__(f"Invalid command: {command}")
        self.command = command


class TransportError(LoquatError):
    """Network-level failure: DNS, refused connection, timeout, TLS."""

    def __init__(self, message: str, url: str):
        super().__init__(message)
        self.url = url


class ApplicationError(LoquatError):
    """The device answered with a status other than 200."""

    def __init__(self, command: str, status_code: int):
        super().__init__(f"HTTP Code: {status_code} ({command})")
        self.command = command
        self.status_code = status_code


class FormatError(LoquatError):
    """Response body could not be decoded as JSON."""


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def build_connect_payload(ssid: Optional[str], psk: Optional[str],
                          security: Optional[str]) -> Dict[str, str]:
    """Build the body for `connect`.

    Open networks always get an empty PSK; any other security type needs one.
    The security string is sent as given unless it names an open network.
    """
    if not ssid:
        raise ValidationError("ssid required", field="ssid")

    sec_type = security or "WPA2"
    if sec_type.lower() == "open":
        return {"ssid": ssid, "security": "Open", "psk": ""}

    if not psk:
        raise ValidationError("psk required for private network", field="psk")
    return {"ssid": ssid, "psk": psk, "security": sec_type}


def build_apikey_payload(apikey: Optional[str], aiserver: Optional[str]) -> Dict[str, str]:
    """Build the body for `apikey`."""
    if not apikey:
        raise ValidationError("apikey required", field="apikey")
    if not aiserver:
        raise ValidationError("aiserver required", field="aiserver")
    return {"apikey": apikey, "aiserver": aiserver}


def _connect_payload_from_args(args) -> Dict[str, str]:
    return build_connect_payload(args.ssid, args.psk, args.security)


def _apikey_payload_from_args(args) -> Dict[str, str]:
    return build_apikey_payload(args.apikey, args.aiserver)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def _parse_json(body: bytes) -> Any:
    try:
        return json.loads(body)
    except (ValueError, TypeError, RecursionError) as exc:
        raise FormatError(f"Failed to parse JSON response: {exc}") from exc


def _str_field(obj: Dict[str, Any], key: str, default: str = "Unknown") -> str:
    value = obj.get(key)
    return value if isinstance(value, str) else default


def _int_field(obj: Dict[str, Any], key: str, default: int = 0) -> int:
    value = obj.get(key)
    # bool is an int subclass but not a JSON number
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    # json accepts Infinity and NaN
    if not math.isfinite(value):
        return default
    return int(value)


def _body_text(body: bytes) -> str:
    return body.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class AccessPoint:
    ssid: str = "Unknown"
    bars: int = 0
    security: str = "Unknown"

    @classmethod
    def from_json(cls, obj: Dict[str, Any]) -> "AccessPoint":
        return cls(
            ssid=_str_field(obj, "ssid"),
            bars=_int_field(obj, "bars"),
            security=_str_field(obj, "security"),
        )


@dataclass(frozen=True)
class NetworkInfo:
    status: str = "Unknown"
    ip_address: str = "Unknown"
    ssid: str = "Unknown"

    @classmethod
    def from_json(cls, obj: Dict[str, Any]) -> "NetworkInfo":
        return cls(
            status=_str_field(obj, "status"),
            ip_address=_str_field(obj, "ip_address"),
            ssid=_str_field(obj, "ssid"),
        )


# ---------------------------------------------------------------------------
# Response formatters
# ---------------------------------------------------------------------------

def format_scan_result(body: bytes) -> str:
    """Render a scan result array as an SSID / Bars / Security table."""
    lines = [
        "",
        "=== WiFi Access Points ===",
        f"{'SSID':<40} {'Bars':<8} {'Security':<12}",
        f"{'-' * 20:<40} {'-' * 8:<8} {'-' * 12:<12}",
    ]
    try:
        data = _parse_json(body)
    except FormatError:
        lines.append("Failed to parse JSON response")
        return "\n".join(lines)

    if not isinstance(data, list):
        lines.append("Expected JSON array")
        return "\n".join(lines)

    skipped = 0
    for item in data:
        if not isinstance(item, dict):
            skipped += 1
            continue
        ap = AccessPoint.from_json(item)
        lines.append(f"{ap.ssid:<40} {ap.bars:<8} {ap.security:<12}")

    if skipped:
        lines.append(f"(skipped {skipped} malformed entries)")
    lines.append("")
    return "\n".join(lines)


def format_net_info(body: bytes) -> str:
    """Render connection status, IP address and SSID."""
    lines = ["", "=== Network Information ==="]
    try:
        data = _parse_json(body)
    except FormatError:
        lines.append("Failed to parse JSON response")
        return "\n".join(lines)

    info = NetworkInfo.from_json(data if isinstance(data, dict) else {})
    lines.append(f"Connection Status: {info.status}")
    lines.append(f"IP Address: {info.ip_address}")
    lines.append(f"Connected SSID: {info.ssid}")
    lines.append("")
    return "\n".join(lines)


def format_raw(body: bytes) -> str:
    return f"Response:\n{_body_text(body)}"


def format_response(command: str, body: bytes) -> str:
    """Pick the formatter registered for `command` and apply it."""
    cmd = COMMANDS.get(command)
    if cmd is None:
        raise UnknownCommandError(command)
    return cmd.formatter(body)


def format_json(body: bytes) -> str:
    """Pretty-print a JSON body for --json; non-JSON bodies pass through."""
    try:
        return json.dumps(_parse_json(body), indent=2)
    except FormatError:
        return _body_text(body)


# ---------------------------------------------------------------------------
# Command registry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Command:
    name: str
    method: str
    formatter: Callable[[bytes], str]
    build_payload: Optional[Callable[[argparse.Namespace], Dict[str, str]]] = None
    timeout: int = DEFAULT_TIMEOUT

    @property
    def is_get(self) -> bool:
        return self.method == "GET"


COMMANDS: Dict[str, Command] = {
    "get_scan_result": Command("get_scan_result", "GET", format_scan_result),
    "status": Command("status", "GET", format_raw),
    "get_status": Command("get_status", "GET", format_raw),
    "get_net_info": Command("get_net_info", "GET", format_net_info),
    "connect": Command("connect", "POST", format_raw,
                       build_payload=_connect_payload_from_args, timeout=LONG_TIMEOUT),
    "apikey": Command("apikey", "POST", format_raw,
                      build_payload=_apikey_payload_from_args, timeout=LONG_TIMEOUT),
}


def lookup_command(name: str) -> Command:
    try:
        return COMMANDS[name]
    except KeyError:
        raise UnknownCommandError(name) from None


# ---------------------------------------------------------------------------
# HTTP transport
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClientConfig:
    base_url: str
    timeout: float = DEFAULT_TIMEOUT
    user_agent: str = USER_AGENT

    @classmethod
    def for_device(cls, server: str, port: str, **kwargs) -> "ClientConfig":
        return cls(base_url=f"http://{server}:{port}", **kwargs)


@dataclass(frozen=True)
class ResponseEnvelope:
    status_code: int
    body: bytes


class LoquatClient:
    """One HTTP session against the device, scoped with `with`.

    The session is closed on leaving the block, whatever the exit path.
    """

    def __init__(self, config: ClientConfig, session: Optional[requests.Session] = None):
        self.config = config
        self._session = session

    def __enter__(self) -> "LoquatClient":
        if self._session is None:
            self._session = requests.Session()
        return self

    def __exit__(self, *exc_info) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def url_for(self, command: str) -> str:
        return f"{self.config.base_url}/{command}"

    def request(self, method: str, command: str, payload: Optional[Dict[str, Any]] = None,
                headers: Optional[Dict[str, str]] = None,
                timeout: Optional[float] = None) -> ResponseEnvelope:
        """Perform a single request and return the status code and full body.

        The status code is not interpreted here. Any network-level failure is
        raised as TransportError.
        """
        if self._session is None:
            raise RuntimeError("LoquatClient must be used as a context manager")

        url = self.url_for(command)
        req_headers = {"User-Agent": self.config.user_agent}
        if headers:
            req_headers.update(headers)
        kwargs: Dict[str, Any] = {
            "headers": req_headers,
            "timeout": timeout if timeout is not None else self.config.timeout,
            "allow_redirects": True,
        }
        if method == "POST":
            if payload:
                kwargs["json"] = payload
            else:
                kwargs["data"] = b""

        LOG.debug("%s %s (timeout=%ss)", method, url, kwargs["timeout"])
        try:
            resp = self._session.request(method, url, **kwargs)
            body = resp.content
        except requests.Timeout as exc:
            raise TransportError(f"Request timed out for {url}: {exc}", url) from exc
        except requests.ConnectionError as exc:
            raise TransportError(f"Could not connect to {url}: {exc}", url) from exc
        except requests.RequestException as exc:
            raise TransportError(f"Request to {url} failed: {exc}", url) from exc

        LOG.debug("%s %s -> %s (%d bytes)", method, url, resp.status_code, len(body))
        return ResponseEnvelope(status_code=resp.status_code, body=body)


# ---------------------------------------------------------------------------
# main / argparse
# ---------------------------------------------------------------------------

USAGE_EXAMPLES = """\
examples:
  loquat --server 192.168.1.100 --port 8080 --com get_scan_result
  loquat --server 192.168.1.100 --port 8080 --com connect --ssid MyWiFi --psk password123 --security WPA2
  loquat --server 192.168.1.100 --port 8080 --com connect --ssid CafeGuest --security Open
  loquat --server 192.168.1.100 --port 8080 --com apikey --apikey your-api-key --aiserver ai.example.com
"""


class _Parser(argparse.ArgumentParser):
    def error(self, message):
        self.print_usage(sys.stderr)
        raise ArgumentError(message)


def _mask(secret: str) -> str:
    if len(secret) <= 2:
        return "*" * len(secret)
    return secret[0] + "*" * (len(secret) - 2) + secret[-1]


def _positive_seconds(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid timeout: {value!r}") from None
    if not math.isfinite(seconds) or seconds <= 0:
        raise argparse.ArgumentTypeError(f"timeout must be a positive number of seconds: {value!r}")
    return seconds


def _parse_headers(raw: Optional[List[str]]) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    for item in raw or []:
        name, sep, value = item.partition(":")
        if not sep or not name.strip():
            raise ArgumentError(f"Invalid header (expected 'Name: value'): {item!r}")
        headers[name.strip()] = value.strip()
    return headers


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="loquat",
        description="Loquat device API CLI",
        epilog=USAGE_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-s", "--server", help="Device host name or IP address")
    parser.add_argument("-p", "--port", help="Device HTTP port")
    parser.add_argument("-c", "--com", dest="command", metavar="COMMAND",
                        help="Command: " + ", ".join(COMMANDS))
    parser.add_argument("-w", "--ssid", help="Wi-Fi SSID (connect)")
    parser.add_argument("-k", "--psk", help="Wi-Fi password (connect)")
    parser.add_argument("-e", "--security",
                        help="Wi-Fi security type (connect, default WPA2; 'Open' means no password)")
    parser.add_argument("-a", "--apikey", help="API key (apikey)")
    parser.add_argument("-i", "--aiserver", help="AI server host (apikey)")
    parser.add_argument("--header", action="append", default=None, metavar="'NAME: VALUE'",
                        help="Extra request header (repeatable)")
    parser.add_argument("--timeout", type=_positive_seconds, default=None,
                        help=f"Request timeout in seconds (default {DEFAULT_TIMEOUT}, "
                             f"{LONG_TIMEOUT} for connect/apikey)")
    parser.add_argument("--json", action="store_true",
                        help="Print the raw JSON response on stdout")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log request details")
    return parser


def _print_summary(config: ClientConfig, args) -> None:
    print(f"Connecting to: {config.base_url}", file=sys.stderr)
    print(f"Command: {args.command}", file=sys.stderr)
    if args.ssid:
        print(f"SSID: {args.ssid}", file=sys.stderr)
    if args.psk:
        print(f"PSK: {_mask(args.psk)}", file=sys.stderr)
    if args.security:
        print(f"Security: {args.security}", file=sys.stderr)
    if args.apikey:
        print(f"API Key: {_mask(args.apikey)}", file=sys.stderr)
    if args.aiserver:
        print(f"AI Server: {args.aiserver}", file=sys.stderr)
    print(f"Full URL: {config.base_url}/{args.command}\n", file=sys.stderr)


def run(args, client: LoquatClient) -> None:
    """Dispatch one command through an open client; raises LoquatError on failure."""
    cmd = lookup_command(args.command)
    headers = _parse_headers(args.header)
    timeout = args.timeout if args.timeout is not None else cmd.timeout

    payload = cmd.build_payload(args) if cmd.build_payload is not None else None
    if cmd.is_get:
        print("Making GET request...", file=sys.stderr)
    else:
        print("Making POST request...", file=sys.stderr)
        if payload is not None and args.verbose:
            print(f"POST data: {json.dumps(payload, indent=2)}")
        if timeout > DEFAULT_TIMEOUT:
            print(f"Using {timeout:g}-second timeout for {cmd.name}...", file=sys.stderr)

    resp = client.request(cmd.method, cmd.name, payload=payload, headers=headers, timeout=timeout)
    if resp.status_code != 200:
        raise ApplicationError(cmd.name, resp.status_code)

    if args.json:
        print(format_json(resp.body))
    else:
        print(format_response(cmd.name, resp.body), file=sys.stderr)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
        if not args.server or not args.port or not args.command:
            parser.print_usage(sys.stderr)
            raise ArgumentError("--server, --port, and --com are required parameters")

        if args.verbose:
            logging.basicConfig(level=logging.DEBUG,
                                format="%(levelname)s %(name)s: %(message)s")

        config = ClientConfig.for_device(args.server, args.port)
        _print_summary(config, args)
        with LoquatClient(config) as client:
            run(args, client)
    except LoquatError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
