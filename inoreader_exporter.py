#!/usr/bin/env python3
"""
Inoreader Exporter v0.1
Export of starred Inoreader items with OAuth2 token refresh, bounded
continuation-based pagination and optionally encrypted token storage.

Usage:
    python inoreader_exporter.py --help
    python inoreader_exporter.py setup --redirect-uri http://localhost:8080/callback
    python inoreader_exporter.py fetch --export csv --output articles.csv
"""

import requests
import json
import csv
import time
import os
import hashlib
import secrets
import string
import logging
import sys
import argparse
from datetime import datetime
from urllib.parse import quote, urlparse, parse_qs, urlencode
import webbrowser
from typing import Callable, Dict, List, Optional, Tuple
from pathlib import Path
from dataclasses import dataclass, field
from contextlib import contextmanager
import shutil

import keyring
from keyring.errors import KeyringError
from cryptography.fernet import Fernet, InvalidToken
from dotenv import find_dotenv, load_dotenv

DEFAULT_AUTH_URL = "https://www.inoreader.com/oauth2/auth"
DEFAULT_TOKEN_URL = "https://www.inoreader.com/oauth2/token"
DEFAULT_API_BASE_URL = "https://www.inoreader.com/reader/api/0"
DEFAULT_STREAM_ID = "user/-/state/com.google/starred"

STATE_LENGTH = 30
STATE_ALPHABET = string.ascii_letters + string.digits

# Printable ASCII minus the fragment set (space, '"', '<', '>', '`').
# Controls and non-ASCII are always escaped by quote().
_FRAGMENT_SAFE = "".join(
    chr(c) for c in range(0x21, 0x7F) if chr(c) not in '"<>`'
)

# Key order of the on-disk token record
RECORD_KEYS = (
    ('AuthorizationCode', 'authorization_code'),
    ('State', 'state'),
    ('AccessToken', 'access_token'),
    ('RefreshToken', 'refresh_token'),
    ('ExpiresIn', 'expires_at'),
)


class ExporterError(Exception):
    """Base class for exporter failures"""


class AuthError(ExporterError):
    """Authorization code or token exchange failed"""


class TransportError(ExporterError):
    """Network-level failure during an HTTP exchange"""


class DecodeError(ExporterError):
    """A listing page could not be decoded"""


class StorageError(ExporterError):
    """The token record could not be read or written"""


@dataclass
class ExporterConfig:
    """Configuration for authentication and export operations"""
    auth_url: str = DEFAULT_AUTH_URL
    token_url: str = DEFAULT_TOKEN_URL
    api_base_url: str = DEFAULT_API_BASE_URL
    stream_id: str = DEFAULT_STREAM_ID
    scope: str = "read"
    token_file: str = ".config"
    encrypt_tokens: bool = False
    page_size: int = 100
    max_iterations: int = 10
    timeout: int = 30
    open_browser: bool = False

    @classmethod
    def from_file(cls, config_path: str) -> 'ExporterConfig':
        """Load configuration from JSON file"""
        try:
            with open(config_path, 'r') as f:
                config_data = json.load(f)
            return cls(**{k: v for k, v in config_data.items() if k in cls.__annotations__})
        except (FileNotFoundError, json.JSONDecodeError) as e:
            logging.debug(f"Config file not found or invalid: {e}")
            return cls()


@dataclass
class Credentials:
    """OAuth credentials as persisted between runs.

    ``expires_at`` is an absolute unix timestamp in seconds. A zero-valued
    instance is what a first run starts from.
    """
    authorization_code: str = ""
    state: str = ""
    access_token: str = ""
    refresh_token: str = ""
    expires_at: int = 0

    def is_empty(self) -> bool:
        return not self.access_token and not self.refresh_token


@dataclass(frozen=True)
class Item:
    title: str
    canonical_url: str


@dataclass(frozen=True)
class Page:
    items: Tuple[Item, ...]
    continuation: Optional[str] = None


@dataclass
class FetchState:
    """Mutable state of a single fetch call"""
    continuation: Optional[str] = None
    started: bool = False
    iteration_count: int = 0
    accumulated: List[Item] = field(default_factory=list)

    def has_next(self) -> bool:
        return not self.started or self.continuation is not None


def _mask(secret: str) -> str:
    """Shorten a secret for log output"""
    if not secret:
        return "EMPTY"
    return f"{secret[:4]}..."


@contextmanager
def _atomic_file_write(filename: str, mode: str = 'w', permissions: Optional[int] = None):
    """Context manager for atomic file writes"""
    temp_file = f"{filename}.tmp"
    try:
        if 'b' in mode:
            f = open(temp_file, mode)
        else:
            f = open(temp_file, mode, encoding='utf-8', newline='')
        with f:
            yield f
        if permissions is not None:
            os.chmod(temp_file, permissions)
        shutil.move(temp_file, filename)
    except Exception:
        if os.path.exists(temp_file):
            os.unlink(temp_file)
        raise


class TokenStore:
    """Line-oriented ``Key:Value`` persistence of OAuth credentials"""

    def __init__(self, path: str):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Credentials:
        """Load credentials, returning an empty record when none is stored"""
        if not self.path.exists():
            logging.debug(f"No token record at {self.path}")
            return Credentials()

        try:
            text = self._read_text()
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Failed to read token file {self.path}: {e}") from e

        return self._parse_record(text)

    def save(self, credentials: Credentials) -> None:
        """Replace the stored record with ``credentials``"""
        text = self._format_record(credentials)
        try:
            self._write_text(text)
        except OSError as e:
            raise StorageError(f"Failed to write token file {self.path}: {e}") from e
        logging.info(f"Token record saved to {self.path}")

    def _read_text(self) -> str:
        return self.path.read_text(encoding='utf-8')

    def _write_text(self, text: str) -> None:
        with _atomic_file_write(str(self.path), permissions=0o600) as f:
            f.write(text)

    def _parse_record(self, text: str) -> Credentials:
        values: Dict[str, str] = {}
        # Only \n separates records; other Unicode line breaks may appear in values
        for line in text.split('\n'):
            if line.endswith('\r'):
                line = line[:-1]
            key, sep, value = line.partition(':')
            if sep:
                values[key] = value

        credentials = Credentials()
        for key, attr in RECORD_KEYS:
            if key not in values:
                continue
            if attr == 'expires_at':
                try:
                    credentials.expires_at = int(values[key]) if values[key] else 0
                except ValueError as e:
                    raise StorageError(f"Invalid {key} value in {self.path}: {values[key]!r}") from e
            else:
                setattr(credentials, attr, values[key])
        return credentials

    def _format_record(self, credentials: Credentials) -> str:
        lines = []
        for key, attr in RECORD_KEYS:
            value = str(getattr(credentials, attr))
            if '\n' in value or '\r' in value:
                raise StorageError(f"{key} must not contain a line break")
            lines.append(f"{key}:{value}")
        return '\n'.join(lines) + '\n'


class SecureTokenStore(TokenStore):
    """Token store encrypting the record with a key held in the system keyring"""

    service_name = "inoreader_exporter"

    def __init__(self, path: str, client_id: str = ""):
        super().__init__(path)
        self.username = f"user_{hashlib.sha256(client_id.encode()).hexdigest()[:16]}"
        self.key_file = self.path.with_name(f"{self.path.name}.key")
        self._encryption_key: Optional[bytes] = None

    @property
    def encryption_key(self) -> bytes:
        if self._encryption_key is None:
            self._encryption_key = self._get_or_create_key()
        return self._encryption_key

    def _get_or_create_key(self) -> bytes:
        """Get or create encryption key"""
        try:
            key = keyring.get_password(self.service_name, f"{self.username}_key")
            if key:
                return key.encode()
        except KeyringError as e:
            logging.debug(f"Keyring access failed: {e}")

        # Fallback: key file next to the token record
        if self.key_file.exists():
            return self.key_file.read_bytes()

        key = Fernet.generate_key()
        try:
            keyring.set_password(self.service_name, f"{self.username}_key", key.decode())
            logging.info("Encryption key stored in system keyring")
        except KeyringError as e:
            logging.debug(f"Keyring unavailable: {e}")
            try:
                self.key_file.write_bytes(key)
                os.chmod(self.key_file, 0o600)
            except OSError as e:
                raise StorageError(f"Could not save encryption key: {e}") from e
            logging.warning(f"Encryption key stored in file: {self.key_file} (configure a keyring backend for more secure storage)")

        return key

    def _read_text(self) -> str:
        encrypted = self.path.read_bytes()
        try:
            return Fernet(self.encryption_key).decrypt(encrypted).decode('utf-8')
        except InvalidToken as e:
            raise StorageError(f"Could not decrypt token file {self.path}") from e

    def _write_text(self, text: str) -> None:
        encrypted = Fernet(self.encryption_key).encrypt(text.encode('utf-8'))
        with _atomic_file_write(str(self.path), mode='wb', permissions=0o600) as f:
            f.write(encrypted)


def calculate_expiry(now: float, expires_in: int) -> int:
    """Absolute expiry instant for a token issued at ``now``.

    The fraction of ``now`` is dropped, so the result is exact for whole seconds.
    """
    return int(now) + expires_in


def is_expired(credentials: Credentials, now: float) -> bool:
    return now >= credentials.expires_at


def generate_state(length: int = STATE_LENGTH) -> str:
    """Random alphanumeric nonce correlating the authorization round-trip"""
    return ''.join(secrets.choice(STATE_ALPHABET) for _ in range(length))


class TokenLifecycleManager:
    """Obtains, refreshes and persists OAuth2 credentials"""

    def __init__(self, store: TokenStore, config: Optional[ExporterConfig] = None,
                 session: Optional[requests.Session] = None,
                 input_provider: Optional[Callable[[str], str]] = None,
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.config = config or ExporterConfig()
        self.session = session or requests.Session()
        self.input_provider = input_provider or input
        self.clock = clock

    def is_expired(self, credentials: Credentials, now: Optional[float] = None) -> bool:
        return is_expired(credentials, self.clock() if now is None else now)

    def build_authorization_url(self, client_id: str, redirect_uri: str, state: str) -> str:
        params = {
            'client_id': client_id,
            'redirect_uri': redirect_uri,
            'response_type': 'code',
            'scope': self.config.scope,
            'state': state,
        }
        return f"{self.config.auth_url}?{urlencode(params)}"

    def authenticate(self, client_id: str, client_secret: str, redirect_uri: str) -> Credentials:
        """Run the authorization-code flow and persist the resulting tokens"""
        state = generate_state()
        auth_url = self.build_authorization_url(client_id, redirect_uri, state)
        logging.debug(f"Authorization URL: {auth_url}")

        if self.config.open_browser:
            logging.info("Opening browser for authorization...")
            webbrowser.open(auth_url)

        reply = self.input_provider(
            f"Open this URL in your browser to authorize access:\n  {auth_url}\n"
            "Enter the code (or the full redirected URL): "
        )
        code = self._extract_code(reply, state)

        token_data = self._request_token({
            'client_id': client_id,
            'client_secret': client_secret,
            'redirect_uri': redirect_uri,
            'code': code,
            'grant_type': 'authorization_code',
        })

        credentials = Credentials(
            authorization_code=code,
            state=state,
            access_token=token_data['access_token'],
            refresh_token=token_data['refresh_token'],
            expires_at=calculate_expiry(self.clock(), token_data['expires_in']),
        )
        self._persist(credentials)
        logging.info("Authentication successful")
        return credentials

    def refresh(self, client_id: str, client_secret: str, refresh_token: str) -> Credentials:
        """Exchange a refresh token for a new access token"""
        if not refresh_token:
            raise AuthError("No refresh token available, run setup again")

        previous = self.store.load()

        logging.info("Refreshing access token...")
        token_data = self._request_token({
            'client_id': client_id,
            'client_secret': client_secret,
            'refresh_token': refresh_token,
            'grant_type': 'refresh_token',
        })

        credentials = Credentials(
            authorization_code=previous.authorization_code,
            state=previous.state,
            access_token=token_data['access_token'],
            refresh_token=token_data['refresh_token'],
            expires_at=calculate_expiry(self.clock(), token_data['expires_in']),
        )
        self._persist(credentials)
        logging.info(f"Access token refreshed, valid until {datetime.fromtimestamp(credentials.expires_at).isoformat()}")
        return credentials

    def get_valid_credentials(self, client_id: str, client_secret: str) -> Credentials:
        """Return stored credentials, refreshing them first when expired"""
        credentials = self.store.load()
        if credentials.is_empty():
            raise AuthError("No stored tokens, run setup first")

        if not credentials.access_token or self.is_expired(credentials):
            logging.info("Stored access token is missing or has expired")
            return self.refresh(client_id, client_secret, credentials.refresh_token)

        logging.info("Loaded saved authentication token")
        return credentials

    def _extract_code(self, reply: str, state: str) -> str:
        """Pull the authorization code out of a bare code or a redirected URL"""
        reply = (reply or "").strip()

        if '://' in reply or reply.startswith('?'):
            query = parse_qs(urlparse(reply).query)
            returned_state = query.get('state', [None])[0]
            if returned_state is not None and returned_state != state:
                raise AuthError("State mismatch in redirected URL")
            error = query.get('error', [None])[0]
            if error:
                raise AuthError(f"Authorization denied: {error}")
            reply = (query.get('code', [''])[0] or '').strip()

        if not reply:
            raise AuthError("No authorization code supplied")
        if any(c.isspace() for c in reply) or ':' in reply:
            raise AuthError("Malformed authorization code")
        return reply

    def _request_token(self, form: Dict[str, str]) -> Dict:
        """POST a form to the token endpoint and validate the token response"""
        grant_type = form['grant_type']
        try:
            response = self.session.post(self.config.token_url, data=form, timeout=self.config.timeout)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Token request ({grant_type}) failed: {e}") from e

        if not 200 <= response.status_code < 300:
            logging.debug(f"Token endpoint response: {response.text[:500]}")
            raise AuthError(f"Token endpoint returned {response.status_code} for {grant_type}")

        try:
            token_data = response.json()
        except ValueError as e:
            raise AuthError(f"Token response is not valid JSON: {e}") from e

        if not isinstance(token_data, dict):
            raise AuthError("Token response has an unexpected shape")
        missing = [k for k in ('access_token', 'refresh_token', 'expires_in') if k not in token_data]
        if missing:
            raise AuthError(f"Token response missing {', '.join(missing)}")

        expires_in = token_data['expires_in']
        if isinstance(expires_in, bool) or not isinstance(expires_in, int) or expires_in < 0:
            raise AuthError(f"Invalid expires_in in token response: {expires_in!r}")
        if not isinstance(token_data['access_token'], str) or not isinstance(token_data['refresh_token'], str):
            raise AuthError("Token response has non-string tokens")

        logging.debug(f"Received access token {_mask(token_data['access_token'])} (expires in {expires_in}s)")
        return token_data

    def _persist(self, credentials: Credentials) -> None:
        try:
            self.store.save(credentials)
        except StorageError as e:
            logging.error(f"Obtained tokens could not be saved: {e}")


def parse_response(body: str) -> Page:
    """Decode one page of the stream contents endpoint"""
    try:
        data = json.loads(body)
    except ValueError as e:
        raise DecodeError(f"Response is not valid JSON: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get('items'), list):
        raise DecodeError("Response has no items list")

    items = []
    for index, raw in enumerate(data['items']):
        if not isinstance(raw, dict):
            raise DecodeError(f"Item {index} is not an object")
        title = raw.get('title')
        if not isinstance(title, str):
            raise DecodeError(f"Item {index} has no title")
        canonical = raw.get('canonical')
        if not isinstance(canonical, list):
            raise DecodeError(f"Item {index} has no canonical list")
        if not canonical:
            raise DecodeError(f"Item {index} ({title!r}) has an empty canonical list")
        first = canonical[0]
        href = first.get('href') if isinstance(first, dict) else None
        if not isinstance(href, str):
            raise DecodeError(f"Item {index} ({title!r}) has no canonical href")
        items.append(Item(title=title, canonical_url=href))

    continuation = data.get('continuation')
    if continuation is not None and not isinstance(continuation, str):
        raise DecodeError("Continuation is not a string")

    return Page(items=tuple(items), continuation=continuation or None)


def encode_stream_id(stream_id: str) -> str:
    """Percent-encode a stream id for use in the request path"""
    return quote(stream_id, safe=_FRAGMENT_SAFE)


class PaginatedFetcher:
    """Walks the continuation-paginated stream contents endpoint"""

    def __init__(self, config: Optional[ExporterConfig] = None,
                 session: Optional[requests.Session] = None):
        self.config = config or ExporterConfig()
        self.session = session or requests.Session()
        self.last_error: Optional[ExporterError] = None
        self.pages_fetched = 0

    def stream_url(self, stream_id: Optional[str] = None) -> str:
        encoded = encode_stream_id(stream_id or self.config.stream_id)
        return f"{self.config.api_base_url}/stream/contents/{encoded}"

    def fetch(self, access_token: str, client_id: str, client_secret: str,
              page_size: Optional[int] = None, max_iterations: Optional[int] = None) -> List[Item]:
        """Fetch every page up to ``max_iterations``.

        A failing page stops pagination; the items gathered so far are
        returned and the failure is kept in ``last_error``.
        """
        page_size = self.config.page_size if page_size is None else page_size
        max_iterations = self.config.max_iterations if max_iterations is None else max_iterations
        url = self.stream_url()
        state = FetchState()
        self.last_error = None
        self.pages_fetched = 0

        while state.iteration_count < max_iterations and state.has_next():
            params = {'AppId': client_id, 'AppKey': client_secret, 'n': page_size}
            if state.started:
                params['c'] = state.continuation

            try:
                page = self._fetch_page(url, params, access_token)
            except ExporterError as e:
                logging.error(f"Stopping after {state.iteration_count} page(s): {e}")
                self.last_error = e
                break

            state.accumulated.extend(page.items)
            state.continuation = page.continuation
            state.started = True
            state.iteration_count += 1
            self.pages_fetched = state.iteration_count
            logging.info(f"Fetched page {state.iteration_count}: {len(page.items)} items ({len(state.accumulated)} total)")

        if state.has_next() and self.last_error is None and state.iteration_count >= max_iterations:
            logging.warning(f"Stopped at the iteration limit ({max_iterations}), more pages remain")

        return state.accumulated

    def _fetch_page(self, url: str, params: Dict, access_token: str) -> Page:
        headers = {'Authorization': f"Bearer {access_token}"}
        logging.debug(f"GET {url} (n={params['n']}, c={params.get('c', '')!r})")
        try:
            response = self.session.get(url, params=params, headers=headers, timeout=self.config.timeout)
        except requests.exceptions.RequestException as e:
            raise TransportError(f"Request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            logging.debug(f"Response content: {response.text[:500]}")
            raise TransportError(f"Failed to fetch stream contents. Status: {response.status_code}")

        return parse_response(response.text)


def export_to_csv(items: List[Item], filename: str) -> int:
    """Write ``title,url`` rows, returning the number of items written"""
    with _atomic_file_write(filename) as f:
        writer = csv.writer(f, quoting=csv.QUOTE_ALL)
        writer.writerow(['title', 'url'])
        for item in items:
            writer.writerow([item.title, item.canonical_url])

    logging.info(f"Successfully exported {len(items)} items to {filename}")
    return len(items)


def export_to_json(items: List[Item], filename: str, stream_id: str = DEFAULT_STREAM_ID) -> int:
    """Write the items as a JSON document, returning the number written"""
    document = {
        'export_date': datetime.now().isoformat(),
        'stream_id': stream_id,
        'items': [{'title': item.title, 'url': item.canonical_url} for item in items],
        'total_items': len(items),
    }
    with _atomic_file_write(filename) as f:
        json.dump(document, f, ensure_ascii=False, indent=2)
        f.write('\n')

    logging.info(f"Successfully exported {len(items)} items to {filename}")
    return len(items)


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Setup logging configuration"""
    level = getattr(logging, log_level.upper(), logging.INFO)

    handlers = [logging.StreamHandler()]
    handlers.append(logging.FileHandler(log_file or 'inoreader_exporter.log'))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def create_cli_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser"""
    parser = argparse.ArgumentParser(
        description="Inoreader starred items exporter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s setup --redirect-uri http://localhost:8080/callback
  %(prog)s fetch
  %(prog)s fetch --export json --output starred.json
  %(prog)s --encrypt-tokens fetch --max-iterations 50
  %(prog)s --log-level DEBUG fetch  # For troubleshooting API issues
        """
    )

    # Authentication
    parser.add_argument(
        '--client-id',
        type=str,
        help='Inoreader app id (or set INOREADER_CLIENT_ID env var)'
    )

    parser.add_argument(
        '--client-secret',
        type=str,
        help='Inoreader app key (or set INOREADER_CLIENT_SECRET env var)'
    )

    # Configuration
    parser.add_argument(
        '--config',
        type=str,
        default='inoreader_config.json',
        help='Configuration file path (default: inoreader_config.json)'
    )

    parser.add_argument(
        '--token-file',
        type=str,
        help='Token record path (default: .config)'
    )

    parser.add_argument(
        '--encrypt-tokens',
        action='store_true',
        help='Encrypt the token record with a key kept in the system keyring'
    )

    # Logging
    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Logging level (default: INFO)'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        help='Log file path (default: inoreader_exporter.log)'
    )

    parser.add_argument(
        '--quiet', '-q',
        action='store_true',
        help='Suppress progress output (errors still shown)'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    setup_parser = subparsers.add_parser('setup', help='Authorize the app and store tokens')
    setup_parser.add_argument(
        '--redirect-uri',
        type=str,
        help='OAuth redirect URI (or set INOREADER_REDIRECT_URI env var)'
    )
    setup_parser.add_argument(
        '--force',
        action='store_true',
        help='Overwrite an existing token record'
    )
    setup_parser.add_argument(
        '--open-browser',
        action='store_true',
        help='Open the authorization URL in the default browser'
    )

    fetch_parser = subparsers.add_parser('fetch', help='Fetch starred items and export them')
    fetch_parser.add_argument(
        '--export',
        choices=['csv', 'json'],
        default='csv',
        help='Export format (default: csv)'
    )
    fetch_parser.add_argument(
        '--output', '-o',
        type=str,
        help='Output filename (default: articles.csv or articles.json)'
    )
    fetch_parser.add_argument(
        '--stream',
        type=str,
        help=f'Stream id to export (default: {DEFAULT_STREAM_ID})'
    )
    fetch_parser.add_argument(
        '--page-size',
        type=int,
        help='Items per page (default: 100)'
    )
    fetch_parser.add_argument(
        '--max-iterations',
        type=int,
        help='Maximum number of pages to request (default: 10)'
    )

    return parser


def build_token_store(config: ExporterConfig, client_id: str) -> TokenStore:
    if config.encrypt_tokens:
        return SecureTokenStore(config.token_file, client_id)
    return TokenStore(config.token_file)


def run_setup(args, config: ExporterConfig, client_id: str, client_secret: str) -> int:
    """Authorize the app and persist the first token record"""
    store = build_token_store(config, client_id)
    if store.exists() and not args.force:
        print(f"Token file {store.path} already exists. Use --force to authorize again.")
        return 1

    redirect_uri = args.redirect_uri or os.environ.get('INOREADER_REDIRECT_URI')
    if not redirect_uri:
        print("Error: Redirect URI required. Use --redirect-uri or set INOREADER_REDIRECT_URI environment variable.")
        return 1

    manager = TokenLifecycleManager(store, config)
    manager.authenticate(client_id, client_secret, redirect_uri)
    if not args.quiet:
        print("Authentication successful!")
    return 0


def run_fetch(args, config: ExporterConfig, client_id: str, client_secret: str) -> int:
    """Fetch the configured stream and export it"""
    store = build_token_store(config, client_id)
    if not store.exists():
        print(f"Token file {store.path} not found. Please run 'setup' command first.")
        return 1

    session = requests.Session()
    manager = TokenLifecycleManager(store, config, session=session)
    credentials = manager.get_valid_credentials(client_id, client_secret)

    fetcher = PaginatedFetcher(config, session=session)
    items = fetcher.fetch(credentials.access_token, client_id, client_secret,
                          page_size=args.page_size, max_iterations=args.max_iterations)

    if fetcher.last_error is not None:
        logging.warning(f"Partial export: {len(items)} items from {fetcher.pages_fetched} page(s)")

    if args.export == 'json':
        count = export_to_json(items, args.output or 'articles.json', config.stream_id)
    else:
        count = export_to_csv(items, args.output or 'articles.csv')

    if not args.quiet:
        suffix = " (partial, check logs for details)" if fetcher.last_error is not None else ""
        print(f"Exported {count} items{suffix}. Done!")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point"""
    parser = create_cli_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level, args.log_file)
    load_dotenv(find_dotenv(usecwd=True), override=False)

    config = ExporterConfig.from_file(args.config)
    if args.token_file:
        config.token_file = args.token_file
    if args.encrypt_tokens:
        config.encrypt_tokens = True
    if getattr(args, 'open_browser', False):
        config.open_browser = True
    if getattr(args, 'stream', None):
        config.stream_id = args.stream

    client_id = args.client_id or os.environ.get('INOREADER_CLIENT_ID')
    client_secret = args.client_secret or os.environ.get('INOREADER_CLIENT_SECRET')
    if not client_id or not client_secret:
        print("Error: App credentials required. Use --client-id/--client-secret or set "
              "INOREADER_CLIENT_ID and INOREADER_CLIENT_SECRET environment variables.")
        print("Register an app at: https://www.inoreader.com/preferences/developer")
        return 1

    try:
        if args.command == 'setup':
            return run_setup(args, config, client_id, client_secret)
        return run_fetch(args, config, client_id, client_secret)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        return 130
    except ExporterError as e:
        logging.error(f"{type(e).__name__}: {e}")
        if not args.quiet:
            print(f"Error: {e}")
        return 1
    except OSError as e:
        logging.error(f"Export failed: {e}")
        print(f"Export failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
