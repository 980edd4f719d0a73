"""
Proxy list loading and selection.
"""
import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProxyEntry:
    host: str
    port: int
    username: Optional[str] = None
    password: Optional[str] = None

    @property
    def server(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def has_auth(self) -> bool:
        return bool(self.username)

    def to_playwright(self) -> Dict[str, str]:
        """Proxy settings in the shape Playwright's launch/context options expect"""
        proxy = {"server": self.server}
        if self.has_auth:
            proxy["username"] = self.username
            proxy["password"] = self.password or ""
        return proxy

    def __str__(self) -> str:
        # Never print credentials
        return f"{self.host}:{self.port}"


def parse_proxy_line(line: str) -> Optional[ProxyEntry]:
    """
    Parse one proxy line.

    Supported formats: host:port or host:port:user:pass. Passwords may
    themselves contain colons.
    """
    line = line.strip()
    if not line or line.startswith('#'):
        return None

    parts = line.split(':')
    if len(parts) < 2 or not parts[0]:
        return None

    try:
        port = int(parts[1])
    except ValueError:
        return None

    username = None
    password = None
    if len(parts) >= 4:
        username = parts[2]
        password = ':'.join(parts[3:])

    return ProxyEntry(host=parts[0], port=port, username=username, password=password)


def load_proxies(path: str) -> Tuple[ProxyEntry, ...]:
    """Load proxies from a line-oriented file; a missing file means no proxies"""
    proxy_file = Path(path)
    if not proxy_file.exists():
        logger.warning(f"Proxy file not found: {path}")
        return ()

    entries = []
    try:
        with open(proxy_file, 'r', encoding='utf-8') as f:
            for line in f:
                entry = parse_proxy_line(line)
                if entry:
                    entries.append(entry)
                elif line.strip() and not line.strip().startswith('#'):
                    logger.warning(f"Skipping malformed proxy line: {line.strip()[:40]}")
    except OSError as e:
        logger.error(f"Error loading proxies: {e}")
        return ()

    logger.info(f"Loaded {len(entries)} proxies from {path}")
    return tuple(entries)


def choose_proxy(entries: Sequence[ProxyEntry], rng=random) -> Optional[ProxyEntry]:
    if not entries:
        return None
    return rng.choice(entries)
