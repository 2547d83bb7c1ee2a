"""
robots.txt policy gate for scraper compliance.
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from urllib.parse import urlparse

import requests

from fairway.scraping.logging_utils import log_event
from fairway.scraping.rate_limiter import origin_of

logger = logging.getLogger(__name__)

WILDCARD_AGENT = "*"
KNOWN_DIRECTIVES = {
    "user-agent",
    "allow",
    "disallow",
    "crawl-delay",
    "sitemap",
    "host",
    "request-rate",
    "visit-time",
    "clean-param",
}
PATTERN_CACHE_SIZE = 1024
# Browser compatibility tokens that precede the crawler's own name.
GENERIC_AGENT_TOKENS = frozenset(
    {
        "mozilla",
        "applewebkit",
        "khtml",
        "gecko",
        "chrome",
        "chromium",
        "safari",
        "firefox",
        "version",
        "edg",
        "opr",
    }
)
_PRODUCT_TOKEN_RE = re.compile(r"(?:^|[\s(;])([A-Za-z][\w.-]*)/")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def product_token(user_agent: str) -> str:
    """
    Crawler name a robots.txt group is matched against, lowercased.

    "Mozilla/5.0 (compatible; GolfCourseBot/1.0)" yields "golfcoursebot".
    """

    names = [match.group(1).lower() for match in _PRODUCT_TOKEN_RE.finditer(user_agent)]
    for name in names:
        if name not in GENERIC_AGENT_TOKENS:
            return name
    if names:
        return names[0]
    words = user_agent.split()
    return words[0].lower() if words else ""


@dataclass(frozen=True)
class RobotsRule:
    pattern: str
    allow: bool

    @property
    def specificity(self) -> int:
        return len(self.pattern)

    def matches(self, path: str) -> bool:
        return _compile_pattern(self.pattern).match(path) is not None


@dataclass
class RobotsGroup:
    rules: list[RobotsRule] = field(default_factory=list)
    crawl_delay_seconds: float | None = None


@dataclass(frozen=True)
class RobotsPolicy:
    """
    Parsed robots.txt for one origin, valid until `ttl_expiry`.
    """

    origin: str
    fetched_at: datetime
    ttl_expiry: datetime
    exists: bool
    groups: dict[str, RobotsGroup] = field(default_factory=dict)
    sitemaps: list[str] = field(default_factory=list)
    host: str | None = None

    def group_for(self, user_agent: str) -> RobotsGroup | None:
        """
        Pick the group whose agent token best matches `user_agent`, else `*`.
        """

        agent = product_token(user_agent)
        best_token: str | None = None
        for token in self.groups:
            if token == WILDCARD_AGENT or token not in agent:
                continue
            if best_token is None or len(token) > len(best_token):
                best_token = token
        if best_token is not None:
            return self.groups[best_token]
        return self.groups.get(WILDCARD_AGENT)

    def allow_rules(self, user_agent: str) -> list[str]:
        group = self.group_for(user_agent)
        return [rule.pattern for rule in group.rules if rule.allow] if group else []

    def disallow_rules(self, user_agent: str) -> list[str]:
        group = self.group_for(user_agent)
        return [rule.pattern for rule in group.rules if not rule.allow] if group else []

    def crawl_delay(self, user_agent: str) -> float | None:
        group = self.group_for(user_agent)
        return group.crawl_delay_seconds if group else None

    def decide(self, path: str, user_agent: str) -> tuple[bool, RobotsRule | None]:
        """
        Longest matching rule wins; an Allow wins a tie.
        """

        group = self.group_for(user_agent)
        if group is None:
            return True, None

        winner: RobotsRule | None = None
        for rule in group.rules:
            if not rule.matches(path):
                continue
            if winner is None or rule.specificity > winner.specificity:
                winner = rule
            elif rule.specificity == winner.specificity and rule.allow:
                winner = rule
        if winner is None:
            return True, None
        return winner.allow, winner


@dataclass(frozen=True)
class RobotsDecision:
    allowed: bool
    checked_at: datetime
    reason: str | None = None
    crawl_delay: float | None = None
    cache_hit: bool = False


@dataclass(frozen=True)
class RobotsInfo:
    exists: bool
    last_checked: datetime
    crawl_delay: float | None = None
    sitemaps: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RobotsValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class PolicyGate:
    """
    Caches robots.txt policies per origin and answers access checks.

    Concurrent callers asking for the same uncached origin share one fetch.
    """

    def __init__(
        self,
        *,
        session: requests.Session,
        user_agent: str,
        timeout_seconds: float = 10.0,
        ttl_seconds: float = 24 * 60 * 60,
        allow_when_unreachable: bool = True,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session = session
        self._user_agent = user_agent
        self._timeout_seconds = timeout_seconds
        self._ttl = timedelta(seconds=ttl_seconds)
        self._allow_when_unreachable = allow_when_unreachable
        self._now = now
        self._cache: dict[str, RobotsPolicy] = {}
        self._inflight: dict[str, Future[RobotsPolicy]] = {}
        self._lock = threading.Lock()

    def can_scrape(self, url: str, user_agent: str | None = None) -> RobotsDecision:
        """
        Return whether `url` may be fetched by `user_agent`.
        """

        agent = user_agent or self._user_agent
        parsed = urlparse(url)
        path = parsed.path or "/"
        if parsed.query:
            path = f"{path}?{parsed.query}"

        policy, cache_hit = self._get_policy(origin_of(url))
        allowed, rule = policy.decide(path, agent)
        reason = None
        if not allowed and rule is not None:
            reason = (
                f'Path "{path}" is disallowed by robots.txt rule "{rule.pattern}" '
                f'for user-agent "{agent}"'
            )
        elif not policy.exists:
            reason = "No robots.txt found"

        decision = RobotsDecision(
            allowed=allowed,
            checked_at=self._now(),
            reason=reason,
            crawl_delay=policy.crawl_delay(agent),
            cache_hit=cache_hit,
        )
        log_event(
            logger,
            logging.DEBUG,
            "robots_checked",
            url=url,
            allowed=decision.allowed,
            crawl_delay=decision.crawl_delay,
            cache_hit=cache_hit,
        )
        return decision

    def get_robots_info(self, origin: str) -> RobotsInfo:
        policy, _ = self._get_policy(origin_of(origin))
        return RobotsInfo(
            exists=policy.exists,
            last_checked=policy.fetched_at,
            crawl_delay=policy.crawl_delay(self._user_agent),
            sitemaps=list(policy.sitemaps),
        )

    def clear_cache(self, origin: str | None = None) -> None:
        with self._lock:
            if origin is None:
                self._cache.clear()
            else:
                self._cache.pop(origin_of(origin), None)
        log_event(logger, logging.INFO, "robots_cache_cleared", origin=origin or "*")

    def cache_stats(self) -> dict[str, object]:
        with self._lock:
            policies = list(self._cache.values())
        fetched = [policy.fetched_at for policy in policies]
        return {
            "size": len(policies),
            "origins": sorted(policy.origin for policy in policies),
            "oldest_entry": min(fetched) if fetched else None,
            "newest_entry": max(fetched) if fetched else None,
        }

    def _get_policy(self, origin: str) -> tuple[RobotsPolicy, bool]:
        with self._lock:
            cached = self._cache.get(origin)
            if cached is not None and self._now() < cached.ttl_expiry:
                return cached, True
            pending = self._inflight.get(origin)
            owner = pending is None
            if pending is None:
                pending = Future()
                self._inflight[origin] = pending

        if not owner:
            return pending.result(), False

        try:
            policy = self._fetch_policy(origin)
        except BaseException as exc:
            with self._lock:
                self._inflight.pop(origin, None)
            pending.set_exception(exc)
            raise

        with self._lock:
            self._cache[origin] = policy
            self._inflight.pop(origin, None)
        pending.set_result(policy)
        return policy, False

    def _fetch_policy(self, origin: str) -> RobotsPolicy:
        robots_url = f"{origin}/robots.txt"
        fetched_at = self._now()
        try:
            response = self._session.get(
                robots_url,
                headers={"User-Agent": self._user_agent},
                timeout=self._timeout_seconds,
                allow_redirects=True,
            )
        except requests.RequestException as exc:
            log_event(
                logger,
                logging.WARNING,
                "robots_fetch_failed",
                origin=origin,
                robots_url=robots_url,
                fallback_allow=self._allow_when_unreachable,
                error=str(exc),
            )
            return self._unreachable_policy(origin, fetched_at)

        if response.status_code == 200:
            policy = parse_robots_txt(
                response.text or "",
                origin=origin,
                fetched_at=fetched_at,
                ttl_expiry=fetched_at + self._ttl,
            )
            log_event(
                logger,
                logging.INFO,
                "robots_loaded",
                origin=origin,
                robots_url=robots_url,
                groups=len(policy.groups),
                sitemaps=len(policy.sitemaps),
            )
            return policy

        if response.status_code >= 500:
            log_event(
                logger,
                logging.WARNING,
                "robots_unavailable",
                origin=origin,
                robots_url=robots_url,
                status_code=response.status_code,
                fallback_allow=self._allow_when_unreachable,
            )
            return self._unreachable_policy(origin, fetched_at)

        log_event(
            logger,
            logging.WARNING,
            "robots_missing",
            origin=origin,
            robots_url=robots_url,
            status_code=response.status_code,
        )
        return RobotsPolicy(
            origin=origin,
            fetched_at=fetched_at,
            ttl_expiry=fetched_at + self._ttl,
            exists=False,
        )

    def _unreachable_policy(self, origin: str, fetched_at: datetime) -> RobotsPolicy:
        groups: dict[str, RobotsGroup] = {}
        if not self._allow_when_unreachable:
            groups[WILDCARD_AGENT] = RobotsGroup(rules=[RobotsRule(pattern="/", allow=False)])
        return RobotsPolicy(
            origin=origin,
            fetched_at=fetched_at,
            ttl_expiry=fetched_at + self._ttl,
            exists=False,
            groups=groups,
        )


def parse_robots_txt(
    content: str,
    *,
    origin: str,
    fetched_at: datetime,
    ttl_expiry: datetime,
) -> RobotsPolicy:
    """
    Parse robots.txt text into per-agent rule groups.

    Consecutive User-agent lines share one group; repeated agents are merged.
    """

    groups: dict[str, RobotsGroup] = {}
    sitemaps: list[str] = []
    host: str | None = None
    current_agents: list[str] = []
    collecting_agents = False

    for directive, value in _iter_directives(content):
        if directive == "user-agent":
            if not collecting_agents:
                current_agents = []
                collecting_agents = True
            token = value.lower()
            if token:
                current_agents.append(token)
                groups.setdefault(token, RobotsGroup())
            continue

        if directive == "sitemap":
            if value and value not in sitemaps:
                sitemaps.append(value)
            continue
        if directive == "host":
            host = value or host
            continue

        collecting_agents = False
        if directive in {"allow", "disallow"}:
            if not value:
                continue
            rule = RobotsRule(pattern=value, allow=directive == "allow")
            for agent in current_agents:
                groups[agent].rules.append(rule)
        elif directive == "crawl-delay":
            delay = _parse_float(value)
            if delay is None:
                continue
            for agent in current_agents:
                groups[agent].crawl_delay_seconds = max(0.0, delay)

    return RobotsPolicy(
        origin=origin,
        fetched_at=fetched_at,
        ttl_expiry=ttl_expiry,
        exists=True,
        groups=groups,
        sitemaps=sitemaps,
        host=host,
    )


def validate_robots_txt(content: str) -> RobotsValidation:
    """
    Lint robots.txt text, reporting hard errors and softer warnings.
    """

    errors: list[str] = []
    warnings: list[str] = []
    has_user_agent = False

    for line_number, raw_line in enumerate(content.splitlines(), start=1):
        line = raw_line.split("#", 1)[0].strip()
        if not line:
            continue
        if ":" not in line:
            warnings.append(f'Line {line_number}: Invalid syntax: "{line}"')
            continue

        directive, value = (part.strip() for part in line.split(":", 1))
        directive = directive.lower()
        if directive == "user-agent":
            has_user_agent = True
            if not value:
                errors.append(f"Line {line_number}: User-agent cannot be empty")
        elif directive in {"allow", "disallow"}:
            if not has_user_agent:
                errors.append(
                    f"Line {line_number}: {directive.capitalize()} directive "
                    "without preceding User-agent"
                )
        elif directive == "crawl-delay":
            if _parse_float(value) is None:
                errors.append(f'Line {line_number}: Invalid crawl-delay value "{value}"')
        elif directive == "sitemap":
            if not re.match(r"^https?://.+", value):
                warnings.append(f'Line {line_number}: Sitemap URL may be invalid: "{value}"')
        elif directive not in KNOWN_DIRECTIVES:
            warnings.append(f'Line {line_number}: Unknown directive: "{line}"')

    return RobotsValidation(valid=not errors, errors=errors, warnings=warnings)


def _iter_directives(content: str):
    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue
        directive, value = line.split(":", 1)
        yield directive.strip().lower(), value.strip()


def _parse_float(value: str) -> float | None:
    try:
        return float(value)
    except ValueError:
        return None


@lru_cache(maxsize=PATTERN_CACHE_SIZE)
def _compile_pattern(pattern: str) -> re.Pattern[str]:
    anchored = pattern.endswith("$")
    body = pattern[:-1] if anchored else pattern
    regex = ".*".join(re.escape(part) for part in body.split("*"))
    return re.compile(regex + ("$" if anchored else ""))
