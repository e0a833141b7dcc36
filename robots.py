"""robots.txt fetching and policy evaluation for polite scraping."""

import logging
from dataclasses import dataclass, field
from urllib.parse import urlparse

import requests

import config
from models import RobotsCheckResult

logger = logging.getLogger(__name__)


@dataclass
class RobotsRule:
    user_agents: list[str] = field(default_factory=list)
    disallowed: list[str] = field(default_factory=list)
    allowed: list[str] = field(default_factory=list)
    crawl_delay_ms: int | None = None
    sitemaps: list[str] = field(default_factory=list)


def robots_url_for(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}/robots.txt"


def parse_robots_txt(content: str) -> tuple[list[RobotsRule], list[str]]:
    """Split robots.txt into per-agent rule blocks.

    Consecutive User-agent lines share a block. Sitemap lines seen before any
    User-agent are returned separately as file-wide sitemaps.
    """
    rules: list[RobotsRule] = []
    global_sitemaps: list[str] = []
    current: RobotsRule | None = None
    in_agent_run = False

    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue

        directive, value = line.split(":", 1)
        directive = directive.strip().lower()
        value = value.strip()

        if directive == "user-agent":
            if current is None or not in_agent_run:
                current = RobotsRule()
                rules.append(current)
            current.user_agents.append(value)
            in_agent_run = True
            continue

        in_agent_run = False

        if directive == "sitemap":
            if not value:
                continue
            if current is None:
                global_sitemaps.append(value)
            else:
                current.sitemaps.append(value)
            continue

        if current is None:
            continue

        if directive == "disallow":
            # An empty Disallow carries no restriction
            if value:
                current.disallowed.append(value)
        elif directive == "allow":
            if value:
                current.allowed.append(value)
        elif directive == "crawl-delay":
            try:
                current.crawl_delay_ms = int(float(value) * 1000)
            except ValueError:
                logger.debug(f"[robots] Ignoring bad crawl-delay value: {value!r}")

    return rules, global_sitemaps


def select_rule(rules: list[RobotsRule], agent_name: str) -> RobotsRule | None:
    """Exact case-insensitive agent match first, then the wildcard block."""
    agent = agent_name.lower()
    for rule in rules:
        if any(ua.lower() == agent for ua in rule.user_agents):
            return rule
    for rule in rules:
        if "*" in rule.user_agents:
            return rule
    return None


def evaluate(rule: RobotsRule | None, path: str, sitemaps: list[str] | None = None) -> RobotsCheckResult:
    """Decide whether `path` may be fetched under `rule`."""
    sitemaps = list(sitemaps or [])

    if rule is None:
        return RobotsCheckResult(
            allowed=True,
            crawl_delay_ms=config.DEFAULT_CRAWL_DELAY_MS,
            reason="No applicable robots.txt rules found",
            sitemaps=sitemaps,
        )

    delay = rule.crawl_delay_ms or config.DEFAULT_CRAWL_DELAY_MS
    sitemaps = rule.sitemaps + sitemaps

    for disallowed in rule.disallowed:
        if not path.startswith(disallowed):
            continue
        if disallowed != "/":
            overridden = any(
                path.startswith(allowed) and len(allowed) > len(disallowed)
                for allowed in rule.allowed
            )
            if overridden:
                continue
        return RobotsCheckResult(
            allowed=False,
            crawl_delay_ms=delay,
            reason=f"Path {path} is disallowed by robots.txt rule: Disallow: {disallowed}",
            sitemaps=sitemaps,
        )

    return RobotsCheckResult(
        allowed=True,
        crawl_delay_ms=delay,
        reason="Path is allowed by robots.txt",
        sitemaps=sitemaps,
    )


class RobotsPolicyChecker:
    """Answers "may this agent fetch this URL, and how slowly?"

    Unreachable or missing robots.txt fails open with a conservative delay so
    scraping slows down instead of halting.
    """

    def __init__(self, session: requests.Session | None = None, timeout: float | None = None):
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else config.ROBOTS_TIMEOUT_SEC

    def check(self, url: str, agent_name: str | None = None) -> RobotsCheckResult:
        agent_name = agent_name or config.BOT_NAME
        robots_url = robots_url_for(url)
        path = urlparse(url).path or "/"
        logger.info(f"[robots] Checking {robots_url} for {agent_name}")

        try:
            resp = self.session.get(
                robots_url,
                headers={"User-Agent": config.USER_AGENT},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"[robots] Failed to fetch {robots_url}: {e}")
            return self._fail_open(f"Could not fetch robots.txt: {e}")

        if not resp.ok:
            logger.info(f"[robots] No robots.txt at {robots_url} (HTTP {resp.status_code})")
            return self._fail_open(
                f"robots.txt returned HTTP {resp.status_code}, using conservative default delay"
            )

        rules, sitemaps = parse_robots_txt(resp.text)
        result = evaluate(select_rule(rules, agent_name), path, sitemaps)
        logger.info(
            f"[robots] {path}: allowed={result.allowed} crawl_delay={result.crawl_delay_ms}ms"
        )
        return result

    def _fail_open(self, reason: str) -> RobotsCheckResult:
        return RobotsCheckResult(
            allowed=True,
            crawl_delay_ms=config.FAIL_OPEN_DELAY_MS,
            reason=reason,
        )
