"""robots.txt compliance with a per-run cache."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlsplit
from urllib.robotparser import RobotFileParser

from . import config
from .errors import CrawlError
from .fetcher import Fetcher, get_origin

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class RobotsRules:
    """Rules that apply to one origin."""

    origin: str
    parser: Optional[RobotFileParser] = None
    crawl_delay: Optional[float] = None
    sitemaps: List[str] = field(default_factory=list)

    @property
    def permissive(self) -> bool:
        return self.parser is None

    def is_allowed(self, path: str) -> bool:
        if self.parser is None:
            return True
        return self.parser.can_fetch(config.ROBOTS_USER_AGENT, self.origin + path)


def _agent_matches(agent: str, user_agent: str) -> bool:
    # Same product-token substring match as RobotFileParser
    return agent.lower() in user_agent.split("/")[0].lower()


def parse_crawl_delay(text: str, user_agent: str = config.ROBOTS_USER_AGENT) -> Optional[float]:
    """
    Crawl-delay, in seconds, of the group that applies to *user_agent*.

    RobotFileParser only understands whole seconds, so the groups are read
    here to accept fractional values such as ``0.5``. A group naming the
    agent wins over the ``*`` group.
    """
    groups: List[Tuple[List[str], Optional[float]]] = []
    agents: List[str] = []
    delay: Optional[float] = None
    in_rules = False

    for raw_line in text.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip().lower()
        value = value.strip()

        if key == "user-agent":
            if in_rules:
                groups.append((agents, delay))
                agents, delay, in_rules = [], None, False
            agents.append(value)
        elif agents:
            in_rules = True
            if key == "crawl-delay":
                try:
                    parsed = float(value)
                except ValueError:
                    continue
                if parsed >= 0 and math.isfinite(parsed):
                    delay = parsed
    if agents:
        groups.append((agents, delay))

    for group_agents, group_delay in groups:
        if any(agent != "*" and _agent_matches(agent, user_agent) for agent in group_agents):
            return group_delay
    for group_agents, group_delay in groups:
        if "*" in group_agents:
            return group_delay
    return None


def parse_robots(origin: str, text: str) -> RobotsRules:
    """Build rules for *origin* from the body of its robots.txt."""
    parser = RobotFileParser(f"{origin}/robots.txt")
    parser.parse(text.splitlines())
    return RobotsRules(
        origin=origin,
        parser=parser,
        crawl_delay=parse_crawl_delay(text),
        sitemaps=list(parser.site_maps() or []),
    )


class RobotsCache:
    """Fetch robots.txt once per origin and answer allow/delay queries.

    A missing or unreadable robots.txt never blocks the crawl: the origin
    gets a permissive rule set and a warning is logged.
    """

    def __init__(self, fetcher: Fetcher):
        self._fetcher = fetcher
        self._rules: Dict[str, RobotsRules] = {}

    async def get_rules(self, url: str) -> RobotsRules:
        origin = get_origin(url)
        cached = self._rules.get(origin)
        if cached is not None:
            return cached

        robots_url = f"{origin}/robots.txt"
        try:
            result = await self._fetcher.fetch(robots_url, max_retries=1)
            rules = parse_robots(origin, result.body)
        except CrawlError as exc:
            LOGGER.warning(
                "robots.txt unavailable for %s (%s); allowing all paths.", origin, exc
            )
            rules = RobotsRules(origin=origin)
        except (ValueError, UnicodeError) as exc:
            LOGGER.warning(
                "robots.txt for %s could not be parsed (%s); allowing all paths.",
                origin,
                exc,
            )
            rules = RobotsRules(origin=origin)
        else:
            LOGGER.debug(
                "Loaded robots.txt for %s (crawl-delay=%s)", origin, rules.crawl_delay
            )

        self._rules[origin] = rules
        return rules

    async def is_allowed(self, url: str) -> bool:
        rules = await self.get_rules(url)
        parts = urlsplit(url)
        path = parts.path or "/"
        if parts.query:
            path = f"{path}?{parts.query}"
        return rules.is_allowed(path)

    async def crawl_delay(self, url: str) -> Optional[float]:
        rules = await self.get_rules(url)
        return rules.crawl_delay

    def clear(self) -> None:
        self._rules.clear()
