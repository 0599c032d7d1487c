"""Origin policy for cross-origin requests.

Decides whether a browser origin may call the gateway:
- No Origin header (curl, mobile apps, server-to-server) -> allow
- Exact match against the configured frontend origins -> allow
- Host ending in a hosting-platform suffix (*.pages.dev, *.vercel.app, ...) -> allow
- Anything else -> deny

Suffixes are matched against the parsed host only, so an origin such as
"https://evil.example/x.vercel.app" does not qualify. The host comes from
urlsplit(), which lowercases it and drops the port: "https://X.VERCEL.APP"
and "https://a.pages.dev:8080" are allowed. Exact-list entries are
compared verbatim.

OriginPolicyCORSMiddleware plugs the decision into Starlette's CORS
handling and evaluates it once per request:
- denied preflight -> 400, no CORS headers
- denied simple request -> the route still runs, but the response carries
  no Access-Control-* headers at all (only "Vary: Origin"), so the browser
  refuses to expose it. The request is counted by the rate limiter like
  any other.
"""

from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import urlsplit

from fastapi.middleware.cors import CORSMiddleware
from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from weather_gateway.config.settings import Settings
from weather_gateway.logging.audit import get_audit_logger


class OriginDecision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class OriginPolicy:
    allowed_origins: frozenset[str] = field(default_factory=frozenset)
    platform_suffixes: tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: Settings) -> "OriginPolicy":
        return cls(
            allowed_origins=frozenset(settings.allowed_origins),
            platform_suffixes=tuple(settings.platform_suffixes),
        )

    def allows(self, origin: str | None) -> bool:
        """Pure check, no logging."""
        if not origin:
            return True
        return origin in self.allowed_origins or self._matches_platform(origin)

    def decide(self, origin: str | None) -> OriginDecision:
        """Return ALLOW or DENY for a request's Origin header, logging the verdict."""
        logger = get_audit_logger()

        if not origin:
            logger.info(
                "CORS allowing request without origin",
                extra={"audit_data": {"origin": None, "decision": OriginDecision.ALLOW.value}},
            )
            return OriginDecision.ALLOW

        decision = OriginDecision.ALLOW if self.allows(origin) else OriginDecision.DENY

        log = logger.info if decision is OriginDecision.ALLOW else logger.warning
        log(
            f"CORS {'allowing' if decision is OriginDecision.ALLOW else 'blocked'} origin",
            extra={"audit_data": {"origin": origin, "decision": decision.value}},
        )
        return decision

    def _matches_platform(self, origin: str) -> bool:
        try:
            parts = urlsplit(origin)
        except ValueError:
            return False
        if parts.scheme not in ("http", "https") or not parts.hostname:
            return False
        host = parts.hostname
        return any(host.endswith(suffix) for suffix in self.platform_suffixes)


class OriginPolicyCORSMiddleware(CORSMiddleware):
    """CORSMiddleware whose origin check is delegated to an OriginPolicy."""

    def __init__(self, app: ASGIApp, policy: OriginPolicy, **kwargs) -> None:
        super().__init__(app, **kwargs)
        self.policy = policy

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await super().__call__(scope, receive, send)
            return

        headers = Headers(scope=scope)
        decision = self.policy.decide(headers.get("origin"))
        preflight = scope["method"] == "OPTIONS" and "access-control-request-method" in headers

        if decision is OriginDecision.DENY and not preflight:
            await self.app(scope, receive, _vary_on_origin(send))
            return
        await super().__call__(scope, receive, send)

    def is_allowed_origin(self, origin: str) -> bool:
        return self.policy.allows(origin)


def _vary_on_origin(send: Send) -> Send:
    async def send_wrapper(message: Message) -> None:
        if message["type"] == "http.response.start":
            MutableHeaders(scope=message).add_vary_header("Origin")
        await send(message)

    return send_wrapper
