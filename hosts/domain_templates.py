import logging
import re
from typing import Dict, NamedTuple, Optional, Sequence, Union
from urllib.parse import urlparse, ParseResult

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:137.0) Gecko/20100101 Firefox/137.0"

DEFAULT_HEADERS = {
    "user-agent": DEFAULT_USER_AGENT,
    "accept": "*/*",
    "accept-language": "en-US,en;q=0.5",
    "sec-fetch-dest": "empty",
    "sec-fetch-mode": "cors",
    "sec-fetch-site": "cross-site",
}


class HeaderTemplate(NamedTuple):
    """Headers that make a CDN believe the request comes from an allowed page."""
    pattern: "re.Pattern"
    origin: str
    referer: str
    user_agent: Optional[str] = None
    additional_headers: Optional[Dict[str, str]] = None


def _template(pattern: str, origin: str, referer: str, user_agent: str = None, additional_headers: dict = None) -> HeaderTemplate:
    return HeaderTemplate(re.compile(pattern, re.IGNORECASE), origin, referer, user_agent, additional_headers)


# Order matters: first matching pattern wins
DOMAIN_TEMPLATES = [
    # kwik
    _template(r"\.padorupado\.ru$", "https://kwik.si", "https://kwik.si/"),

    # krussdomi
    _template(r"krussdomi\.com$", "https://krussdomi.com", "https://hls.krussdomi.com/"),
    _template(r"\.narutokun\.xyz$", "https://krussdomi.com", "https://krussdomi.com/"),
    _template(r"\.babybayw\.xyz$", "https://krussdomi.com", "https://krussdomi.com/"),
    _template(r"\.advancedairesearchlab\.xyz$", "https://krussdomi.com", "https://krussdomi.com/"),
    _template(r"\.habibikun\.xyz$", "https://bl.krussdomi.com", "https://bl.krussdomi.com/"),
    _template(r"\.akamaized\.net$", "https://bl.krussdomi.com", "https://bl.krussdomi.com/"),

    _template(r"\.anih1\.top$", "https://ee.anih1.top", "https://ee.anih1.top/"),
    _template(r"\.xyk3\.top$", "https://ee.anih1.top", "https://ee.anih1.top/"),
    _template(r"\.premilkyway\.com$", "https://uqloads.xyz", "https://uqloads.xyz/"),
    _template(r"\.kwikie\.ru$", "https://kwik.si", "https://kwik.si/"),

    _template(
        r"(revolutionizingtheweb|nextgentechnologytrends|smartinvestmentstrategies|creativedesignstudioxyz|breakingdigitalboundaries|ultimatetechinnovation)\.xyz$",
        "https://hls.krussdomi.com", "https://hls.krussdomi.com/",
    ),

    _template(r"\.raffaellocdn\.net$", "https://streameeeeee.site", "https://streameeeeee.site/"),

    # megacloud
    _template(r"(dewbreeze84|mistyvalley31)\.(online|live)$", "https://megacloud.blog", "https://megacloud.blog/"),
    _template(
        r"douvid\.xyz$", "https://megacloud.blog", "https://megacloud.blog/",
        additional_headers={
            "accept": "*/*",
            "accept-language": "en-US,en;q=0.5",
            "sec-fetch-dest": "empty",
            "sec-fetch-mode": "cors",
            "sec-fetch-site": "cross-site",
        },
    ),
    _template(
        r"(lightningspark77|thunderwave48|stormwatch95|windyrays29|thunderstrike77|fogtwist21|rainfallpath36|lightningflash39|stormwhirl73|cloudburst82|drizzleshower19)\.(pro|site|xyz|online|live)$",
        "https://megacloud.club", "https://megacloud.club/",
    ),
    _template(r"clearskydrift45\.site$", "https://kerolaunochan.online", "https://kerolaunochan.online/"),

    # cloudnestra
    _template(r"\.shadowlandschronicles\.com$", "https://cloudnestra.com", "https://cloudnestra.com/"),
    _template(
        r"(sparkrisestudios|dreamwavecollective|urbansagecollective|novaquestdynamics|boldsageventures)\.xyz$",
        "https://cloudnestra.com", "https://cloudnestra.com/",
    ),
    _template(r"putgate\.org$", "https://cloudnestra.com", "https://cloudnestra.com/"),

    _template(r"\.southboat\.site$", "https://player.videasy.net", "https://player.videasy.net/"),
    _template(r"\.cdnup\.cc$", "https://bestwish.lol", "https://bestwish.lol/"),
    _template(r"\.streamupcdn\.com$", "https://bestwish.lol", "https://bestwish.lol/"),
    _template(r"\.netmagcdn\.com$", "https://megacloud.club", "https://megacloud.club/"),
    _template(r"vmeas\.cloud$", "https://vidmoly.to", "https://vidmoly.to/"),
    _template(r"nextwaveinitiative\.xyz$", "https://edgedeliverynetwork.org", "https://edgedeliverynetwork.org/"),
    # Only reached for the bare domain, subdomains match the cloudnestra entry above
    _template(r"shadowlandschronicles\.com$", "https://edgedeliverynetwork.org", "https://edgedeliverynetwork.org/"),

    # vidsrc
    _template(r"lightningbolts\.ru$", "https://vidsrc.cc", "https://vidsrc.cc/"),
    _template(r"\.xelvonwave64\.xyz$", "https://vidsrc.su", "https://vidsrc.su/"),
    _template(r"lightningbolt\.site$", "https://vidsrc.cc", "https://vidsrc.cc/"),
    _template(r"vidlvod\.store$", "https://vidlink.pro", "https://vidlink.pro/"),
    _template(r"vyebzzqlojvrl\.top$", "https://vidsrc.cc", "https://vidsrc.cc/"),

    # megacloud store
    _template(
        r"(sunnybreeze16|mgstatics|cloudydrift38|stormwhirl73|odyssey|rainveil36|sunshinerays93|sunburst66|sunburst93|windytrail24|stormshade84|clearskyline88|clearbluesky72|breezygale56|haildrop77|frostshine12|frostbite27|frostywinds57|icyhailstorm64|icyhailstorm29|windflash93|stormdrift27|tempestcloud61|rainfallpath36)\.(live|site|xyz|online|pro|biz|wiki)$",
        "https://megacloud.blog", "https://megacloud.blog/",
    ),
    _template(r"odyssey-\d+\.biz$", "https://megaup.live", "https://megaup.live/"),

    _template(r"1stkmgv1\.com$", "https://vidmoly.to", "https://vidmoly.to/"),
    _template(r"rainstorm92\.xyz$", "https://megacloud.club", "https://megacloud.club/"),
    _template(r"\.feetcdn\.com$", "https://kerolaunochan.online", "https://kerolaunochan.online/"),
    _template(
        r"(heatwave90|humidmist27|frozenbreeze65|drizzlerain73|sunrays81)\.(pro|wiki|live|online|xyz)$",
        "https://kerolaunochan.live", "https://kerolaunochan.live/",
    ),

    # embed.su
    _template(r"embed\.su$", "https://embed.su", "https://embed.su/"),
    _template(r"usbigcdn\.cc$", "https://embed.su", "https://embed.su/"),
    _template(r"\.congacdn\.cc$", "https://embed.su", "https://embed.su/"),

    _template(r"\.vkcdn5\.com$", "https://vkspeed.com", "https://vkspeed.com/"),
    _template(r"\.cloudfront\.net$", "https://d2zihajmogu5jn.cloudfront.net", "https://d2zihajmogu5jn.cloudfront.net/"),
    _template(r"\.ttvnw\.net$", "https://www.twitch.tv", "https://www.twitch.tv/"),
]


def find_domain_template(hostname: str, templates: Sequence[HeaderTemplate] = None) -> Optional[HeaderTemplate]:
    """Return the first template whose pattern matches the hostname, or None."""
    if not hostname:
        return None
    for template in (DOMAIN_TEMPLATES if templates is None else templates):
        if template.pattern.search(hostname):
            return template
    return None


def generate_headers(url: Union[str, ParseResult], templates: Sequence[HeaderTemplate] = None) -> Dict[str, str]:
    """
    Build the request headers for a target URL.

    Defaults first, then the matched template's origin/referer (and user-agent
    and extra headers when it has them). ``host`` is always set last, since no
    template ever supplies it.
    """
    parsed = urlparse(url) if isinstance(url, str) else url
    template = find_domain_template(parsed.hostname or "", templates)

    headers = dict(DEFAULT_HEADERS)

    if template:
        headers["origin"] = template.origin
        headers["referer"] = template.referer

        if template.user_agent:
            headers["user-agent"] = template.user_agent

        if template.additional_headers:
            headers.update(template.additional_headers)

        logger.debug(f"Domain template matched for {parsed.hostname}: {template.pattern.pattern}")

    host = parsed.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    # Userinfo never goes into Host
    headers["host"] = f"{host}:{parsed.port}" if parsed.port else host

    return headers
